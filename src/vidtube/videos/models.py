from typing import Optional

from vidtube.db.models import User, Video
from vidtube.users.models import user_summary

# sortBy query values accepted by the listings
SORTABLE_FIELDS = {
    "createdAt": Video.created_at,
    "title": Video.title,
    "duration": Video.duration,
    "views": Video.views,
}

MAX_PAGE_SIZE = 100


def video_dict(video: Video, owner: Optional[User] = None) -> dict:
    data = {
        "id": video.id,
        "title": video.title,
        "description": video.description,
        "videoFile": video.video_file,
        "thumbnail": video.thumbnail,
        "duration": video.duration,
        "views": video.views,
        "isPublished": video.is_published,
        "owner": video.owner_id,
        "createdAt": video.created_at.isoformat(),
        "updatedAt": video.updated_at.isoformat(),
    }
    if owner is not None:
        data["owner"] = user_summary(owner)
    return data
