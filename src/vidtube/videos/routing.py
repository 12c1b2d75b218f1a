import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy import delete, func, not_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from vidtube.auth.permissions import get_or_404, get_owned_or_raise
from vidtube.auth.utils import get_current_user
from vidtube.db.models import Comment, User, Video, WatchHistory, utc_now
from vidtube.db.session import get_session
from vidtube.errors import InternalError, UploadError, ValidationError
from vidtube.media.service import MediaService, get_media_service
from vidtube.media.uploads import has_file, staged_upload
from vidtube.responses import api_response

from .models import MAX_PAGE_SIZE, SORTABLE_FIELDS, video_dict

# Set up logging
logger = logging.getLogger("videos")

router = APIRouter(tags=["videos"])


def _list_videos(
    db_session: Session,
    page: int,
    limit: int,
    query: Optional[str],
    sort_by: str,
    sort_type: str,
    owner_id: Optional[int] = None,
    published_only: bool = True,
) -> dict:
    if page < 1:
        raise ValidationError("page must be 1 or greater")
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
    if sort_by not in SORTABLE_FIELDS:
        raise ValidationError(f"sortBy must be one of: {', '.join(SORTABLE_FIELDS)}")
    if sort_type not in ("asc", "desc"):
        raise ValidationError("sortType must be 'asc' or 'desc'")

    filters = []
    if query and query.strip():
        filters.append(Video.title.ilike(f"%{query.strip()}%"))
    if published_only:
        filters.append(Video.is_published == True)  # noqa: E712
    if owner_id is not None:
        filters.append(Video.owner_id == owner_id)

    total = db_session.exec(select(func.count()).select_from(Video).where(*filters)).one()

    column = SORTABLE_FIELDS[sort_by]
    ordering = column.desc() if sort_type == "desc" else column.asc()
    tiebreak = Video.id.desc() if sort_type == "desc" else Video.id.asc()
    rows = db_session.exec(
        select(Video, User)
        .join(User, Video.owner_id == User.id)
        .where(*filters)
        .order_by(ordering, tiebreak)
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()

    return {
        "total": total,
        "page": page,
        "limit": limit,
        "videos": [video_dict(video, owner) for video, owner in rows],
    }


@router.get("")
@router.get("/", include_in_schema=False)
def get_all_videos(
    page: int = 1,
    limit: int = 10,
    query: Optional[str] = None,
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_type: str = Query("desc", alias="sortType"),
    user_id: Optional[int] = Query(None, alias="userId"),
    db_session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """
    Public listing: published videos only, optionally for one channel.
    """
    data = _list_videos(db_session, page, limit, query, sort_by, sort_type, owner_id=user_id)
    return api_response(data, "Videos fetched successfully")


@router.get("/my-videos")
def get_my_videos(
    page: int = 1,
    limit: int = 10,
    query: Optional[str] = None,
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_type: str = Query("desc", alias="sortType"),
    db_session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """
    The caller's own videos, drafts included.
    """
    data = _list_videos(
        db_session, page, limit, query, sort_by, sort_type,
        owner_id=current_user.id, published_only=False,
    )
    return api_response(data, "Videos fetched successfully")


@router.post("")
@router.post("/", include_in_schema=False)
def publish_video(
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    owner: Optional[int] = Form(None),
    video_file: Optional[UploadFile] = File(None, alias="videoFile"),
    thumbnail: Optional[UploadFile] = File(None),
    db_session: Session = Depends(get_session),
    media: MediaService = Depends(get_media_service),
    current_user: User = Depends(get_current_user),
):
    """
    Publish a video. Duration is read from the file, never taken from input.
    """
    if not (title or "").strip() or not (description or "").strip():
        raise ValidationError("Title and description are required")
    if not has_file(video_file) or not has_file(thumbnail):
        raise UploadError("Video file and thumbnail are required")

    owner_id = current_user.id
    if owner is not None:
        owner_id = get_or_404(db_session, User, owner).id

    with staged_upload(video_file) as video_path, staged_upload(thumbnail) as thumbnail_path:
        duration = media.probe_duration(video_path)
        if not duration:
            raise ValidationError("Unable to retrieve video duration")
        video_url = media.upload(video_path)
        thumbnail_url = media.upload(thumbnail_path) if video_url else None

    if not video_url or not thumbnail_url:
        raise UploadError("Something went wrong while uploading video or thumbnail", status_code=500)

    video = Video(
        title=title.strip(),
        description=description.strip(),
        video_file=video_url,
        thumbnail=thumbnail_url,
        duration=duration,
        is_published=True,
        owner_id=owner_id,
    )
    try:
        db_session.add(video)
        db_session.commit()
        db_session.refresh(video)
    except SQLAlchemyError as e:
        logger.error(f"Database error in publish_video: {e}")
        db_session.rollback()
        raise InternalError("Database error")

    logger.info(f"User {current_user.id} published video {video.id}")
    return api_response({"video": video_dict(video)}, "Video published successfully", status_code=201)


@router.get("/{video_id}")
def get_video_by_id(
    video_id: int,
    db_session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    video = get_or_404(db_session, Video, video_id)
    owner = db_session.get(User, video.owner_id)
    return api_response({"video": video_dict(video, owner)}, "Video fetched successfully")


@router.patch("/toggle/publish/{video_id}")
def toggle_publish_status(
    video_id: int,
    db_session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    video = get_owned_or_raise(db_session, Video, video_id, current_user, "change the publish status of")
    # flipped in SQL; the loaded row may already be stale
    db_session.exec(
        update(Video)
        .where(Video.id == video.id)
        .values(is_published=not_(Video.is_published), updated_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    try:
        db_session.commit()
    except SQLAlchemyError as e:
        logger.error(f"Database error in toggle_publish_status: {e}")
        db_session.rollback()
        raise InternalError("Database error")
    db_session.refresh(video)

    logger.info(f"User {current_user.id} set video {video.id} published={video.is_published}")
    return api_response({"video": video_dict(video)}, "Video publish status updated")


@router.patch("/{video_id}/views")
def increment_video_views(
    video_id: int,
    db_session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    video = get_or_404(db_session, Video, video_id)
    db_session.exec(
        update(Video)
        .where(Video.id == video.id)
        .values(views=Video.views + 1)
        .execution_options(synchronize_session=False)
    )
    try:
        db_session.commit()
    except SQLAlchemyError as e:
        logger.error(f"Database error in increment_video_views: {e}")
        db_session.rollback()
        raise InternalError("Database error")
    db_session.refresh(video)
    return api_response({"video": video_dict(video)}, "Video views updated")


@router.patch("/{video_id}")
def update_video(
    video_id: int,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    thumbnail: Optional[UploadFile] = File(None),
    db_session: Session = Depends(get_session),
    media: MediaService = Depends(get_media_service),
    current_user: User = Depends(get_current_user),
):
    """
    Partial update of title/description and an optional new thumbnail.
    """
    video = get_owned_or_raise(db_session, Video, video_id, current_user, "update")

    changed = False
    if title is not None:
        if not title.strip():
            raise ValidationError("Title cannot be empty")
        video.title = title.strip()
        changed = True
    if description is not None:
        if not description.strip():
            raise ValidationError("Description cannot be empty")
        video.description = description.strip()
        changed = True
    if has_file(thumbnail):
        with staged_upload(thumbnail) as local_path:
            thumbnail_url = media.upload(local_path)
        if not thumbnail_url:
            raise UploadError("Error while uploading thumbnail", status_code=500)
        video.thumbnail = thumbnail_url
        changed = True

    if not changed:
        raise ValidationError("Nothing to update")

    video.updated_at = utc_now()
    try:
        db_session.add(video)
        db_session.commit()
        db_session.refresh(video)
    except SQLAlchemyError as e:
        logger.error(f"Database error in update_video: {e}")
        db_session.rollback()
        raise InternalError("Database error")

    logger.info(f"User {current_user.id} updated video {video.id}")
    return api_response({"video": video_dict(video)}, "Video updated successfully")


@router.delete("/{video_id}")
def delete_video(
    video_id: int,
    db_session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """
    Delete a video together with its comments and watch-history entries.
    """
    video = get_owned_or_raise(db_session, Video, video_id, current_user, "delete")
    deleted = video_dict(video)
    try:
        db_session.exec(delete(Comment).where(Comment.video_id == video.id))
        db_session.exec(delete(WatchHistory).where(WatchHistory.video_id == video.id))
        db_session.delete(video)
        db_session.commit()
    except SQLAlchemyError as e:
        logger.error(f"Database error in delete_video: {e}")
        db_session.rollback()
        raise InternalError("Database error")

    logger.info(f"User {current_user.id} deleted video {video_id}")
    return api_response({"video": deleted}, "Video deleted successfully")
