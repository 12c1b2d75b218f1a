import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from vidtube.auth.permissions import get_or_404, get_owned_or_raise
from vidtube.auth.utils import get_current_user
from vidtube.db.models import Comment, User, Video, utc_now
from vidtube.db.session import get_session
from vidtube.errors import InternalError, ValidationError
from vidtube.responses import api_response
from vidtube.users.models import user_summary

# Set up logging
logger = logging.getLogger("comments")

router = APIRouter(tags=["comments"])

MAX_COMMENT_LENGTH = 1000


class CommentContent(BaseModel):
    content: str = Field(..., min_length=1)

    @field_validator("content")
    @classmethod
    def validate_content(cls, v):
        if not v or not v.strip():
            raise ValueError("Comment content cannot be empty")
        if len(v.strip()) > MAX_COMMENT_LENGTH:
            raise ValueError(f"Comment content too long (max {MAX_COMMENT_LENGTH} characters)")
        return v.strip()


def comment_dict(comment: Comment, owner: User | None = None) -> dict:
    data = {
        "id": comment.id,
        "content": comment.content,
        "video": comment.video_id,
        "owner": comment.owner_id,
        "createdAt": comment.created_at.isoformat(),
        "updatedAt": comment.updated_at.isoformat(),
    }
    if owner is not None:
        data["owner"] = user_summary(owner)
    return data


@router.get("/{video_id}")
def get_video_comments(
    video_id: int,
    page: int = 1,
    limit: int = 10,
    db_session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """
    Comments for a video, newest first, with the commenter's display fields.
    """
    if page < 1:
        raise ValidationError("page must be 1 or greater")
    if limit < 1 or limit > 100:
        raise ValidationError("limit must be between 1 and 100")
    get_or_404(db_session, Video, video_id)

    total = db_session.exec(
        select(func.count()).select_from(Comment).where(Comment.video_id == video_id)
    ).one()
    rows = db_session.exec(
        select(Comment, User)
        .join(User, Comment.owner_id == User.id)
        .where(Comment.video_id == video_id)
        .order_by(Comment.created_at.desc(), Comment.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()

    return api_response(
        {
            "total": total,
            "page": page,
            "limit": limit,
            "comments": [comment_dict(comment, owner) for comment, owner in rows],
        },
        "Comments for video fetched successfully",
    )


@router.post("/{video_id}")
def add_comment(
    video_id: int,
    payload: CommentContent,
    db_session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    video = get_or_404(db_session, Video, video_id)
    try:
        comment = Comment(content=payload.content, video_id=video.id, owner_id=current_user.id)
        db_session.add(comment)
        db_session.commit()
        db_session.refresh(comment)
    except SQLAlchemyError as e:
        logger.error(f"Database error in add_comment: {e}")
        db_session.rollback()
        raise InternalError("Database error")

    logger.info(f"User {current_user.id} commented on video {video.id}")
    return api_response(comment_dict(comment, current_user), "Comment created successfully", status_code=201)


@router.patch("/{comment_id}")
def update_comment(
    comment_id: int,
    payload: CommentContent,
    db_session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """
    Update a comment (only by the comment author).
    """
    comment = get_owned_or_raise(db_session, Comment, comment_id, current_user, "update")
    try:
        comment.content = payload.content
        comment.updated_at = utc_now()
        db_session.add(comment)
        db_session.commit()
        db_session.refresh(comment)
    except SQLAlchemyError as e:
        logger.error(f"Database error in update_comment: {e}")
        db_session.rollback()
        raise InternalError("Database error")

    logger.info(f"User {current_user.id} updated comment {comment_id}")
    return api_response(comment_dict(comment), "Comment updated successfully")


@router.delete("/{comment_id}")
def delete_comment(
    comment_id: int,
    db_session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """
    Delete a comment (only by the comment author).
    """
    comment = get_owned_or_raise(db_session, Comment, comment_id, current_user, "delete")
    deleted = comment_dict(comment)
    try:
        db_session.delete(comment)
        db_session.commit()
    except SQLAlchemyError as e:
        logger.error(f"Database error in delete_comment: {e}")
        db_session.rollback()
        raise InternalError("Database error")

    logger.info(f"User {current_user.id} deleted comment {comment_id}")
    return api_response(deleted, "Comment deleted successfully")
