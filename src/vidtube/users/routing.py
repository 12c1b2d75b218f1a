import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse
from jose import JWTError
from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from vidtube.auth.permissions import get_or_404
from vidtube.auth.utils import (
    ACCESS_TOKEN_COOKIE,
    REFRESH_TOKEN_COOKIE,
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    get_current_user,
    hash_password,
    subject_id,
    verify_password,
)
from vidtube.config import settings
from vidtube.db.models import Subscription, User, Video, WatchHistory, utc_now
from vidtube.db.session import get_session
from vidtube.errors import (
    AuthError,
    ConflictError,
    InternalError,
    NotFoundError,
    UploadError,
    ValidationError,
)
from vidtube.media.service import MediaService, get_media_service
from vidtube.media.uploads import has_file, staged_upload
from vidtube.rate_limit import limiter
from vidtube.responses import api_response
from vidtube.subscriptions.routing import invalidate_user_listings
from vidtube.videos.models import video_dict

from .models import (
    EMAIL_PATTERN,
    AccountUpdate,
    ChangePasswordRequest,
    RefreshTokenRequest,
    UserLogin,
    WatchHistoryAdd,
    user_public,
)

logger = logging.getLogger("users")

router = APIRouter(tags=["users"])


def _upload_image(media: MediaService, upload: UploadFile, label: str) -> str:
    with staged_upload(upload) as local_path:
        url = media.upload(local_path)
    if not url:
        raise UploadError(f"Error while uploading {label}", status_code=500)
    return url


def _set_auth_cookies(response: JSONResponse, access_token: str, refresh_token: str) -> None:
    cookie_options = {"httponly": True, "secure": settings.COOKIE_SECURE, "samesite": "lax"}
    response.set_cookie(
        ACCESS_TOKEN_COOKIE, access_token,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60, **cookie_options,
    )
    response.set_cookie(
        REFRESH_TOKEN_COOKIE, refresh_token,
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 3600, **cookie_options,
    )


def _clear_auth_cookies(response: JSONResponse) -> None:
    for name in (ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE):
        response.delete_cookie(name, httponly=True, secure=settings.COOKIE_SECURE, samesite="lax")


def _commit(db_session: Session, action: str) -> None:
    try:
        db_session.commit()
    except SQLAlchemyError as e:
        logger.error(f"Database error in {action}: {e}")
        db_session.rollback()
        raise InternalError("Database error")


@router.post("/register")
def register(
    username: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    full_name: Optional[str] = Form(None, alias="fullName"),
    password: Optional[str] = Form(None),
    avatar: Optional[UploadFile] = File(None),
    cover_image: Optional[UploadFile] = File(None, alias="coverImage"),
    db_session: Session = Depends(get_session),
    media: MediaService = Depends(get_media_service),
):
    """
    Register a new user. Avatar is required, cover image is optional.
    """
    if any(not (field or "").strip() for field in (full_name, email, username, password)):
        raise ValidationError("All fields are required")

    username = username.strip().lower()
    email = email.strip().lower()
    existing = db_session.exec(
        select(User).where(or_(User.username == username, User.email == email))
    ).first()
    if existing:
        raise ConflictError("User with email or username already exists")

    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Invalid email format", [{"field": "email", "message": "Invalid email format"}])

    if not has_file(avatar):
        raise UploadError("Avatar file is required")

    avatar_url = _upload_image(media, avatar, "avatar")
    cover_url = ""
    if has_file(cover_image):
        with staged_upload(cover_image) as local_path:
            cover_url = media.upload(local_path) or ""
        if not cover_url:
            logger.warning(f"Cover image upload failed while registering {username}")

    user = User(
        username=username,
        email=email,
        full_name=full_name.strip(),
        hashed_password=hash_password(password),
        avatar=avatar_url,
        cover_image=cover_url,
    )
    try:
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
    except IntegrityError:
        db_session.rollback()
        raise ConflictError("User with email or username already exists")
    except SQLAlchemyError as e:
        logger.error(f"Database error in register: {e}")
        db_session.rollback()
        raise InternalError("Something went wrong while registering the user")

    logger.info(f"Registered user {user.id} ({user.username})")
    return api_response(user_public(user), "User registered successfully", status_code=201)


@router.post("/login")
@limiter.limit(settings.LOGIN_RATE_LIMIT)
def login(request: Request, credentials: UserLogin, db_session: Session = Depends(get_session)):
    if not credentials.username and not credentials.email:
        raise ValidationError("Username or email is required")

    conditions = []
    if credentials.username:
        conditions.append(User.username == credentials.username)
    if credentials.email:
        conditions.append(User.email == credentials.email)
    user = db_session.exec(select(User).where(or_(*conditions))).first()
    if user is None:
        raise NotFoundError("User does not exist")

    if not verify_password(credentials.password, user.hashed_password):
        raise AuthError("Invalid user credentials")

    access_token = create_access_token(user)
    refresh_token = create_refresh_token(user)
    user.refresh_token = refresh_token
    user.updated_at = utc_now()
    db_session.add(user)
    _commit(db_session, "login")
    db_session.refresh(user)

    logger.info(f"User {user.id} logged in")
    response = api_response(
        {"user": user_public(user), "accessToken": access_token, "refreshToken": refresh_token},
        "User logged in successfully",
    )
    _set_auth_cookies(response, access_token, refresh_token)
    return response


@router.post("/logout")
def logout(
    db_session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    db_session.exec(
        update(User).where(User.id == current_user.id).values(refresh_token=None, updated_at=utc_now())
    )
    _commit(db_session, "logout")

    logger.info(f"User {current_user.id} logged out")
    response = api_response({}, "User logged out successfully")
    _clear_auth_cookies(response)
    return response


@router.post("/refresh-token")
def refresh_access_token(
    request: Request,
    payload: Optional[RefreshTokenRequest] = Body(None),
    db_session: Session = Depends(get_session),
):
    """
    Rotate the token pair. The stored refresh token is swapped in a single
    conditional UPDATE, so a token that has already been used never matches.
    """
    incoming = request.cookies.get(REFRESH_TOKEN_COOKIE) or (payload.refresh_token if payload else None)
    if not incoming:
        raise AuthError("Unauthorized request")

    try:
        claims = decode_refresh_token(incoming)
    except JWTError as e:
        raise AuthError(f"Invalid refresh token: {e}")
    user_id = subject_id(claims, "refresh")

    user = db_session.get(User, user_id)
    if user is None:
        raise AuthError("Invalid refresh token")

    access_token = create_access_token(user)
    new_refresh_token = create_refresh_token(user)
    result = db_session.exec(
        update(User)
        .where(User.id == user_id, User.refresh_token == incoming)
        .values(refresh_token=new_refresh_token, updated_at=utc_now())
    )
    if result.rowcount != 1:
        db_session.rollback()
        logger.warning(f"Rejected stale refresh token for user {user_id}")
        raise AuthError("Refresh token is expired or used")
    _commit(db_session, "refresh_access_token")

    response = api_response(
        {"accessToken": access_token, "refreshToken": new_refresh_token},
        "Access token refreshed",
    )
    _set_auth_cookies(response, access_token, new_refresh_token)
    return response


@router.post("/change-password")
def change_password(
    payload: ChangePasswordRequest,
    db_session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    if not verify_password(payload.old_password, current_user.hashed_password):
        raise AuthError("Invalid old password")

    current_user.hashed_password = hash_password(payload.new_password)
    current_user.updated_at = utc_now()
    db_session.add(current_user)
    _commit(db_session, "change_password")

    logger.info(f"User {current_user.id} changed password")
    return api_response({}, "Password changed successfully")


@router.get("/current")
def get_current(current_user: User = Depends(get_current_user)):
    return api_response(user_public(current_user), "Current user fetched successfully")


@router.patch("/update-account")
def update_account(
    payload: AccountUpdate,
    db_session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    if payload.full_name is None and payload.email is None:
        raise ValidationError("Provide fullName or email to update")

    if payload.email is not None and payload.email != current_user.email:
        taken = db_session.exec(
            select(User).where(User.email == payload.email, User.id != current_user.id)
        ).first()
        if taken:
            raise ConflictError("Email is already in use")
        current_user.email = payload.email
    if payload.full_name is not None:
        current_user.full_name = payload.full_name

    current_user.updated_at = utc_now()
    db_session.add(current_user)
    try:
        db_session.commit()
    except IntegrityError:
        db_session.rollback()
        raise ConflictError("Email is already in use")
    except SQLAlchemyError as e:
        logger.error(f"Database error in update_account: {e}")
        db_session.rollback()
        raise InternalError("Database error")
    db_session.refresh(current_user)
    invalidate_user_listings(db_session, current_user.id)
    return api_response(user_public(current_user), "Account details updated successfully")


@router.patch("/avatar")
def update_avatar(
    avatar: Optional[UploadFile] = File(None),
    db_session: Session = Depends(get_session),
    media: MediaService = Depends(get_media_service),
    current_user: User = Depends(get_current_user),
):
    if not has_file(avatar):
        raise UploadError("Avatar file is missing")

    current_user.avatar = _upload_image(media, avatar, "avatar")
    current_user.updated_at = utc_now()
    db_session.add(current_user)
    _commit(db_session, "update_avatar")
    db_session.refresh(current_user)
    invalidate_user_listings(db_session, current_user.id)
    return api_response(user_public(current_user), "Avatar updated successfully")


@router.patch("/cover")
def update_cover_image(
    cover_image: Optional[UploadFile] = File(None, alias="coverImage"),
    db_session: Session = Depends(get_session),
    media: MediaService = Depends(get_media_service),
    current_user: User = Depends(get_current_user),
):
    if not has_file(cover_image):
        raise UploadError("Cover image file is missing")

    current_user.cover_image = _upload_image(media, cover_image, "cover image")
    current_user.updated_at = utc_now()
    db_session.add(current_user)
    _commit(db_session, "update_cover_image")
    db_session.refresh(current_user)
    invalidate_user_listings(db_session, current_user.id)
    return api_response(user_public(current_user), "Cover image updated successfully")


@router.get("/channel/{username}")
def get_channel_profile(
    username: str,
    db_session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """
    Channel page header: display fields plus subscription counts.
    """
    if not username.strip():
        raise ValidationError("Username is missing")

    channel = db_session.exec(select(User).where(User.username == username.strip().lower())).first()
    if channel is None:
        raise NotFoundError("Channel does not exist")

    subscribers_count = db_session.exec(
        select(func.count()).select_from(Subscription).where(Subscription.channel_id == channel.id)
    ).one()
    subscribed_to_count = db_session.exec(
        select(func.count()).select_from(Subscription).where(Subscription.subscriber_id == channel.id)
    ).one()
    is_subscribed = db_session.exec(
        select(Subscription.id).where(
            Subscription.channel_id == channel.id,
            Subscription.subscriber_id == current_user.id,
        )
    ).first() is not None

    return api_response(
        {
            "id": channel.id,
            "username": channel.username,
            "email": channel.email,
            "fullName": channel.full_name,
            "avatar": channel.avatar,
            "coverImage": channel.cover_image or "",
            "subscribersCount": subscribers_count,
            "channelsSubscribedToCount": subscribed_to_count,
            "isSubscribed": is_subscribed,
        },
        "User channel fetched successfully",
    )


@router.get("/watch-history")
def get_watch_history(
    db_session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    rows = db_session.exec(
        select(Video, User)
        .join(WatchHistory, WatchHistory.video_id == Video.id)
        .join(User, Video.owner_id == User.id)
        .where(WatchHistory.user_id == current_user.id)
        .order_by(WatchHistory.added_at.desc(), WatchHistory.id.desc())
    ).all()
    return api_response(
        [video_dict(video, owner) for video, owner in rows],
        "Watch history fetched successfully",
    )


@router.post("/watch-history")
def add_to_watch_history(
    payload: WatchHistoryAdd,
    db_session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    video = get_or_404(db_session, Video, payload.video_id)

    existing = db_session.exec(
        select(WatchHistory).where(
            WatchHistory.user_id == current_user.id,
            WatchHistory.video_id == video.id,
        )
    ).first()
    if existing:
        return api_response({"videoId": video.id, "added": False}, "Video already in watch history")

    try:
        db_session.add(WatchHistory(user_id=current_user.id, video_id=video.id))
        db_session.commit()
    except IntegrityError:
        # a concurrent request inserted the same pair first
        db_session.rollback()
        return api_response({"videoId": video.id, "added": False}, "Video already in watch history")
    except SQLAlchemyError as e:
        logger.error(f"Database error in add_to_watch_history: {e}")
        db_session.rollback()
        raise InternalError("Database error")

    logger.info(f"User {current_user.id} watched video {video.id}")
    return api_response({"videoId": video.id, "added": True}, "Video added to watch history")
