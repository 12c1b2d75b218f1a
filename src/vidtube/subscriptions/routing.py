import logging

from fastapi import APIRouter, Depends
from sqlalchemy import delete, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from vidtube.auth.utils import get_current_user
from vidtube.cache import cache
from vidtube.config import settings
from vidtube.db.models import Subscription, User
from vidtube.db.session import get_session
from vidtube.errors import InternalError, NotFoundError, ValidationError
from vidtube.responses import api_response
from vidtube.users.models import user_summary

# Set up logging
logger = logging.getLogger("subscriptions")

router = APIRouter(tags=["subscriptions"])


def _subscribers_key(channel_id: int) -> str:
    return f"subscribers:{channel_id}"


def _subscriptions_key(subscriber_id: int) -> str:
    return f"subscriptions:{subscriber_id}"


def _require_user(db_session: Session, user_id: int, label: str) -> User:
    user = db_session.get(User, user_id)
    if user is None:
        raise NotFoundError(f"{label} not found")
    return user


def invalidate_user_listings(db_session: Session, user_id: int) -> None:
    """Drop every cached listing that embeds this user's display fields."""
    rows = db_session.exec(
        select(Subscription).where(
            or_(Subscription.subscriber_id == user_id, Subscription.channel_id == user_id)
        )
    ).all()
    for subscription in rows:
        if subscription.subscriber_id == user_id:
            cache.delete(_subscribers_key(subscription.channel_id))
        else:
            cache.delete(_subscriptions_key(subscription.subscriber_id))


@router.post("/{channel_id}")
def toggle_subscription(
    channel_id: int,
    db_session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """
    Subscribe to a channel, or unsubscribe if already subscribed.
    """
    if channel_id == current_user.id:
        raise ValidationError("You cannot subscribe to your own channel")
    _require_user(db_session, channel_id, "Channel")

    try:
        removed = db_session.exec(
            delete(Subscription).where(
                Subscription.subscriber_id == current_user.id,
                Subscription.channel_id == channel_id,
            )
        )
        if removed.rowcount:
            db_session.commit()
            subscribed = False
        else:
            db_session.add(Subscription(subscriber_id=current_user.id, channel_id=channel_id))
            db_session.commit()
            subscribed = True
    except IntegrityError:
        # lost a race with a concurrent subscribe for the same pair
        db_session.rollback()
        subscribed = True
    except SQLAlchemyError as e:
        logger.error(f"Database error in toggle_subscription: {e}")
        db_session.rollback()
        raise InternalError("Database error")

    cache.delete(_subscribers_key(channel_id))
    cache.delete(_subscriptions_key(current_user.id))

    data = {"subscribed": subscribed, "channelId": channel_id, "subscriberId": current_user.id}
    if subscribed:
        logger.info(f"User {current_user.id} subscribed to channel {channel_id}")
        return api_response(data, "Subscribed successfully", status_code=201)
    logger.info(f"User {current_user.id} unsubscribed from channel {channel_id}")
    return api_response(data, "Unsubscribed successfully")


@router.get("/channel/{channel_id}")
def get_channel_subscribers(
    channel_id: int,
    db_session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """
    Users subscribed to a channel.
    """
    cached = cache.get(_subscribers_key(channel_id))
    if cached is not None:
        return api_response(cached, f"Subscribers for channel {channel_id} fetched successfully")

    _require_user(db_session, channel_id, "Channel")
    rows = db_session.exec(
        select(Subscription, User)
        .join(User, Subscription.subscriber_id == User.id)
        .where(Subscription.channel_id == channel_id)
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
    ).all()
    data = [
        {
            "id": subscription.id,
            "subscriber": user_summary(subscriber),
            "createdAt": subscription.created_at.isoformat(),
        }
        for subscription, subscriber in rows
    ]
    cache.set(_subscribers_key(channel_id), data, ttl=settings.CACHE_TTL_SECONDS)
    return api_response(data, f"Subscribers for channel {channel_id} fetched successfully")


@router.get("/user/{subscriber_id}")
def get_subscribed_channels(
    subscriber_id: int,
    db_session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """
    Channels a user is subscribed to.
    """
    cached = cache.get(_subscriptions_key(subscriber_id))
    if cached is not None:
        return api_response(cached, f"Subscribed channels for user {subscriber_id} fetched successfully")

    _require_user(db_session, subscriber_id, "Subscriber")
    rows = db_session.exec(
        select(Subscription, User)
        .join(User, Subscription.channel_id == User.id)
        .where(Subscription.subscriber_id == subscriber_id)
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
    ).all()
    data = [
        {
            "id": subscription.id,
            "channel": user_summary(channel),
            "createdAt": subscription.created_at.isoformat(),
        }
        for subscription, channel in rows
    ]
    cache.set(_subscriptions_key(subscriber_id), data, ttl=settings.CACHE_TTL_SECONDS)
    return api_response(data, f"Subscribed channels for user {subscriber_id} fetched successfully")
