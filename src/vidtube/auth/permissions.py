from typing import Type, TypeVar

from sqlmodel import Session, SQLModel

from vidtube.db.models import User
from vidtube.errors import ForbiddenError, NotFoundError

OwnedModel = TypeVar("OwnedModel", bound=SQLModel)


def get_or_404(db_session: Session, model: Type[OwnedModel], entity_id: int) -> OwnedModel:
    entity = db_session.get(model, entity_id)
    if entity is None:
        raise NotFoundError(f"{model.__name__} not found")
    return entity


def ensure_owner(entity: SQLModel, user: User, action: str) -> None:
    """Raise ForbiddenError unless ``user`` owns ``entity``."""
    if getattr(entity, "owner_id", None) != user.id:
        label = type(entity).__name__.lower()
        raise ForbiddenError(
            f"You are not authorized to {action} this {label}",
            errors=[{"field": "authorization", "message": f"You can only {action} a {label} that you own"}],
        )


def get_owned_or_raise(
    db_session: Session,
    model: Type[OwnedModel],
    entity_id: int,
    user: User,
    action: str,
) -> OwnedModel:
    """Load an owned entity for mutation: 404 when absent, 403 when not yours."""
    entity = get_or_404(db_session, model, entity_id)
    ensure_owner(entity, user, action)
    return entity
