from dataclasses import dataclass

from fastapi import Query
from sqlalchemy.orm import Session

from ..auth.jwt import get_current_user, get_db
from ..constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from ..core.errors import NotFoundError
from ..models.models import Entity, Role, User

__all__ = ["get_db", "get_current_user", "PageParams", "page_params", "get_live_entity", "get_live_user", "get_role_or_404"]


@dataclass
class PageParams:
    page: int
    limit: int


def page_params(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
) -> PageParams:
    return PageParams(page=page, limit=limit)


def get_live_entity(db: Session, entity_id: int) -> Entity:
    entity = db.query(Entity).filter(Entity.id == entity_id, Entity.deleted_at.is_(None)).first()
    if not entity:
        raise NotFoundError("Entity not found")
    return entity


def get_live_user(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id, User.deleted_at.is_(None)).first()
    if not user:
        raise NotFoundError("User not found")
    return user


def get_role_or_404(db: Session, role_id: int) -> Role:
    role = db.query(Role).filter(Role.id == role_id).first()
    if not role:
        raise NotFoundError("Role not found")
    return role
