from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..api.dependencies import PageParams, get_db, get_live_entity, page_params
from ..auth.jwt import CurrentUser, require_permission
from ..models.models import Entity, utcnow
from ..schemas.schemas import EntityCreate, EntityPage, EntityRead, EntityType, EntityUpdate
from ..services.audit import audit_request
from ..services.correspondence import like_pattern
from ..utils.pagination import build_pagination, paginate

router = APIRouter()

RESOURCE = "entity"


@router.get("", response_model=EntityPage)
def list_entities(
    type: Optional[EntityType] = Query(None),
    is_active: Optional[bool] = Query(None),
    search: Optional[str] = Query(None, max_length=200),
    paging: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    _: CurrentUser = Depends(require_permission("entity:read")),
) -> EntityPage:
    query = db.query(Entity).filter(Entity.deleted_at.is_(None))
    if type:
        query = query.filter(Entity.type == type)
    if is_active is not None:
        query = query.filter(Entity.is_active.is_(is_active))
    term = (search or "").strip()
    if term:
        pattern = like_pattern(term)
        query = query.filter(
            or_(Entity.name_ar.ilike(pattern, escape="\\"), Entity.name_en.ilike(pattern, escape="\\"))
        )
    rows, total = paginate(query.order_by(Entity.name_ar.asc(), Entity.id.asc()), paging.page, paging.limit)
    return EntityPage(data=rows, pagination=build_pagination(total, paging.page, paging.limit))


@router.get("/{entity_id}", response_model=EntityRead)
def get_entity(
    entity_id: int,
    db: Session = Depends(get_db),
    _: CurrentUser = Depends(require_permission("entity:read")),
) -> Entity:
    return get_live_entity(db, entity_id)


@router.post("", response_model=EntityRead, status_code=status.HTTP_201_CREATED)
def create_entity(
    payload: EntityCreate,
    request: Request,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_permission("entity:create")),
) -> Entity:
    entity = Entity(**payload.model_dump())
    db.add(entity)
    db.commit()
    db.refresh(entity)
    audit_request(
        db, request, user.id, action="create", resource=RESOURCE, resource_id=entity.id,
        details={"name_en": entity.name_en, "type": entity.type},
    )
    return entity


@router.put("/{entity_id}", response_model=EntityRead)
def update_entity(
    entity_id: int,
    payload: EntityUpdate,
    request: Request,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_permission("entity:update")),
) -> Entity:
    entity = get_live_entity(db, entity_id)
    changes = payload.model_dump(exclude_unset=True)
    for field_name, value in changes.items():
        # Names, type and the active flag are required columns.
        if value is None and field_name in {"name_ar", "name_en", "type", "is_active"}:
            continue
        setattr(entity, field_name, value)
    db.commit()
    db.refresh(entity)
    audit_request(
        db, request, user.id, action="update", resource=RESOURCE, resource_id=entity.id,
        details=payload.model_dump(exclude_unset=True, mode="json"),
    )
    return entity


@router.delete("/{entity_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_entity(
    entity_id: int,
    request: Request,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_permission("entity:delete")),
) -> Response:
    entity = get_live_entity(db, entity_id)
    entity.deleted_at = utcnow()
    db.commit()
    audit_request(db, request, user.id, action="delete", resource=RESOURCE, resource_id=entity_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
