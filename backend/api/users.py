from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from ..api.dependencies import PageParams, get_db, get_live_user, get_role_or_404, page_params
from ..auth.jwt import CurrentUser, get_password_hash, require_permission
from ..core.errors import ConflictError, NotFoundError
from ..models.models import User, utcnow
from ..schemas.schemas import UserCreate, UserPage, UserRead, UserUpdate
from ..services.audit import audit_request
from ..services.correspondence import like_pattern
from ..utils.pagination import build_pagination, paginate

router = APIRouter()

RESOURCE = "user"


def _ensure_unique(db: Session, username: Optional[str], email: Optional[str], exclude_id: Optional[int] = None) -> None:
    clauses = []
    if username:
        clauses.append(User.username == username)
    if email:
        clauses.append(User.email == email)
    if not clauses:
        return
    query = db.query(User.id).filter(User.deleted_at.is_(None), or_(*clauses))
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    if query.first():
        raise ConflictError("Username or email already exists")


def _load_user(db: Session, user_id: int) -> User:
    user = (
        db.query(User)
        .options(joinedload(User.role))
        .filter(User.id == user_id, User.deleted_at.is_(None))
        .first()
    )
    if not user:
        raise NotFoundError("User not found")
    return user


@router.get("", response_model=UserPage)
def list_users(
    role_id: Optional[int] = Query(None, ge=1),
    is_active: Optional[bool] = Query(None),
    search: Optional[str] = Query(None, max_length=200),
    paging: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    _: CurrentUser = Depends(require_permission("user:read")),
) -> UserPage:
    query = db.query(User).options(joinedload(User.role)).filter(User.deleted_at.is_(None))
    if role_id:
        query = query.filter(User.role_id == role_id)
    if is_active is not None:
        query = query.filter(User.is_active.is_(is_active))
    term = (search or "").strip()
    if term:
        pattern = like_pattern(term)
        query = query.filter(
            or_(
                User.username.ilike(pattern, escape="\\"),
                User.email.ilike(pattern, escape="\\"),
                User.full_name_ar.ilike(pattern, escape="\\"),
                User.full_name_en.ilike(pattern, escape="\\"),
            )
        )
    rows, total = paginate(query.order_by(User.created_at.desc(), User.id.desc()), paging.page, paging.limit)
    return UserPage(data=rows, pagination=build_pagination(total, paging.page, paging.limit))


@router.get("/{user_id}", response_model=UserRead)
def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    _: CurrentUser = Depends(require_permission("user:read")),
) -> User:
    return _load_user(db, user_id)


@router.post("", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreate,
    request: Request,
    db: Session = Depends(get_db),
    actor: CurrentUser = Depends(require_permission("user:create")),
) -> User:
    get_role_or_404(db, payload.role_id)
    _ensure_unique(db, payload.username, payload.email)

    user = User(
        username=payload.username,
        email=payload.email,
        hashed_password=get_password_hash(payload.password),
        full_name_ar=payload.full_name_ar,
        full_name_en=payload.full_name_en,
        role_id=payload.role_id,
    )
    db.add(user)
    db.commit()

    audit_request(
        db, request, actor.id, action="create", resource=RESOURCE, resource_id=user.id,
        details={"username": payload.username, "role_id": payload.role_id},
    )
    return _load_user(db, user.id)


@router.put("/{user_id}", response_model=UserRead)
def update_user(
    user_id: int,
    payload: UserUpdate,
    request: Request,
    db: Session = Depends(get_db),
    actor: CurrentUser = Depends(require_permission("user:update")),
) -> User:
    user = get_live_user(db, user_id)
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)

    if "role_id" in changes:
        get_role_or_404(db, changes["role_id"])
    _ensure_unique(db, changes.get("username"), changes.get("email"), exclude_id=user.id)

    password = changes.pop("password", None)
    if password:
        user.hashed_password = get_password_hash(password)
    for field_name, value in changes.items():
        setattr(user, field_name, value)
    db.commit()

    audited = dict(changes)
    if password:
        audited["password_changed"] = True
    audit_request(db, request, actor.id, action="update", resource=RESOURCE, resource_id=user_id, details=audited)
    return _load_user(db, user_id)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
    user_id: int,
    request: Request,
    db: Session = Depends(get_db),
    actor: CurrentUser = Depends(require_permission("user:delete")),
) -> Response:
    user = get_live_user(db, user_id)
    user.deleted_at = utcnow()
    user.is_active = False
    db.commit()
    audit_request(db, request, actor.id, action="delete", resource=RESOURCE, resource_id=user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
