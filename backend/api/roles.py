from typing import List, Sequence

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session, selectinload

from ..api.dependencies import get_db, get_role_or_404
from ..auth.jwt import CurrentUser, get_current_user, require_roles
from ..constants import ADMIN_ROLE
from ..core.errors import ConflictError, NotFoundError
from ..models.models import Permission, Role, User
from ..schemas.schemas import PermissionRead, RoleCreate, RoleRead, RoleUpdate
from ..services.audit import audit_request

router = APIRouter()
permissions_router = APIRouter()

RESOURCE = "role"


def _permissions_by_id(db: Session, permission_ids: Sequence[int]) -> List[Permission]:
    wanted = set(permission_ids)
    if not wanted:
        return []
    permissions = db.query(Permission).filter(Permission.id.in_(wanted)).all()
    if len(permissions) != len(wanted):
        raise NotFoundError("One or more permissions not found")
    return permissions


def _role_in_use(db: Session, role: Role) -> bool:
    return db.query(User.id).filter(User.role_id == role.id).first() is not None


def _load_role(db: Session, role_id: int) -> Role:
    return db.query(Role).options(selectinload(Role.permissions)).filter(Role.id == role_id).one()


@router.get("", response_model=List[RoleRead])
def list_roles(
    db: Session = Depends(get_db),
    _: CurrentUser = Depends(get_current_user),
) -> List[Role]:
    return db.query(Role).options(selectinload(Role.permissions)).order_by(Role.name.asc()).all()


@router.post("", response_model=RoleRead, status_code=status.HTTP_201_CREATED)
def create_role(
    payload: RoleCreate,
    request: Request,
    db: Session = Depends(get_db),
    actor: CurrentUser = Depends(require_roles(ADMIN_ROLE)),
) -> Role:
    if db.query(Role.id).filter(Role.name == payload.name).first():
        raise ConflictError("Role already exists")
    role = Role(
        name=payload.name,
        name_ar=payload.name_ar,
        description=payload.description,
        description_ar=payload.description_ar,
    )
    role.permissions = _permissions_by_id(db, payload.permission_ids)
    db.add(role)
    db.commit()
    audit_request(
        db, request, actor.id, action="create", resource=RESOURCE, resource_id=role.id,
        details={"name": payload.name, "permission_ids": sorted(payload.permission_ids)},
    )
    return _load_role(db, role.id)


@router.put("/{role_id}", response_model=RoleRead)
def update_role(
    role_id: int,
    payload: RoleUpdate,
    request: Request,
    db: Session = Depends(get_db),
    actor: CurrentUser = Depends(require_roles(ADMIN_ROLE)),
) -> Role:
    role = get_role_or_404(db, role_id)
    changes = payload.model_dump(exclude_unset=True)

    new_name = changes.pop("name", None)
    if new_name and new_name != role.name:
        # Role names back authorization checks for every assigned user.
        if role.is_admin or _role_in_use(db, role):
            raise ConflictError("Role name cannot change while users are assigned to it")
        if db.query(Role.id).filter(Role.name == new_name).first():
            raise ConflictError("Role already exists")
        role.name = new_name

    permission_ids = changes.pop("permission_ids", None)
    if permission_ids is not None:
        role.permissions = _permissions_by_id(db, permission_ids)
    for field_name, value in changes.items():
        setattr(role, field_name, value)
    db.commit()

    audit_request(
        db, request, actor.id, action="update", resource=RESOURCE, resource_id=role_id,
        details=payload.model_dump(exclude_unset=True),
    )
    return _load_role(db, role_id)


@router.delete("/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_role(
    role_id: int,
    request: Request,
    db: Session = Depends(get_db),
    actor: CurrentUser = Depends(require_roles(ADMIN_ROLE)),
) -> Response:
    role = get_role_or_404(db, role_id)
    if role.is_admin or _role_in_use(db, role):
        raise ConflictError("Role is assigned to users and cannot be deleted")
    name = role.name
    db.delete(role)
    db.commit()
    audit_request(db, request, actor.id, action="delete", resource=RESOURCE, resource_id=role_id, details={"name": name})
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@permissions_router.get("", response_model=List[PermissionRead])
def list_permissions(
    db: Session = Depends(get_db),
    _: CurrentUser = Depends(get_current_user),
) -> List[Permission]:
    return db.query(Permission).order_by(Permission.resource.asc(), Permission.name.asc()).all()
