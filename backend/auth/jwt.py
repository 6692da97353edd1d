from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Generator, Optional

from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session, joinedload, selectinload

from ..config import SessionLocal, settings
from ..constants import ADMIN_ROLE
from ..core.errors import ForbiddenError, UnauthorizedError
from ..models.models import Role, User

ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    """Identity resolved from a bearer token for the duration of one request."""

    id: int
    username: str
    email: str
    role: str
    permissions: frozenset = field(default_factory=frozenset)

    @property
    def is_admin(self) -> bool:
        return self.role.lower() == ADMIN_ROLE

    def has_permission(self, permission: str) -> bool:
        return is_authorized(self, permission)

    def has_any_role(self, *role_names: str) -> bool:
        targets = {name.lower() for name in role_names}
        return self.role.lower() in targets


def is_authorized(identity: CurrentUser, permission: str) -> bool:
    return identity.is_admin or permission in identity.permissions


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def _create_token(user_id: int, token_type: str, expires_minutes: int) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "type": token_type,
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_access_token(user_id: int) -> str:
    return _create_token(user_id, ACCESS_TOKEN, settings.access_token_expire_minutes)


def create_refresh_token(user_id: int) -> str:
    return _create_token(user_id, REFRESH_TOKEN, settings.refresh_token_expire_minutes)


def decode_token(token: str, expected_type: str = ACCESS_TOKEN) -> int:
    """Verify signature, expiry and token class; return the user id."""
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise UnauthorizedError("Invalid token") from exc

    if payload.get("type") != expected_type:
        raise UnauthorizedError("Invalid token")
    subject = payload.get("sub")
    try:
        return int(subject)
    except (TypeError, ValueError) as exc:
        raise UnauthorizedError("Invalid token") from exc


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def load_active_user(db: Session, user_id: int) -> Optional[User]:
    user = (
        db.query(User)
        .options(joinedload(User.role).selectinload(Role.permissions))
        .filter(User.id == user_id, User.deleted_at.is_(None))
        .first()
    )
    if user is None or not user.is_active:
        return None
    return user


def build_identity(user: User) -> CurrentUser:
    return CurrentUser(
        id=user.id,
        username=user.username,
        email=user.email,
        role=user.role_name or "",
        permissions=frozenset(user.permission_names),
    )


def resolve_identity(db: Session, token: str) -> CurrentUser:
    user_id = decode_token(token, ACCESS_TOKEN)
    user = load_active_user(db, user_id)
    if user is None:
        raise UnauthorizedError("User not found or inactive")
    return build_identity(user)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    db: Session = Depends(get_db),
) -> CurrentUser:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise UnauthorizedError("No token provided")
    return resolve_identity(db, credentials.credentials)


def require_permission(permission: str):
    def permission_checker(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.has_permission(permission):
            return user
        raise ForbiddenError("Insufficient permissions")

    return permission_checker


def require_roles(*allowed_roles: str):
    allowed = set(allowed_roles)

    def role_checker(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if not allowed:
            return user
        if user.has_any_role(*allowed):
            return user
        raise ForbiddenError("Insufficient role privileges")

    return role_checker
