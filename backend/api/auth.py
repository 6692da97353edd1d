import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session, joinedload

from ..api.dependencies import get_db
from ..auth.jwt import (
    REFRESH_TOKEN,
    CurrentUser,
    create_access_token,
    create_refresh_token,
    decode_token,
    get_current_user,
    load_active_user,
    verify_password,
)
from ..config import settings
from ..core.errors import UnauthorizedError
from ..core.rate_limit import rate_limit_dependency
from ..models.models import Role, User, utcnow
from ..schemas.schemas import AccessToken, CurrentUserRead, LoginRequest, Token, TokenRefreshRequest
from ..services.audit import audit_request

logger = logging.getLogger(__name__)

router = APIRouter()

login_rate_limit = rate_limit_dependency(
    "login", settings.login_rate_limit, settings.login_rate_window_seconds
)


def _current_user_read(user: User) -> CurrentUserRead:
    return CurrentUserRead(
        id=user.id,
        username=user.username,
        email=user.email,
        full_name_ar=user.full_name_ar,
        full_name_en=user.full_name_en,
        role=user.role_name,
        permissions=user.permission_names,
    )


@router.post("/login", response_model=Token, dependencies=[Depends(login_rate_limit)])
def login(payload: LoginRequest, request: Request, db: Session = Depends(get_db)) -> Token:
    user = (
        db.query(User)
        .options(joinedload(User.role).selectinload(Role.permissions))
        .filter(User.username == payload.username, User.deleted_at.is_(None))
        .first()
    )
    if not user or not user.is_active or not verify_password(payload.password, user.hashed_password):
        logger.info("Failed login attempt for %s", payload.username)
        raise UnauthorizedError("Invalid credentials")

    user.last_login = utcnow()
    db.commit()

    audit_request(db, request, user.id, action="login", resource="auth", resource_id=user.id)

    return Token(
        access_token=create_access_token(user.id),
        refresh_token=create_refresh_token(user.id),
        token_type="bearer",
        expires_in=settings.access_token_expire_minutes * 60,
        refresh_expires_in=settings.refresh_token_expire_minutes * 60,
        user=_current_user_read(user),
    )


@router.post("/refresh", response_model=AccessToken)
def refresh_token(payload: TokenRefreshRequest, db: Session = Depends(get_db)) -> AccessToken:
    user_id = decode_token(payload.refresh_token, REFRESH_TOKEN)
    user = load_active_user(db, user_id)
    if user is None:
        raise UnauthorizedError("Invalid token")
    return AccessToken(
        access_token=create_access_token(user.id),
        token_type="bearer",
        expires_in=settings.access_token_expire_minutes * 60,
    )


@router.get("/me", response_model=CurrentUserRead)
def read_current_user(
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUserRead:
    user = load_active_user(db, current_user.id)
    if user is None:
        raise UnauthorizedError("User not found or inactive")
    return _current_user_read(user)
