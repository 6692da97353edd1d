from datetime import date, datetime, time, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session, joinedload

from ..api.dependencies import get_db
from ..auth.jwt import CurrentUser, require_roles
from ..constants import ADMIN_ROLE, AUDIT_LOG_PAGE_SIZE, MAX_PAGE_SIZE
from ..core.errors import NotFoundError, ValidationError
from ..models.models import AuditLog
from ..schemas.schemas import AuditLogPage, AuditLogRead
from ..utils.pagination import build_pagination, paginate

router = APIRouter()


@router.get("", response_model=AuditLogPage)
def list_audit_logs(
    action: Optional[str] = Query(None, max_length=50),
    resource: Optional[str] = Query(None, max_length=50),
    user_id: Optional[int] = Query(None, ge=1),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(AUDIT_LOG_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
    _: CurrentUser = Depends(require_roles(ADMIN_ROLE)),
) -> AuditLogPage:
    if start_date and end_date and start_date > end_date:
        raise ValidationError("start_date must not be after end_date")

    query = db.query(AuditLog).options(joinedload(AuditLog.user))
    if action:
        query = query.filter(AuditLog.action == action)
    if resource:
        query = query.filter(AuditLog.resource == resource)
    if user_id:
        query = query.filter(AuditLog.user_id == user_id)
    if start_date:
        query = query.filter(AuditLog.created_at >= datetime.combine(start_date, time.min))
    if end_date:
        query = query.filter(AuditLog.created_at < datetime.combine(end_date + timedelta(days=1), time.min))

    rows, total = paginate(query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()), page, limit)
    return AuditLogPage(data=rows, pagination=build_pagination(total, page, limit))


@router.get("/{log_id}", response_model=AuditLogRead)
def get_audit_log(
    log_id: int,
    db: Session = Depends(get_db),
    _: CurrentUser = Depends(require_roles(ADMIN_ROLE)),
) -> AuditLog:
    entry = db.query(AuditLog).options(joinedload(AuditLog.user)).filter(AuditLog.id == log_id).first()
    if not entry:
        raise NotFoundError("Audit log not found")
    return entry
