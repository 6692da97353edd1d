import json
import logging
from typing import Any, Optional

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.request_context import get_client_ip, get_user_agent
from ..models.models import AuditLog

logger = logging.getLogger(__name__)


def _serialize(data: Any) -> Optional[str]:
    if data is None:
        return None
    if isinstance(data, str):
        return data
    try:
        return json.dumps(data, default=str, ensure_ascii=False)
    except TypeError:
        return str(data)


def record_audit(
    db_session: Session,
    user_id: Optional[int],
    action: str,
    resource: str,
    resource_id: Optional[int] = None,
    details: Any = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Optional[AuditLog]:
    """Append an audit row. Failures are logged and never reach the caller."""
    entry = AuditLog(
        user_id=user_id,
        action=action,
        resource=resource,
        resource_id=resource_id,
        details=_serialize(details),
        ip_address=ip_address,
        user_agent=user_agent,
    )
    try:
        db_session.add(entry)
        db_session.commit()
    except SQLAlchemyError:
        db_session.rollback()
        logger.exception("Failed to write audit log for %s:%s (%s)", resource, resource_id, action)
        return None
    return entry


def audit_request(
    db_session: Session,
    request: Request,
    user_id: Optional[int],
    action: str,
    resource: str,
    resource_id: Optional[int] = None,
    details: Any = None,
) -> Optional[AuditLog]:
    return record_audit(
        db_session,
        user_id=user_id,
        action=action,
        resource=resource,
        resource_id=resource_id,
        details=details,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
