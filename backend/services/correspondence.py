from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload, selectinload

from ..constants import (
    CORRESPONDENCE_STATUSES,
    INITIAL_STATUS_SENTINEL,
    REFERENCE_PREFIXES,
    REPLY_STATUS_NOTE,
)
from ..core.errors import ConflictError, NotFoundError, ValidationError
from ..models.models import (
    Attachment,
    Correspondence,
    CorrespondenceReply,
    Entity,
    StatusHistory,
    User,
    utcnow,
)
from ..schemas.schemas import (
    CorrespondenceCreate,
    CorrespondenceUpdate,
    DashboardStats,
    ReplyCreate,
)
from ..utils.pagination import paginate

logger = logging.getLogger(__name__)

REFERENCE_ATTEMPTS = 5


def generate_reference_number(correspondence_type: str, now: Optional[datetime] = None) -> str:
    """``W`` (incoming) or ``S`` (outgoing), the four digit year, four random digits."""
    prefix = REFERENCE_PREFIXES.get(correspondence_type)
    if prefix is None:
        raise ValidationError(f"Unknown correspondence type '{correspondence_type}'")
    year = (now or datetime.now(timezone.utc)).year
    return f"{prefix}{year}{secrets.randbelow(10000):04d}"


def _unique_reference_number(db: Session, correspondence_type: str, now: Optional[datetime] = None) -> str:
    for _ in range(REFERENCE_ATTEMPTS):
        candidate = generate_reference_number(correspondence_type, now)
        # Soft-deleted rows keep their reference numbers.
        taken = db.query(Correspondence.id).filter(Correspondence.reference_number == candidate).first()
        if taken is None:
            return candidate
        logger.info("Reference number %s already taken, retrying", candidate)
    raise ConflictError("Could not allocate a unique reference number")


def _as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _ensure_entity(db: Session, entity_id: int, label: str) -> Entity:
    entity = db.query(Entity).filter(Entity.id == entity_id, Entity.deleted_at.is_(None)).first()
    if entity is None:
        raise NotFoundError(f"{label} entity not found")
    return entity


def _append_history(
    db: Session,
    correspondence: Correspondence,
    old_status: str,
    new_status: str,
    actor_id: int,
    notes: Optional[str] = None,
) -> StatusHistory:
    entry = StatusHistory(
        correspondence_id=correspondence.id,
        old_status=old_status,
        new_status=new_status,
        changed_by=actor_id,
        notes=notes,
    )
    db.add(entry)
    logger.info(
        "Correspondence %s status %s -> %s by user %s",
        correspondence.reference_number,
        old_status,
        new_status,
        actor_id,
    )
    return entry


def _live_correspondence(db: Session, correspondence_id: int) -> Correspondence:
    correspondence = (
        db.query(Correspondence)
        .filter(Correspondence.id == correspondence_id, Correspondence.deleted_at.is_(None))
        .first()
    )
    if correspondence is None:
        raise NotFoundError("Correspondence not found")
    return correspondence


def _commit(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("Correspondence conflicts with an existing record") from exc


def get_correspondence(db: Session, correspondence_id: int) -> Correspondence:
    """Load a live correspondence with entities, creator, attachments, history and replies."""
    correspondence = (
        db.query(Correspondence)
        .options(
            joinedload(Correspondence.sender_entity),
            joinedload(Correspondence.receiver_entity),
            joinedload(Correspondence.creator),
            selectinload(Correspondence.attachments),
            selectinload(Correspondence.status_history).joinedload(StatusHistory.actor),
            selectinload(Correspondence.replies).joinedload(CorrespondenceReply.creator),
        )
        .filter(Correspondence.id == correspondence_id, Correspondence.deleted_at.is_(None))
        .first()
    )
    if correspondence is None:
        raise NotFoundError("Correspondence not found")
    return correspondence


def create_correspondence(db: Session, payload: CorrespondenceCreate, actor_id: int) -> Correspondence:
    _ensure_entity(db, payload.sender_entity_id, "Sender")
    _ensure_entity(db, payload.receiver_entity_id, "Receiver")
    initial_status = payload.current_status or "draft"

    correspondence = Correspondence(
        reference_number=_unique_reference_number(db, payload.type),
        type=payload.type,
        subject=payload.subject,
        description=payload.description,
        sender_entity_id=payload.sender_entity_id,
        receiver_entity_id=payload.receiver_entity_id,
        correspondence_date=_as_naive_utc(payload.correspondence_date),
        current_status=initial_status,
        review_status="not_reviewed",
        created_by=actor_id,
    )
    db.add(correspondence)
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("Reference number already exists") from exc
    _append_history(db, correspondence, INITIAL_STATUS_SENTINEL, initial_status, actor_id)
    _commit(db)
    return get_correspondence(db, correspondence.id)


def update_correspondence(
    db: Session, correspondence_id: int, patch: CorrespondenceUpdate, actor_id: int
) -> Correspondence:
    correspondence = _live_correspondence(db, correspondence_id)
    changes = patch.model_dump(exclude_unset=True, exclude_none=True)

    if "sender_entity_id" in changes:
        _ensure_entity(db, changes["sender_entity_id"], "Sender")
    if "receiver_entity_id" in changes:
        _ensure_entity(db, changes["receiver_entity_id"], "Receiver")
    if "correspondence_date" in changes:
        changes["correspondence_date"] = _as_naive_utc(changes["correspondence_date"])

    new_status = changes.pop("current_status", None)
    new_review = changes.pop("review_status", None)

    for field_name, value in changes.items():
        setattr(correspondence, field_name, value)

    if new_review is not None and new_review != correspondence.review_status:
        correspondence.review_status = new_review
        if new_review == "reviewed":
            correspondence.reviewed_by = actor_id
            correspondence.reviewed_at = utcnow()
        else:
            correspondence.reviewed_by = None
            correspondence.reviewed_at = None

    if new_status is not None and new_status != correspondence.current_status:
        _append_history(db, correspondence, correspondence.current_status, new_status, actor_id)
        correspondence.current_status = new_status

    _commit(db)
    return get_correspondence(db, correspondence.id)


def set_status(
    db: Session, correspondence_id: int, status: str, notes: Optional[str], actor_id: int
) -> Correspondence:
    """Explicit transition; history is appended even when the status is unchanged."""
    correspondence = _live_correspondence(db, correspondence_id)
    _append_history(db, correspondence, correspondence.current_status, status, actor_id, notes)
    correspondence.current_status = status
    _commit(db)
    return get_correspondence(db, correspondence.id)


def mark_reviewed(db: Session, correspondence_id: int, actor_id: int) -> Correspondence:
    correspondence = _live_correspondence(db, correspondence_id)
    correspondence.review_status = "reviewed"
    correspondence.reviewed_by = actor_id
    correspondence.reviewed_at = utcnow()
    _commit(db)
    logger.info("Correspondence %s reviewed by user %s", correspondence.reference_number, actor_id)
    return get_correspondence(db, correspondence.id)


def add_reply(
    db: Session, correspondence_id: int, payload: ReplyCreate, actor_id: int
) -> CorrespondenceReply:
    correspondence = _live_correspondence(db, correspondence_id)
    if payload.parent_reply_id is not None:
        parent = (
            db.query(CorrespondenceReply)
            .filter(
                CorrespondenceReply.id == payload.parent_reply_id,
                CorrespondenceReply.correspondence_id == correspondence.id,
            )
            .first()
        )
        if parent is None:
            raise NotFoundError("Parent reply not found")

    reply = CorrespondenceReply(
        correspondence_id=correspondence.id,
        parent_reply_id=payload.parent_reply_id,
        subject=payload.subject,
        body=payload.body,
        created_by=actor_id,
    )
    db.add(reply)
    prior_status = correspondence.current_status
    correspondence.current_status = "replied"
    _append_history(db, correspondence, prior_status, "replied", actor_id, REPLY_STATUS_NOTE)
    _commit(db)
    return (
        db.query(CorrespondenceReply)
        .options(joinedload(CorrespondenceReply.creator))
        .filter(CorrespondenceReply.id == reply.id)
        .one()
    )


def delete_correspondence(db: Session, correspondence_id: int) -> Correspondence:
    correspondence = _live_correspondence(db, correspondence_id)
    correspondence.deleted_at = utcnow()
    _commit(db)
    logger.info("Correspondence %s soft-deleted", correspondence.reference_number)
    return correspondence


def get_attachment(db: Session, attachment_id: int) -> Attachment:
    attachment = (
        db.query(Attachment)
        .join(Correspondence, Attachment.correspondence_id == Correspondence.id)
        .filter(Attachment.id == attachment_id, Correspondence.deleted_at.is_(None))
        .first()
    )
    if attachment is None:
        raise NotFoundError("Attachment not found")
    return attachment


@dataclass
class DateRange:
    start: Optional[date] = None
    end: Optional[date] = None

    def __post_init__(self) -> None:
        if self.start and self.end and self.start > self.end:
            raise ValidationError("start_date must not be after end_date")


@dataclass
class CorrespondenceFilters:
    type: Optional[str] = None
    status: Optional[str] = None
    review_status: Optional[str] = None
    sender_entity_id: Optional[int] = None
    receiver_entity_id: Optional[int] = None
    date_range: DateRange = field(default_factory=DateRange)
    search: Optional[str] = None
    include_deleted: bool = False


def like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def build_correspondence_conditions(filters: CorrespondenceFilters) -> List:
    conditions = []
    if not filters.include_deleted:
        conditions.append(Correspondence.deleted_at.is_(None))
    if filters.type:
        conditions.append(Correspondence.type == filters.type)
    if filters.status:
        conditions.append(Correspondence.current_status == filters.status)
    if filters.review_status:
        conditions.append(Correspondence.review_status == filters.review_status)
    if filters.sender_entity_id:
        conditions.append(Correspondence.sender_entity_id == filters.sender_entity_id)
    if filters.receiver_entity_id:
        conditions.append(Correspondence.receiver_entity_id == filters.receiver_entity_id)
    if filters.date_range.start:
        conditions.append(Correspondence.correspondence_date >= datetime.combine(filters.date_range.start, time.min))
    if filters.date_range.end:
        # Whole end day is included.
        upper = datetime.combine(filters.date_range.end + timedelta(days=1), time.min)
        conditions.append(Correspondence.correspondence_date < upper)
    search = (filters.search or "").strip()
    if search:
        pattern = like_pattern(search)
        conditions.append(
            or_(
                Correspondence.subject.ilike(pattern, escape="\\"),
                Correspondence.description.ilike(pattern, escape="\\"),
                Correspondence.reference_number.ilike(pattern, escape="\\"),
            )
        )
    return conditions


def correspondence_query(db: Session, filters: CorrespondenceFilters):
    return (
        db.query(Correspondence)
        .options(
            joinedload(Correspondence.sender_entity),
            joinedload(Correspondence.receiver_entity),
            joinedload(Correspondence.creator),
        )
        .filter(*build_correspondence_conditions(filters))
        .order_by(Correspondence.created_at.desc(), Correspondence.id.desc())
    )


def list_correspondences(
    db: Session, filters: CorrespondenceFilters, page: int = 1, limit: int = 10
) -> Tuple[List[Correspondence], int]:
    return paginate(correspondence_query(db, filters), page, limit)


def period_boundaries(now: Optional[datetime] = None) -> Tuple[datetime, datetime, datetime]:
    """Local midnight today, seven days before that, and the first of the month, as naive UTC."""
    local_now = (now or datetime.now(timezone.utc)).astimezone()
    today = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
    week = today - timedelta(days=7)
    month = today.replace(day=1)
    return _as_naive_utc(today), _as_naive_utc(week), _as_naive_utc(month)


def compute_dashboard_stats(db: Session, now: Optional[datetime] = None) -> DashboardStats:
    live = Correspondence.deleted_at.is_(None)
    base = db.query(Correspondence).filter(live)
    total = base.count()

    by_type = dict(
        db.query(Correspondence.type, func.count(Correspondence.id)).filter(live).group_by(Correspondence.type).all()
    )
    by_status = dict(
        db.query(Correspondence.current_status, func.count(Correspondence.id))
        .filter(live)
        .group_by(Correspondence.current_status)
        .all()
    )
    by_review = dict(
        db.query(Correspondence.review_status, func.count(Correspondence.id))
        .filter(live)
        .group_by(Correspondence.review_status)
        .all()
    )

    today_start, week_start, month_start = period_boundaries(now)
    today_count = base.filter(Correspondence.created_at >= today_start).count()
    week_count = base.filter(Correspondence.created_at >= week_start).count()
    month_count = base.filter(Correspondence.created_at >= month_start).count()

    total_entities = db.query(Entity).filter(Entity.deleted_at.is_(None), Entity.is_active.is_(True)).count()
    total_users = db.query(User).filter(User.deleted_at.is_(None), User.is_active.is_(True)).count()

    breakdown = {status: by_status.get(status, 0) for status in CORRESPONDENCE_STATUSES}
    completed = breakdown["closed"]
    completion_rate = round(completed / total * 100, 1) if total else 0.0

    return DashboardStats(
        total_correspondences=total,
        incoming_count=by_type.get("incoming", 0),
        outgoing_count=by_type.get("outgoing", 0),
        pending_review=by_review.get("not_reviewed", 0),
        reviewed_count=by_review.get("reviewed", 0),
        under_review=breakdown["under_review"],
        total_entities=total_entities,
        total_users=total_users,
        this_month_count=month_count,
        this_week_count=week_count,
        today_count=today_count,
        completed_count=completed,
        draft_count=breakdown["draft"],
        replied_count=breakdown["replied"],
        status_breakdown=breakdown,
        completion_rate=completion_rate,
    )
