from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    text,
)
from sqlalchemy.orm import relationship as orm_relationship

from ..config import Base
from ..constants import ADMIN_ROLE

NOT_DELETED = text("deleted_at IS NULL")


def utcnow():
    return datetime.now(timezone.utc)


role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", Integer, ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
    Column("created_at", DateTime, default=utcnow, nullable=False),
)


class Role(Base):
    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), unique=True, index=True, nullable=False)
    name_ar = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    description_ar = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    permissions = orm_relationship(
        "Permission",
        secondary=role_permissions,
        back_populates="roles",
        order_by="Permission.name",
    )
    users = orm_relationship("User", back_populates="role")

    @property
    def is_admin(self) -> bool:
        return (self.name or "").lower() == ADMIN_ROLE


class Permission(Base):
    __tablename__ = "permissions"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)
    name_ar = Column(String(100), nullable=True)
    resource = Column(String(50), nullable=False)
    action = Column(String(50), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    roles = orm_relationship("Role", secondary=role_permissions, back_populates="permissions")


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        Index("uq_users_username_live", "username", unique=True, sqlite_where=NOT_DELETED, postgresql_where=NOT_DELETED),
        Index("uq_users_email_live", "email", unique=True, sqlite_where=NOT_DELETED, postgresql_where=NOT_DELETED),
    )

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), nullable=False, index=True)
    email = Column(String(100), nullable=False, index=True)
    hashed_password = Column(String, nullable=False)
    full_name_ar = Column(String(200), nullable=True)
    full_name_en = Column(String(200), nullable=True)
    role_id = Column(Integer, ForeignKey("roles.id"), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    deleted_at = Column(DateTime, nullable=True)

    role = orm_relationship("Role", back_populates="users")
    audit_logs = orm_relationship("AuditLog", back_populates="user")

    @property
    def role_name(self) -> str | None:
        return self.role.name if self.role else None

    @property
    def permission_names(self) -> list[str]:
        if not self.role:
            return []
        return sorted(permission.name for permission in self.role.permissions)


class Entity(Base):
    __tablename__ = "entities"

    id = Column(Integer, primary_key=True, index=True)
    name_ar = Column(String(200), nullable=False)
    name_en = Column(String(200), nullable=False)
    type = Column(String(20), nullable=False, index=True)
    contact_person = Column(String(200), nullable=True)
    contact_email = Column(String(100), nullable=True)
    contact_phone = Column(String(50), nullable=True)
    address = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    deleted_at = Column(DateTime, nullable=True)


class Correspondence(Base):
    __tablename__ = "correspondences"

    id = Column(Integer, primary_key=True, index=True)
    reference_number = Column(String(50), unique=True, nullable=False, index=True)
    type = Column(String(20), nullable=False, index=True)
    subject = Column(String(500), nullable=False)
    description = Column(Text, nullable=False)
    sender_entity_id = Column(Integer, ForeignKey("entities.id"), nullable=False, index=True)
    receiver_entity_id = Column(Integer, ForeignKey("entities.id"), nullable=False, index=True)
    correspondence_date = Column(DateTime, nullable=False, index=True)
    review_status = Column(String(20), default="not_reviewed", nullable=False, index=True)
    current_status = Column(String(20), default="draft", nullable=False, index=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    reviewed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    deleted_at = Column(DateTime, nullable=True)

    sender_entity = orm_relationship("Entity", foreign_keys=[sender_entity_id])
    receiver_entity = orm_relationship("Entity", foreign_keys=[receiver_entity_id])
    creator = orm_relationship("User", foreign_keys=[created_by])
    reviewer = orm_relationship("User", foreign_keys=[reviewed_by])
    attachments = orm_relationship(
        "Attachment",
        back_populates="correspondence",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Attachment.id",
    )
    status_history = orm_relationship(
        "StatusHistory",
        back_populates="correspondence",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="StatusHistory.id",
    )
    replies = orm_relationship(
        "CorrespondenceReply",
        back_populates="correspondence",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="CorrespondenceReply.id",
    )


class CorrespondenceReply(Base):
    __tablename__ = "correspondence_replies"

    id = Column(Integer, primary_key=True, index=True)
    correspondence_id = Column(
        Integer, ForeignKey("correspondences.id", ondelete="CASCADE"), nullable=False, index=True
    )
    parent_reply_id = Column(
        Integer, ForeignKey("correspondence_replies.id", ondelete="CASCADE"), nullable=True
    )
    subject = Column(String(500), nullable=False)
    body = Column(Text, nullable=False)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    correspondence = orm_relationship("Correspondence", back_populates="replies")
    creator = orm_relationship("User")
    parent = orm_relationship("CorrespondenceReply", remote_side=[id], back_populates="children")
    children = orm_relationship("CorrespondenceReply", back_populates="parent", cascade="all, delete-orphan")


class Attachment(Base):
    __tablename__ = "attachments"

    id = Column(Integer, primary_key=True, index=True)
    correspondence_id = Column(
        Integer, ForeignKey("correspondences.id", ondelete="CASCADE"), nullable=False, index=True
    )
    file_name = Column(String(255), nullable=False)
    original_name = Column(String(255), nullable=False)
    file_path = Column(String(500), nullable=False)
    file_size = Column(Integer, nullable=False)
    mime_type = Column(String(100), nullable=False)
    uploaded_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    correspondence = orm_relationship("Correspondence", back_populates="attachments")
    uploader = orm_relationship("User")


class StatusHistory(Base):
    __tablename__ = "status_history"

    id = Column(Integer, primary_key=True, index=True)
    correspondence_id = Column(
        Integer, ForeignKey("correspondences.id", ondelete="CASCADE"), nullable=False, index=True
    )
    old_status = Column(String(20), nullable=False)
    new_status = Column(String(20), nullable=False)
    changed_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    correspondence = orm_relationship("Correspondence", back_populates="status_history")
    actor = orm_relationship("User")


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    action = Column(String(50), nullable=False, index=True)
    resource = Column(String(50), nullable=False, index=True)
    resource_id = Column(Integer, nullable=True)
    details = Column(Text, nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True, nullable=False)

    user = orm_relationship("User", back_populates="audit_logs")
