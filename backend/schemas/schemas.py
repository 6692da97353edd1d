from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, PositiveInt, field_validator

CorrespondenceType = Literal["incoming", "outgoing"]
CorrespondenceStatus = Literal["draft", "sent", "received", "under_review", "replied", "closed"]
ReviewStatus = Literal["reviewed", "not_reviewed"]
EntityType = Literal["subsidiary", "presidency", "government", "external"]


class PermissionRead(BaseModel):
    id: int
    name: str
    name_ar: Optional[str] = None
    resource: str
    action: str

    model_config = ConfigDict(from_attributes=True)


class RoleSummary(BaseModel):
    id: int
    name: str
    name_ar: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class RoleRead(RoleSummary):
    description: Optional[str] = None
    description_ar: Optional[str] = None
    permissions: List[PermissionRead] = []


class RoleCreate(BaseModel):
    name: str = Field(min_length=2, max_length=50, pattern=r"^[A-Za-z][A-Za-z0-9_]*$")
    name_ar: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = None
    description_ar: Optional[str] = None
    permission_ids: List[PositiveInt] = []

    model_config = ConfigDict(str_strip_whitespace=True)

    @field_validator("name")
    @classmethod
    def canonical_name(cls, value: str) -> str:
        return value.lower()


class RoleUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=50, pattern=r"^[A-Za-z][A-Za-z0-9_]*$")
    name_ar: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = None
    description_ar: Optional[str] = None
    permission_ids: Optional[List[PositiveInt]] = None

    model_config = ConfigDict(str_strip_whitespace=True)

    @field_validator("name")
    @classmethod
    def canonical_name(cls, value: Optional[str]) -> Optional[str]:
        return value.lower() if value else value


class UserSummary(BaseModel):
    id: int
    username: str
    full_name_ar: Optional[str] = None
    full_name_en: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class UserRead(UserSummary):
    email: str
    role_id: int
    role: Optional[RoleSummary] = None
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class UserCreate(BaseModel):
    username: str = Field(min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(min_length=6)
    full_name_ar: str = Field(min_length=1, max_length=200)
    full_name_en: str = Field(min_length=1, max_length=200)
    role_id: PositiveInt

    model_config = ConfigDict(str_strip_whitespace=True)


class UserUpdate(BaseModel):
    username: Optional[str] = Field(default=None, min_length=3, max_length=50)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(default=None, min_length=6)
    full_name_ar: Optional[str] = Field(default=None, min_length=1, max_length=200)
    full_name_en: Optional[str] = Field(default=None, min_length=1, max_length=200)
    role_id: Optional[PositiveInt] = None
    is_active: Optional[bool] = None

    model_config = ConfigDict(str_strip_whitespace=True)


class CurrentUserRead(BaseModel):
    id: int
    username: str
    email: str
    full_name_ar: Optional[str] = None
    full_name_en: Optional[str] = None
    role: Optional[str] = None
    permissions: List[str] = []


class LoginRequest(BaseModel):
    username: str = Field(min_length=3, max_length=50)
    password: str = Field(min_length=6)


class TokenRefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


class AccessToken(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class Token(AccessToken):
    refresh_token: str
    refresh_expires_in: int
    user: CurrentUserRead


class EntityBase(BaseModel):
    contact_person: Optional[str] = Field(default=None, max_length=200)
    contact_email: Optional[EmailStr] = None
    contact_phone: Optional[str] = Field(default=None, max_length=50)
    address: Optional[str] = None

    model_config = ConfigDict(str_strip_whitespace=True)


class EntityCreate(EntityBase):
    name_ar: str = Field(min_length=1, max_length=200)
    name_en: str = Field(min_length=1, max_length=200)
    type: EntityType


class EntityUpdate(EntityBase):
    name_ar: Optional[str] = Field(default=None, min_length=1, max_length=200)
    name_en: Optional[str] = Field(default=None, min_length=1, max_length=200)
    type: Optional[EntityType] = None
    is_active: Optional[bool] = None


class EntityRead(BaseModel):
    id: int
    name_ar: str
    name_en: str
    type: str
    contact_person: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    address: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CorrespondenceCreate(BaseModel):
    type: CorrespondenceType
    subject: str = Field(min_length=1, max_length=500)
    description: str = Field(min_length=1)
    sender_entity_id: PositiveInt
    receiver_entity_id: PositiveInt
    correspondence_date: datetime
    current_status: Optional[CorrespondenceStatus] = None

    model_config = ConfigDict(str_strip_whitespace=True)


class CorrespondenceUpdate(BaseModel):
    subject: Optional[str] = Field(default=None, min_length=1, max_length=500)
    description: Optional[str] = Field(default=None, min_length=1)
    sender_entity_id: Optional[PositiveInt] = None
    receiver_entity_id: Optional[PositiveInt] = None
    correspondence_date: Optional[datetime] = None
    current_status: Optional[CorrespondenceStatus] = None
    review_status: Optional[ReviewStatus] = None

    model_config = ConfigDict(str_strip_whitespace=True)


class StatusUpdate(BaseModel):
    status: CorrespondenceStatus
    notes: Optional[str] = None


class ReplyCreate(BaseModel):
    subject: str = Field(min_length=1, max_length=500)
    body: str = Field(min_length=1)
    parent_reply_id: Optional[PositiveInt] = None

    model_config = ConfigDict(str_strip_whitespace=True)


class ReplyRead(BaseModel):
    id: int
    correspondence_id: int
    parent_reply_id: Optional[int] = None
    subject: str
    body: str
    created_by: int
    creator: Optional[UserSummary] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AttachmentRead(BaseModel):
    id: int
    correspondence_id: int
    file_name: str
    original_name: str
    file_path: str
    file_size: int
    mime_type: str
    uploaded_by: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class StatusHistoryRead(BaseModel):
    id: int
    correspondence_id: int
    old_status: str
    new_status: str
    changed_by: int
    actor: Optional[UserSummary] = None
    notes: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CorrespondenceRead(BaseModel):
    id: int
    reference_number: str
    type: str
    subject: str
    description: str
    sender_entity_id: int
    receiver_entity_id: int
    correspondence_date: datetime
    review_status: str
    current_status: str
    created_by: int
    reviewed_by: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    sender_entity: Optional[EntityRead] = None
    receiver_entity: Optional[EntityRead] = None
    creator: Optional[UserSummary] = None

    model_config = ConfigDict(from_attributes=True)


class CorrespondenceDetail(CorrespondenceRead):
    attachments: List[AttachmentRead] = []
    status_history: List[StatusHistoryRead] = []
    replies: List[ReplyRead] = []


class AuditLogUser(UserSummary):
    email: str


class AuditLogRead(BaseModel):
    id: int
    user_id: Optional[int] = None
    action: str
    resource: str
    resource_id: Optional[int] = None
    details: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime
    user: Optional[AuditLogUser] = None

    model_config = ConfigDict(from_attributes=True)


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    pages: int


class CorrespondencePage(BaseModel):
    data: List[CorrespondenceRead]
    pagination: Pagination


class EntityPage(BaseModel):
    data: List[EntityRead]
    pagination: Pagination


class UserPage(BaseModel):
    data: List[UserRead]
    pagination: Pagination


class AuditLogPage(BaseModel):
    data: List[AuditLogRead]
    pagination: Pagination


class DashboardStats(BaseModel):
    total_correspondences: int
    incoming_count: int
    outgoing_count: int
    pending_review: int
    reviewed_count: int
    under_review: int
    total_entities: int
    total_users: int
    this_month_count: int
    this_week_count: int
    today_count: int
    completed_count: int
    draft_count: int
    replied_count: int
    status_breakdown: Dict[str, int]
    completion_rate: float
