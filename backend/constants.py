ADMIN_ROLE = "admin"

# (name, name_ar, description, description_ar)
DEFAULT_ROLES = [
    ("admin", "مدير", "Full system administrator", "مدير النظام الكامل"),
    ("reviewer", "مراجع", "Can review and approve correspondences", "يمكنه مراجعة والموافقة على المكاتبات"),
    ("employee", "موظف", "Can create and manage correspondences", "يمكنه إنشاء وإدارة المكاتبات"),
    ("viewer", "مشاهد", "Read-only access", "صلاحية القراءة فقط"),
]

# (name, name_ar)
DEFAULT_PERMISSIONS = [
    ("correspondence:create", "إنشاء مكاتبة"),
    ("correspondence:read", "قراءة مكاتبة"),
    ("correspondence:update", "تعديل مكاتبة"),
    ("correspondence:delete", "حذف مكاتبة"),
    ("correspondence:review", "مراجعة مكاتبة"),
    ("user:create", "إنشاء مستخدم"),
    ("user:read", "قراءة مستخدم"),
    ("user:update", "تعديل مستخدم"),
    ("user:delete", "حذف مستخدم"),
    ("entity:create", "إنشاء جهة"),
    ("entity:read", "قراءة جهة"),
    ("entity:update", "تعديل جهة"),
    ("entity:delete", "حذف جهة"),
    ("report:read", "قراءة التقارير"),
]

# "*" grants every permission defined above.
DEFAULT_ROLE_PERMISSIONS = {
    "admin": ["*"],
    "reviewer": ["correspondence:read", "correspondence:review", "report:read", "entity:read"],
    "employee": ["correspondence:create", "correspondence:read", "correspondence:update", "entity:read"],
    "viewer": ["correspondence:read", "entity:read"],
}

CORRESPONDENCE_TYPES = ("incoming", "outgoing")
CORRESPONDENCE_STATUSES = ("draft", "sent", "received", "under_review", "replied", "closed")
REVIEW_STATUSES = ("reviewed", "not_reviewed")
ENTITY_TYPES = ("subsidiary", "presidency", "government", "external")

INITIAL_STATUS_SENTINEL = "none"
REPLY_STATUS_NOTE = "Reply added"

REFERENCE_PREFIXES = {"incoming": "W", "outgoing": "S"}

ATTACHMENT_DIRECTIONS = ("incoming", "outgoing")
ALLOWED_ATTACHMENT_MIME_TYPES = frozenset(
    {
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "image/jpeg",
        "image/png",
    }
)

DEFAULT_PAGE_SIZE = 10
AUDIT_LOG_PAGE_SIZE = 20
MAX_PAGE_SIZE = 1000
