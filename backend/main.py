import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .api import (
    attachments,
    audit_logs,
    auth,
    correspondences,
    dashboard,
    entities,
    reports,
    roles,
    users,
)
from .config import Base, SessionLocal, engine, settings
from .core.errors import register_exception_handlers
from .core.logging import configure_logging
from .core.request_context import REQUEST_ID_HEADER, assign_request_id
from .core.security import SecurityHeadersMiddleware, log_security_warnings
from .seeds.roles import seed_defaults
from .services.storage import attachment_storage

configure_logging(settings.log_level, settings.log_json)
logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"

app = FastAPI(title="Correspondence Tracking API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", REQUEST_ID_HEADER],
)
app.add_middleware(SecurityHeadersMiddleware, frame_ancestors=settings.cors_origins)

register_exception_handlers(app)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = assign_request_id(request)
    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


@app.on_event("startup")
def startup() -> None:
    # Tables are created in place; there is no migration tool.
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as session:
        seed_defaults(session)
    attachment_storage.ensure_directories()
    log_security_warnings(settings.jwt_secret, settings.cors_origins)
    logger.info("Correspondence API started")


@app.get("/health", tags=["system"])
def health() -> dict:
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


app.include_router(auth.router, prefix=f"{API_PREFIX}/auth", tags=["auth"])
app.include_router(correspondences.router, prefix=f"{API_PREFIX}/correspondences", tags=["correspondences"])
app.include_router(attachments.router, prefix=f"{API_PREFIX}/attachments", tags=["attachments"])
app.include_router(entities.router, prefix=f"{API_PREFIX}/entities", tags=["entities"])
app.include_router(users.router, prefix=f"{API_PREFIX}/users", tags=["users"])
app.include_router(roles.router, prefix=f"{API_PREFIX}/roles", tags=["roles"])
app.include_router(roles.permissions_router, prefix=f"{API_PREFIX}/permissions", tags=["roles"])
app.include_router(dashboard.router, prefix=f"{API_PREFIX}/dashboard", tags=["dashboard"])
app.include_router(audit_logs.router, prefix=f"{API_PREFIX}/audit-logs", tags=["audit"])
app.include_router(reports.router, prefix=f"{API_PREFIX}/reports", tags=["reports"])
