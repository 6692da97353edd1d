import logging
from typing import Optional, Sequence

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

INSECURE_DEFAULT_SECRET = "dev-secret-please-change"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Attach common security headers to every response.

    Attachment downloads are embedded by the front-end viewer, so framing is
    restricted to the configured origins instead of being denied outright.
    """

    def __init__(
        self,
        app,
        *,
        frame_ancestors: Sequence[str] = (),
        enable_hsts: bool = True,
        csp: Optional[str] = None,
    ) -> None:
        super().__init__(app)
        self.frame_ancestors = " ".join(["'self'", *frame_ancestors])
        self.enable_hsts = enable_hsts
        self.csp = csp

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        response = await call_next(request)
        headers = response.headers

        headers.setdefault("X-Content-Type-Options", "nosniff")
        headers.setdefault("Referrer-Policy", "same-origin")
        headers.setdefault("Cross-Origin-Resource-Policy", "cross-origin")
        if request.url.path.endswith("/download"):
            headers.setdefault("Content-Security-Policy", f"frame-ancestors {self.frame_ancestors}")
        else:
            headers.setdefault("X-Frame-Options", "SAMEORIGIN")
            if self.csp:
                headers.setdefault("Content-Security-Policy", self.csp)
        if self.enable_hsts and request.url.scheme == "https":
            headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")

        return response


def log_security_warnings(jwt_secret: str, cors_origins: Sequence[str]) -> None:
    if jwt_secret == INSECURE_DEFAULT_SECRET:
        logger.warning("JWT secret is using the insecure default; set JWT_SECRET in the environment.")
    if "*" in cors_origins:
        logger.warning("CORS allows any origin; restrict CORS_ORIGINS outside development.")
