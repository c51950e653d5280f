from __future__ import annotations

from typing import TYPE_CHECKING

from starlette.middleware.base import BaseHTTPMiddleware

from voicenotes.utils.logging import get_logger

if TYPE_CHECKING:
    from fastapi import Request
    from starlette.types import ASGIApp

logger = get_logger(__name__)

CSP_POLICY = (
    "default-src 'self'; "
    "script-src 'self'; "
    "style-src 'self' 'unsafe-inline'; "
    "img-src 'self' data: https:; "
    "media-src 'self' blob:; "
    "connect-src 'self' https://*.supabase.co; "
    "frame-ancestors 'none';"
)


class SecurityMiddleware(BaseHTTPMiddleware):
    """Adds security headers; logs hits on the auth endpoints."""

    def __init__(self, app: ASGIApp, auth_prefix: str = "/api/auth"):
        super().__init__(app)
        self._auth_prefix = auth_prefix

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = CSP_POLICY

        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = "max-age=15552000; includeSubDomains"

        # Audio responses set their own long-lived caching
        if "cache-control" not in response.headers:
            response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
            response.headers["Pragma"] = "no-cache"

        if request.url.path.startswith(self._auth_prefix):
            client_ip = request.client.host if request.client else "unknown"
            user_agent = request.headers.get("user-agent", "unknown")

            logger.info(
                "Auth endpoint accessed",
                extra={
                    "path": request.url.path,
                    "method": request.method,
                    "ip": client_ip,
                    "user_agent": user_agent[:100],
                    "status": response.status_code,
                },
            )

        return response
