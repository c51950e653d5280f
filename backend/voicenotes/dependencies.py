from __future__ import annotations

import math
import time
from typing import TYPE_CHECKING

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from voicenotes.core.errors import AuthenticationError
from voicenotes.core.services.email_service import verify_webhook_signature
from voicenotes.utils.logging import get_logger

if TYPE_CHECKING:
    from voicenotes.config import Settings
    from voicenotes.core.container import ServiceContainer
    from voicenotes.core.models.user import User
    from voicenotes.core.services.auth_service import AuthService
    from voicenotes.core.services.category_service import CategoryService
    from voicenotes.core.services.note_service import NoteService
    from voicenotes.core.services.pipeline import InboundPipeline
    from voicenotes.core.services.storage_service import StorageBackend

logger = get_logger(__name__)

# Use auto_error=False to handle missing tokens gracefully
http_bearer = HTTPBearer(auto_error=False)

SIGNATURE_HEADER = "X-Postmark-Signature"

# In-memory rate limiting
_login_attempts: dict[str, list[float]] = {}


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_settings(container: ServiceContainer = Depends(get_container)) -> Settings:
    return container.settings


def get_auth_service(container: ServiceContainer = Depends(get_container)) -> AuthService:
    return container.auth_service


def get_note_service(container: ServiceContainer = Depends(get_container)) -> NoteService:
    return container.note_service


def get_category_service(container: ServiceContainer = Depends(get_container)) -> CategoryService:
    return container.category_service


def get_storage(container: ServiceContainer = Depends(get_container)) -> StorageBackend:
    return container.storage


def get_inbound_pipeline(container: ServiceContainer = Depends(get_container)) -> InboundPipeline:
    return container.pipeline


def _is_rate_limited(identifier: str, settings: Settings) -> bool:
    """Check if the identifier is rate limited."""
    if not settings.enable_rate_limiting:
        return False
    now = time.time()
    window_start = now - settings.login_attempt_window
    attempts = [attempt for attempt in _login_attempts.get(identifier, []) if attempt > window_start]
    if len(attempts) >= settings.max_login_attempts:
        _login_attempts[identifier] = attempts
        return True
    attempts.append(now)
    _login_attempts[identifier] = attempts
    return False


def rate_limit_by_ip(request: Request, operation: str = "default") -> None:
    """Rate limiting helper used by the auth endpoints.

    Args:
        request: FastAPI request object
        operation: Operation identifier for rate limiting (e.g., "login", "register")

    Raises:
        HTTPException: If rate limit is exceeded
    """
    settings = get_container(request).settings
    client_ip = request.client.host if request.client else "unknown"
    identifier = f"{operation}:{client_ip}"
    if not _is_rate_limited(identifier, settings):
        return

    logger.warning(f"Rate limited {operation} attempt", extra={"ip": client_ip})

    now = time.time()
    window_seconds = settings.login_attempt_window
    attempts = _login_attempts.get(identifier, [])
    earliest_attempt = min(attempts) if attempts else now
    seconds_until_reset = max(1, math.ceil(window_seconds - (now - earliest_attempt)))

    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail=f"Too many {operation} attempts. Please try again later.",
        headers={
            "Retry-After": str(seconds_until_reset),
            "RateLimit-Limit": str(settings.max_login_attempts),
            "RateLimit-Remaining": "0",
            "RateLimit-Reset": str(seconds_until_reset),
        },
    )


def reset_rate_limits() -> None:
    _login_attempts.clear()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Security(http_bearer),
    auth_service: AuthService = Depends(get_auth_service),
) -> User:
    """Validate the bearer JWT and return the user it belongs to."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    token = credentials.credentials
    if not token or len(token.split(".")) != 3:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token format",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return await auth_service.authenticate(token)
    except AuthenticationError as err:
        logger.warning("JWT validation failed", extra={"error_type": type(err).__name__, "error": str(err)})
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token is invalid or expired",
            headers={"WWW-Authenticate": "Bearer"},
        ) from err


async def verify_inbound_signature(request: Request, settings: Settings = Depends(get_settings)) -> bytes:
    """Check the webhook HMAC over the raw body and hand the body to the handler."""
    body = await request.body()
    if not settings.webhook_signature_required:
        logger.warning("Webhook signature check disabled; accepting unsigned inbound email")
        return body

    signature = request.headers.get(SIGNATURE_HEADER)
    if not verify_webhook_signature(body, signature, settings.postmark_webhook_token):
        client_ip = request.client.host if request.client else "unknown"
        logger.warning("Invalid webhook signature", extra={"ip": client_ip, "has_signature": bool(signature)})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook signature")
    return body
