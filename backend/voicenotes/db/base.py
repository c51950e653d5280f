from __future__ import annotations

from typing import TYPE_CHECKING

from supabase import Client, create_client
from supabase.lib.client_options import ClientOptions

from voicenotes.utils.logging import get_logger

if TYPE_CHECKING:
    from voicenotes.config import Settings

logger = get_logger(__name__)


def create_database_client(settings: Settings) -> Client:
    """Service-role PostgREST client shared by every repository.

    Tokens are issued by this API rather than Supabase Auth, so RLS cannot see
    the caller; owner scoping happens in the repository queries instead.
    """
    if not settings.supabase_url or not settings.supabase_service_role_key:
        raise RuntimeError("APP_SUPABASE_URL and APP_SUPABASE_SERVICE_ROLE_KEY must be set")
    logger.info("Connecting to Supabase", extra={"url": settings.supabase_url})
    return create_client(
        settings.supabase_url,
        settings.supabase_service_role_key,
        options=ClientOptions(
            auto_refresh_token=False,
            persist_session=False,
            postgrest_client_timeout=settings.supabase_timeout,
        ),
    )
