from __future__ import annotations

from typing import TYPE_CHECKING

from openai import AsyncOpenAI

if TYPE_CHECKING:
    from voicenotes.config import Settings


def create_openai_client(settings: Settings) -> AsyncOpenAI:
    """Async client for the enrichment calls; retries are left to the SDK."""
    return AsyncOpenAI(
        api_key=settings.openai_api_key,
        timeout=settings.openai_timeout,
        max_retries=settings.openai_max_retries,
    )
