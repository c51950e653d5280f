from __future__ import annotations

from uuid import UUID  # noqa: TCH003

from voicenotes.core.models.base import AppBaseModel


class AuthUser(AppBaseModel):
    """Authenticated user extracted from a verified access token."""

    id: UUID
    email: str
