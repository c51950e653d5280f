from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from uuid import UUID

    from voicenotes.core.models.user import User


class UserRepository(ABC):
    """Abstract repository interface for users."""

    @abstractmethod
    async def create(self, user: User) -> User:  # pragma: no cover - interface only
        """Persist a new user and return the stored entity."""

    @abstractmethod
    async def get(self, user_id: UUID) -> User | None:  # pragma: no cover
        """Fetch a user by id or return None if not found."""

    @abstractmethod
    async def get_by_email(self, email: str) -> User | None:  # pragma: no cover
        """Fetch a user by (normalized) email address."""

    @abstractmethod
    async def get_by_verification_token(self, token: str) -> User | None:  # pragma: no cover
        ...

    @abstractmethod
    async def get_by_reset_token(self, token: str) -> User | None:  # pragma: no cover
        ...

    @abstractmethod
    async def update_fields(self, user_id: UUID, changes: dict[str, Any]) -> User | None:  # pragma: no cover
        """Partially update a user and return the updated entity, or None if missing."""
