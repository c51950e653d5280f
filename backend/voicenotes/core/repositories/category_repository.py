from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence
    from uuid import UUID

    from voicenotes.core.models.category import Category


class CategoryRepository(ABC):
    """Abstract repository interface for the category vocabulary."""

    @abstractmethod
    async def list(self, *, user_id: UUID | None = None) -> Sequence[Category]:  # pragma: no cover
        """Return system categories plus those owned by ``user_id``."""

    @abstractmethod
    async def get_by_slug(self, slug: str) -> Category | None:  # pragma: no cover
        ...

    @abstractmethod
    async def create(self, category: Category) -> Category:  # pragma: no cover
        ...

    @abstractmethod
    async def increment_usage(self, slugs: Sequence[str]) -> None:  # pragma: no cover
        """Add one to ``usage_count`` of each named category; unknown names are ignored."""
