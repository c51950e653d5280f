from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime  # noqa: TCH003
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Sequence
    from uuid import UUID

    from voicenotes.core.models.note import Note
    from voicenotes.core.schemas.note_search import NoteListQuery, NoteSearchQuery


class NoteRepository(ABC):
    """Abstract repository interface for notes.

    Every read and write other than ``create`` is scoped by owner; a note that
    belongs to someone else behaves exactly like a missing one.
    """

    @abstractmethod
    async def create(self, note: Note) -> Note:  # pragma: no cover - interface only
        """Persist a new note and return the stored entity."""

    @abstractmethod
    async def get(self, note_id: UUID, *, user_id: UUID | None = None) -> Note | None:  # pragma: no cover
        """Fetch a note by id, optionally restricted to an owner."""

    @abstractmethod
    async def list_page(self, user_id: UUID, query: NoteListQuery) -> tuple[Sequence[Note], int]:  # pragma: no cover
        """Return one page of the owner's notes and the total matching count."""

    @abstractmethod
    async def search(self, user_id: UUID, query: NoteSearchQuery) -> tuple[Sequence[Note], int]:  # pragma: no cover
        """Keyword and filter search; results are ordered newest first."""

    @abstractmethod
    async def list_for_user(
        self,
        user_id: UUID,
        *,
        archived: bool | None = False,
        created_after: datetime | None = None,
        limit: int | None = None,
    ) -> Sequence[Note]:  # pragma: no cover
        """Return the owner's notes matching the filters, newest first, at most ``limit`` of them."""

    @abstractmethod
    async def update_fields(
        self, note_id: UUID, changes: dict[str, Any], *, user_id: UUID | None = None
    ) -> Note | None:  # pragma: no cover
        """Partially update a note and return the updated entity, or None if missing."""

    @abstractmethod
    async def delete(self, note_id: UUID, *, user_id: UUID | None = None) -> bool:  # pragma: no cover
        """Delete a note. Return True if a row was removed."""
