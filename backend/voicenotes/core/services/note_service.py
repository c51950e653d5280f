from __future__ import annotations

from collections import Counter
from datetime import timedelta
from typing import TYPE_CHECKING, Any
from uuid import UUID

from voicenotes.core.errors import NotionSyncError
from voicenotes.core.models.base import utcnow
from voicenotes.core.models.note import NoteStatus, normalize_labels
from voicenotes.core.schemas.note_search import NotePage
from voicenotes.core.schemas.stats import (
    CategoryCount,
    NoteStats,
    RecentActivity,
    RecentNoteRef,
    StatsOverview,
)
from voicenotes.utils.logging import get_logger

if TYPE_CHECKING:
    from voicenotes.core.models.note import Note
    from voicenotes.core.models.user import User
    from voicenotes.core.repositories.note_repository import NoteRepository
    from voicenotes.core.schemas.note_search import NoteListQuery, NoteSearchQuery
    from voicenotes.core.services.notion_service import NotionService
    from voicenotes.core.services.pipeline import NoteProcessor
    from voicenotes.core.services.storage_service import StorageBackend

logger = get_logger(__name__)

EDITABLE_FIELDS = frozenset({"title", "tags", "categories", "summary"})
RECENT_WINDOW = timedelta(days=7)
RECENT_LIMIT = 5


class NoteService:
    """Service for managing notes with owner-scoped access."""

    def __init__(
        self,
        repo: NoteRepository,
        *,
        storage: StorageBackend,
        processor: NoteProcessor,
        notion: NotionService,
    ) -> None:
        self._repo = repo
        self._storage = storage
        self._processor = processor
        self._notion = notion

    async def list_notes(self, user_id: UUID, query: NoteListQuery) -> NotePage:
        notes, total = await self._repo.list_page(user_id, query)
        return NotePage(notes=list(notes), total=total, page=query.page, limit=query.limit)

    async def search_notes(self, user_id: UUID, query: NoteSearchQuery) -> NotePage:
        if query.start_date and query.end_date and query.start_date > query.end_date:
            raise ValueError("startDate must be before endDate")
        notes, total = await self._repo.search(user_id, query)
        return NotePage(notes=list(notes), total=total, page=query.page, limit=query.limit)

    async def get_note(self, note_id: str | UUID, user_id: UUID) -> Note | None:
        """Return note if it exists and belongs to the user; otherwise None."""
        try:
            note_uuid = UUID(str(note_id))
        except ValueError:
            return None
        return await self._repo.get(note_uuid, user_id=user_id)

    async def update_note(self, note_id: str | UUID, changes: dict[str, Any], user: User) -> Note | None:
        """Apply editable fields and mirror them to Notion when the note is synced."""
        existing = await self.get_note(note_id, user.id)
        if not existing:
            return None

        sanitized: dict[str, Any] = {}
        for key, value in changes.items():
            if key not in EDITABLE_FIELDS:
                continue
            if key == "title":
                value = (value or "").strip()
                if not value:
                    raise ValueError("Title cannot be empty")
            elif key == "summary":
                value = (value or "").strip() or None
            else:
                value = normalize_labels(value)
            sanitized[key] = value

        updated = await self._repo.update_fields(existing.id, sanitized, user_id=user.id)
        if updated and updated.notion_page_id and user.notion_enabled:
            updated = await self._processor.mirror_quietly(updated, user)
        return updated

    async def delete_note(self, note_id: str | UUID, user: User) -> bool:
        """Delete a user's note, archiving its Notion page and audio blob best-effort."""
        note = await self.get_note(note_id, user.id)
        if not note:
            return False

        if note.notion_page_id:
            credentials = self._notion.credentials_for(user)
            if credentials is not None:
                try:
                    await self._notion.archive_page(note.notion_page_id, credentials)
                except NotionSyncError as err:
                    logger.warning("Notion archive failed", extra={"note_id": str(note.id), "error": str(err)})

        deleted = await self._repo.delete(note.id, user_id=user.id)
        if deleted:
            await self._storage.delete(note.audio_locator)
            logger.info("Note deleted", extra={"note_id": str(note.id), "user_id": str(user.id)})
        return deleted

    async def toggle_favorite(self, note_id: str | UUID, user_id: UUID) -> Note | None:
        note = await self.get_note(note_id, user_id)
        if not note:
            return None
        return await self._repo.update_fields(note.id, {"is_favorite": not note.is_favorite}, user_id=user_id)

    async def toggle_archive(self, note_id: str | UUID, user_id: UUID) -> Note | None:
        note = await self.get_note(note_id, user_id)
        if not note:
            return None
        return await self._repo.update_fields(note.id, {"is_archived": not note.is_archived}, user_id=user_id)

    async def sync_to_notion(self, note_id: str | UUID, user: User) -> Note | None:
        """Mirror one note on demand; raises ``NotionSyncError`` on failure."""
        if not user.notion_enabled:
            raise ValueError("Notion integration not configured")
        note = await self.get_note(note_id, user.id)
        if not note:
            return None
        return await self._processor.mirror(note, user)

    async def transcribe(self, note_id: str | UUID, user: User) -> Note | None:
        """Run transcription for a ``pending`` or ``failed`` note."""
        note = await self.get_note(note_id, user.id)
        if not note:
            return None
        if note.status not in (NoteStatus.PENDING, NoteStatus.FAILED):
            raise ValueError(f"Note cannot be transcribed while {note.status.value}")

        note = await self._repo.update_fields(note.id, {"status": NoteStatus.PROCESSING}, user_id=user.id) or note
        return await self._processor.transcribe(note, user)

    async def stats(self, user_id: UUID) -> NoteStats:
        notes = list(await self._repo.list_for_user(user_id, archived=None))
        since = utcnow() - RECENT_WINDOW
        recent = [n for n in notes if n.created_at >= since]

        category_counts: Counter[str] = Counter()
        for note in notes:
            category_counts.update(note.categories)

        return NoteStats(
            overview=StatsOverview(
                total_notes=len(notes),
                total_duration=sum(n.duration or 0 for n in notes),
                unique_categories=len(category_counts),
                favorites=sum(1 for n in notes if n.is_favorite),
                archived=sum(1 for n in notes if n.is_archived),
            ),
            recent_activity=RecentActivity(
                last_week=len(recent),
                notes=[RecentNoteRef(id=n.id, created_at=n.created_at) for n in recent[:RECENT_LIMIT]],
            ),
            categories=[CategoryCount(category=c, count=n) for c, n in category_counts.most_common()],
        )
