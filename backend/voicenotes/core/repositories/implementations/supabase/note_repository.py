from __future__ import annotations

import re
from datetime import datetime  # noqa: TCH003
from typing import TYPE_CHECKING, Any

from voicenotes.core.models.base import utcnow
from voicenotes.core.models.note import Note
from voicenotes.core.repositories.note_repository import NoteRepository
from voicenotes.utils.logging import get_logger

from ._support import first, run, to_row_changes

logger = get_logger(__name__)

if TYPE_CHECKING:
    from collections.abc import Sequence
    from uuid import UUID

    from supabase import Client

    from voicenotes.core.schemas.note_search import NoteListQuery, NoteSearchQuery

# Characters with meaning inside a PostgREST `or` filter or an ilike pattern
_FILTER_UNSAFE = re.compile(r"[,()%*\\\"]")

SEARCH_COLUMNS = ("title", "transcription", "summary")


def ilike_term(query: str) -> str | None:
    """Return a safe ``%term%`` pattern, or None when nothing searchable is left."""
    cleaned = _FILTER_UNSAFE.sub(" ", query).strip()
    if not cleaned:
        return None
    return f"%{cleaned}%"


class SupabaseNoteRepository(NoteRepository):
    """Supabase implementation of the NoteRepository.

    Assumes a `notes` table with columns matching the `Note` model fields;
    `action_items` and `metadata` are jsonb, `categories` and `tags` text[].
    """

    TABLE_NAME = "notes"

    def __init__(self, client: Client) -> None:
        self._client: Client = client

    async def create(self, note: Note) -> Note:
        row = note.to_row()
        resp = await run(lambda: self._client.table(self.TABLE_NAME).insert(row).execute())
        return self._row_to_note(first(resp.data))

    async def get(self, note_id: UUID, *, user_id: UUID | None = None) -> Note | None:
        def _query():
            q = self._client.table(self.TABLE_NAME).select("*").eq("id", str(note_id))
            if user_id is not None:
                q = q.eq("user_id", str(user_id))
            return q.limit(1).execute()

        resp = await run(_query)
        items = resp.data or []
        if not items:
            return None
        return self._row_to_note(items[0])

    async def list_page(self, user_id: UUID, query: NoteListQuery) -> tuple[Sequence[Note], int]:
        def _query():
            q = (
                self._client.table(self.TABLE_NAME)
                .select("*", count="exact")
                .eq("user_id", str(user_id))
                .eq("is_archived", query.archived)
            )
            if query.favorite is not None:
                q = q.eq("is_favorite", query.favorite)
            return (
                q.order(query.sort_by.value, desc=query.descending)
                .range(query.offset, query.offset + query.limit - 1)
                .execute()
            )

        resp = await run(_query)
        items = resp.data or []
        return [self._row_to_note(i) for i in items], resp.count or 0

    async def search(self, user_id: UUID, query: NoteSearchQuery) -> tuple[Sequence[Note], int]:
        pattern = ilike_term(query.query) if query.query else None

        def _query():
            q = (
                self._client.table(self.TABLE_NAME)
                .select("*", count="exact")
                .eq("user_id", str(user_id))
                .eq("is_archived", query.archived)
            )
            if pattern:
                q = q.or_(",".join(f"{column}.ilike.{pattern}" for column in SEARCH_COLUMNS))
            if query.categories:
                q = q.overlaps("categories", query.categories)
            if query.tags:
                q = q.overlaps("tags", query.tags)
            if query.start_date:
                q = q.gte("created_at", query.start_date.isoformat())
            if query.end_date:
                q = q.lte("created_at", query.end_date.isoformat())
            return (
                q.order("created_at", desc=True)
                .range(query.offset, query.offset + query.limit - 1)
                .execute()
            )

        resp = await run(_query)
        items = resp.data or []
        return [self._row_to_note(i) for i in items], resp.count or 0

    async def list_for_user(
        self,
        user_id: UUID,
        *,
        archived: bool | None = False,
        created_after: datetime | None = None,
        limit: int | None = None,
    ) -> Sequence[Note]:
        def _query():
            q = self._client.table(self.TABLE_NAME).select("*").eq("user_id", str(user_id))
            if archived is not None:
                q = q.eq("is_archived", archived)
            if created_after is not None:
                q = q.gte("created_at", created_after.isoformat())
            q = q.order("created_at", desc=True)
            if limit is not None:
                q = q.limit(limit)
            return q.execute()

        resp = await run(_query)
        return [self._row_to_note(i) for i in resp.data or []]

    async def update_fields(
        self, note_id: UUID, changes: dict[str, Any], *, user_id: UUID | None = None
    ) -> Note | None:
        sanitized = to_row_changes(changes)
        if not sanitized:
            return await self.get(note_id, user_id=user_id)
        sanitized["updated_at"] = utcnow().isoformat()

        def _query():
            q = self._client.table(self.TABLE_NAME).update(sanitized).eq("id", str(note_id))
            if user_id is not None:
                q = q.eq("user_id", str(user_id))
            return q.execute()

        resp = await run(_query)
        items = resp.data or []
        if not items:
            return None
        return self._row_to_note(items[0])

    async def delete(self, note_id: UUID, *, user_id: UUID | None = None) -> bool:
        def _query():
            q = self._client.table(self.TABLE_NAME).delete().eq("id", str(note_id))
            if user_id is not None:
                q = q.eq("user_id", str(user_id))
            return q.execute()

        resp = await run(_query)
        return len(resp.data or []) > 0

    @staticmethod
    def _row_to_note(row: dict[str, Any]) -> Note:
        normalized = dict(row)
        for column in ("tags", "categories", "action_items"):
            if normalized.get(column) is None:
                normalized[column] = []
        if normalized.get("metadata") is None:
            normalized.pop("metadata", None)
        return Note.model_validate(normalized)
