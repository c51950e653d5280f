from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx
from notion_client import AsyncClient
from notion_client.errors import HTTPResponseError, RequestTimeoutError

from voicenotes.core.errors import NotionSyncError
from voicenotes.core.models.base import AppBaseModel, utcnow
from voicenotes.core.models.user import NotionCredentials
from voicenotes.utils.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

    from voicenotes.core.models.note import Note
    from voicenotes.core.models.user import User

logger = get_logger(__name__)

# Pinned so databases expose their properties directly (pre data-source API)
NOTION_VERSION = "2022-06-28"
REQUIRED_PROPERTIES = ("Title", "Summary", "Categories", "Duration", "Date")
RICH_TEXT_LIMIT = 2000
NOTION_ERRORS = (HTTPResponseError, RequestTimeoutError, httpx.HTTPError)


class NotionVerification(AppBaseModel):
    valid: bool
    database_name: str | None = None
    error: str | None = None


def rich_text(content: str | None) -> list[dict[str, Any]]:
    """Split text into Notion rich-text objects of at most 2000 characters."""
    text = content or ""
    chunks = [text[i:i + RICH_TEXT_LIMIT] for i in range(0, len(text), RICH_TEXT_LIMIT)] or [""]
    return [{"type": "text", "text": {"content": chunk}} for chunk in chunks]


def page_properties(note: Note) -> dict[str, Any]:
    return {
        "Title": {"title": rich_text(note.title or "Untitled Voice Note")},
        "Summary": {"rich_text": rich_text(note.summary)},
        "Categories": {"multi_select": [{"name": c} for c in note.categories]},
        "Duration": {"number": note.duration or 0},
        "Date": {"date": {"start": note.created_at.isoformat()}},
    }


def page_blocks(note: Note) -> list[dict[str, Any]]:
    blocks: list[dict[str, Any]] = []
    if note.summary:
        blocks.append(_block("heading_2", rich_text=rich_text("Summary")))
        blocks.append(_block("paragraph", rich_text=rich_text(note.summary)))
    if note.action_items:
        blocks.append(_block("heading_2", rich_text=rich_text("Action Items")))
        for item in note.action_items:
            label = item.task if not item.deadline else f"{item.task} (due {item.deadline})"
            blocks.append(_block("to_do", rich_text=rich_text(f"[{item.priority.value}] {label}"), checked=False))
    if note.transcription:
        blocks.append(_block("divider"))
        blocks.append(_block("heading_2", rich_text=rich_text("Full Transcription")))
        blocks.append(_block("paragraph", rich_text=rich_text(note.transcription)))
    return blocks


def _block(kind: str, **payload: Any) -> dict[str, Any]:
    return {"object": "block", "type": kind, kind: payload}


class NotionService:
    """Mirror notes into a user's Notion database."""

    def __init__(
        self,
        *,
        default_api_key: str | None = None,
        default_database_id: str | None = None,
        client_factory: Callable[[str], AsyncClient] | None = None,
    ) -> None:
        self._default_api_key = default_api_key
        self._default_database_id = default_database_id
        self._client_factory = client_factory or (lambda key: AsyncClient(auth=key, notion_version=NOTION_VERSION))
        self._clients: dict[str, AsyncClient] = {}

    def _client(self, api_key: str) -> AsyncClient:
        if api_key not in self._clients:
            self._clients[api_key] = self._client_factory(api_key)
        return self._clients[api_key]

    def credentials_for(self, user: User) -> NotionCredentials | None:
        """User credentials, filling gaps from the deployment-wide defaults."""
        own = user.notion_credentials
        api_key = (own.api_key if own else None) or self._default_api_key
        database_id = (own.database_id if own else None) or self._default_database_id
        if not api_key or not database_id:
            return None
        return NotionCredentials(
            api_key=api_key,
            database_id=database_id,
            database_name=own.database_name if own else None,
        )

    async def create_page(self, note: Note, credentials: NotionCredentials) -> str:
        try:
            response = await self._client(credentials.api_key).pages.create(
                parent={"database_id": credentials.database_id},
                properties=page_properties(note),
                children=page_blocks(note),
            )
        except NOTION_ERRORS as err:
            raise NotionSyncError(f"Failed to create Notion page: {err}") from err
        page_id = response["id"]
        logger.info("Notion page created", extra={"note_id": str(note.id), "page_id": page_id})
        return page_id

    async def update_page(self, page_id: str, note: Note, credentials: NotionCredentials) -> None:
        properties = page_properties(note)
        payload = {k: properties[k] for k in ("Title", "Summary", "Categories")}
        try:
            await self._client(credentials.api_key).pages.update(page_id=page_id, properties=payload)
        except NOTION_ERRORS as err:
            raise NotionSyncError(f"Failed to update Notion page: {err}") from err
        logger.info("Notion page updated", extra={"page_id": page_id})

    async def archive_page(self, page_id: str, credentials: NotionCredentials) -> None:
        try:
            await self._client(credentials.api_key).pages.update(page_id=page_id, archived=True)
        except NOTION_ERRORS as err:
            raise NotionSyncError(f"Failed to archive Notion page: {err}") from err
        logger.info("Notion page archived", extra={"page_id": page_id})

    async def sync_note(self, note: Note, credentials: NotionCredentials) -> dict[str, Any]:
        """Create or update the mirrored page; returns the note fields to persist."""
        if note.notion_page_id:
            await self.update_page(note.notion_page_id, note, credentials)
            page_id = note.notion_page_id
        else:
            page_id = await self.create_page(note, credentials)
        return {"notion_page_id": page_id, "notion_synced_at": utcnow()}

    async def verify_integration(self, api_key: str, database_id: str) -> NotionVerification:
        try:
            database = await self._client(api_key).databases.retrieve(database_id=database_id)
        except NOTION_ERRORS as err:
            logger.warning("Notion verification failed", extra={"error": str(err)})
            return NotionVerification(valid=False, error=str(err))

        missing = [p for p in REQUIRED_PROPERTIES if p not in (database.get("properties") or {})]
        if missing:
            return NotionVerification(
                valid=False,
                error=f"Missing required properties in Notion database: {', '.join(missing)}",
            )
        title = database.get("title") or []
        name = title[0].get("plain_text") if title else None
        return NotionVerification(valid=True, database_name=name or "Untitled Database")
