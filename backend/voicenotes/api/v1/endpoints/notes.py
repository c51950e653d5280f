from __future__ import annotations

from datetime import datetime  # noqa: TCH003
from typing import TYPE_CHECKING, Literal
from uuid import UUID  # noqa: TCH003

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic.alias_generators import to_camel

from voicenotes.api.v1.schemas.common import MessageResponse
from voicenotes.api.v1.schemas.note import (
    ArchiveResponse,
    FavoriteResponse,
    NoteListResponse,
    NoteResponse,
    NotionSyncResponse,
    NoteUpdateRequest,
    StatsResponse,
)
from voicenotes.core.errors import UpstreamServiceError
from voicenotes.core.schemas.note_search import NoteListQuery, NoteSearchQuery, SortField
from voicenotes.dependencies import get_current_user, get_note_service
from voicenotes.utils.logging import get_logger

if TYPE_CHECKING:
    from voicenotes.core.models.user import User
    from voicenotes.core.services.note_service import NoteService

logger = get_logger(__name__)

router = APIRouter()

SORT_FIELDS: dict[str, SortField] = {
    **{field.value: field for field in SortField},
    **{to_camel(field.value): field for field in SortField},
}


def _split(values: str | None) -> list[str]:
    return [v.strip() for v in (values or "").split(",") if v.strip()]


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Note not found")


@router.get("", response_model=NoteListResponse)
async def list_notes(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    sort_by: str = Query(default="createdAt", alias="sortBy"),
    order: Literal["asc", "desc", "ASC", "DESC"] = "desc",
    archived: bool = False,
    favorite: bool | None = None,
    current_user: User = Depends(get_current_user),
    service: NoteService = Depends(get_note_service),
):
    """Paginated notes of the authenticated user, newest first by default."""
    sort_field = SORT_FIELDS.get(sort_by)
    if sort_field is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Cannot sort by '{sort_by}'")
    query = NoteListQuery(
        archived=archived,
        favorite=favorite,
        sort_by=sort_field,
        descending=order.lower() == "desc",
        page=page,
        limit=limit,
    )
    try:
        result = await service.list_notes(current_user.id, query)
    except Exception as err:
        logger.error("Failed to fetch notes", extra={"user_id": str(current_user.id), "error": str(err)})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch notes",
        ) from err
    return NoteListResponse.from_page(result)


@router.get("/search", response_model=NoteListResponse)
async def search_notes(
    q: str | None = None,
    categories: str | None = None,
    tags: str | None = None,
    start_date: datetime | None = Query(default=None, alias="startDate"),
    end_date: datetime | None = Query(default=None, alias="endDate"),
    archived: bool = False,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    service: NoteService = Depends(get_note_service),
):
    """Keyword search over title, transcription and summary.

    ``categories`` and ``tags`` are comma separated; a note matches when it
    shares at least one value with each given list.
    """
    query = NoteSearchQuery(
        query=(q or "").strip() or None,
        categories=[c.lower() for c in _split(categories)],
        tags=[t.lower() for t in _split(tags)],
        start_date=start_date,
        end_date=end_date,
        archived=archived,
        page=page,
        limit=limit,
    )
    try:
        result = await service.search_notes(current_user.id, query)
    except ValueError as err:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(err)) from err
    except Exception as err:
        logger.error("Search failed", extra={"user_id": str(current_user.id), "error": str(err)})
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Search failed") from err
    return NoteListResponse.from_page(result)


@router.get("/stats", response_model=StatsResponse)
async def note_stats(
    current_user: User = Depends(get_current_user),
    service: NoteService = Depends(get_note_service),
):
    stats = await service.stats(current_user.id)
    return StatsResponse.model_validate(stats.model_dump())


@router.get("/{note_id}", response_model=NoteResponse)
async def get_note(
    note_id: UUID,
    current_user: User = Depends(get_current_user),
    service: NoteService = Depends(get_note_service),
):
    note = await service.get_note(note_id, current_user.id)
    if not note:
        raise _not_found()
    return NoteResponse.from_note(note)


@router.put("/{note_id}", response_model=NoteResponse)
async def update_note(
    note_id: UUID,
    payload: NoteUpdateRequest,
    current_user: User = Depends(get_current_user),
    service: NoteService = Depends(get_note_service),
):
    try:
        note = await service.update_note(note_id, payload.model_dump(exclude_unset=True), current_user)
    except ValueError as err:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(err)) from err
    if not note:
        raise _not_found()
    return NoteResponse.from_note(note)


@router.delete("/{note_id}", response_model=MessageResponse)
async def delete_note(
    note_id: UUID,
    current_user: User = Depends(get_current_user),
    service: NoteService = Depends(get_note_service),
):
    deleted = await service.delete_note(note_id, current_user)
    if not deleted:
        raise _not_found()
    return MessageResponse(message="Note deleted successfully")


@router.post("/{note_id}/favorite", response_model=FavoriteResponse)
async def toggle_favorite(
    note_id: UUID,
    current_user: User = Depends(get_current_user),
    service: NoteService = Depends(get_note_service),
):
    note = await service.toggle_favorite(note_id, current_user.id)
    if not note:
        raise _not_found()
    return FavoriteResponse(id=note.id, is_favorite=note.is_favorite)


@router.post("/{note_id}/archive", response_model=ArchiveResponse)
async def toggle_archive(
    note_id: UUID,
    current_user: User = Depends(get_current_user),
    service: NoteService = Depends(get_note_service),
):
    note = await service.toggle_archive(note_id, current_user.id)
    if not note:
        raise _not_found()
    return ArchiveResponse(id=note.id, is_archived=note.is_archived)


@router.post("/{note_id}/sync-notion", response_model=NotionSyncResponse)
async def sync_to_notion(
    note_id: UUID,
    current_user: User = Depends(get_current_user),
    service: NoteService = Depends(get_note_service),
):
    try:
        note = await service.sync_to_notion(note_id, current_user)
    except ValueError as err:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(err)) from err
    except UpstreamServiceError as err:
        logger.error("Notion sync error", extra={"note_id": str(note_id), "error": str(err)})
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to sync to Notion") from err
    if not note:
        raise _not_found()
    return NotionSyncResponse(notion_page_id=note.notion_page_id, notion_synced_at=note.notion_synced_at)


@router.post("/{note_id}/transcribe", response_model=NoteResponse)
async def transcribe_note(
    note_id: UUID,
    current_user: User = Depends(get_current_user),
    service: NoteService = Depends(get_note_service),
):
    """Run transcription for a note that is pending or previously failed."""
    try:
        note = await service.transcribe(note_id, current_user)
    except ValueError as err:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(err)) from err
    except UpstreamServiceError as err:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Transcription failed: {err}",
        ) from err
    if not note:
        raise _not_found()
    return NoteResponse.from_note(note)
