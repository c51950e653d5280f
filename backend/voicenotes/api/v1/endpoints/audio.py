from __future__ import annotations

import re
from typing import TYPE_CHECKING
from urllib.parse import quote
from uuid import UUID  # noqa: TCH003

from fastapi import APIRouter, Depends, Header, HTTPException, status
from fastapi.responses import StreamingResponse

from voicenotes.core.errors import StorageError
from voicenotes.dependencies import get_current_user, get_note_service, get_storage
from voicenotes.utils.logging import get_logger

if TYPE_CHECKING:
    from voicenotes.core.models.note import Note
    from voicenotes.core.models.user import User
    from voicenotes.core.services.note_service import NoteService
    from voicenotes.core.services.storage_service import StorageBackend

logger = get_logger(__name__)

router = APIRouter()

DEFAULT_CONTENT_TYPE = "audio/mpeg"
AUDIO_CACHE_CONTROL = "public, max-age=31536000"
_RANGE = re.compile(r"^bytes=(\d*)-(\d*)$")


class RangeNotSatisfiable(ValueError):
    pass


def parse_range_header(header: str | None, size: int) -> tuple[int, int] | None:
    """Resolve a single ``bytes=`` range against ``size``.

    Returns inclusive ``(start, end)`` or ``None`` when the header should be
    ignored (absent, malformed or multi-range). Raises ``RangeNotSatisfiable``
    when the range lies outside the object.
    """
    if not header:
        return None
    match = _RANGE.match(header.strip().replace(" ", ""))
    if not match:
        return None
    first, last = match.groups()
    if not first and not last:
        return None

    if not first:
        # Suffix form: the final N bytes
        length = int(last)
        if length == 0 or size == 0:
            raise RangeNotSatisfiable(header)
        return max(0, size - length), size - 1

    start = int(first)
    end = int(last) if last else size - 1
    if start >= size or end < start:
        raise RangeNotSatisfiable(header)
    return start, min(end, size - 1)


async def _owned_note(note_id: UUID, user: User, service: NoteService) -> Note:
    note = await service.get_note(note_id, user.id)
    if not note:
        logger.warning("Note not found for audio request", extra={"note_id": str(note_id), "user_id": str(user.id)})
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Note not found")
    return note


async def _object_size(note: Note, storage: StorageBackend) -> int:
    try:
        return await storage.size(note.audio_locator)
    except StorageError as err:
        logger.error("Audio object missing", extra={"note_id": str(note.id), "error": str(err)})
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Audio file not found") from err


@router.get("/stream/{note_id}")
async def stream_audio(
    note_id: UUID,
    range_header: str | None = Header(default=None, alias="Range"),
    current_user: User = Depends(get_current_user),
    service: NoteService = Depends(get_note_service),
    storage: StorageBackend = Depends(get_storage),
):
    """Stream a note's audio, honoring single byte-range requests."""
    note = await _owned_note(note_id, current_user, service)
    size = await _object_size(note, storage)
    headers = {
        "Accept-Ranges": "bytes",
        "Cache-Control": AUDIO_CACHE_CONTROL,
        # Byte ranges refer to the stored representation
        "Content-Encoding": "identity",
    }
    media_type = note.metadata.content_type or DEFAULT_CONTENT_TYPE

    try:
        byte_range = parse_range_header(range_header, size)
    except RangeNotSatisfiable as err:
        raise HTTPException(
            status_code=status.HTTP_416_REQUESTED_RANGE_NOT_SATISFIABLE,
            detail="Requested range not satisfiable",
            headers={"Content-Range": f"bytes */{size}"},
        ) from err

    if byte_range is None:
        headers["Content-Length"] = str(size)
        logger.info("Streaming full audio", extra={"note_id": str(note.id), "size": size})
        return StreamingResponse(storage.open_range(note.audio_locator), media_type=media_type, headers=headers)

    start, end = byte_range
    headers["Content-Range"] = f"bytes {start}-{end}/{size}"
    headers["Content-Length"] = str(end - start + 1)
    logger.info(
        "Streaming audio with range",
        extra={"note_id": str(note.id), "start": start, "end": end, "chunksize": end - start + 1},
    )
    return StreamingResponse(
        storage.open_range(note.audio_locator, start, end),
        status_code=status.HTTP_206_PARTIAL_CONTENT,
        media_type=media_type,
        headers=headers,
    )


@router.get("/download/{note_id}")
async def download_audio(
    note_id: UUID,
    current_user: User = Depends(get_current_user),
    service: NoteService = Depends(get_note_service),
    storage: StorageBackend = Depends(get_storage),
):
    note = await _owned_note(note_id, current_user, service)
    size = await _object_size(note, storage)
    filename = note.original_filename.replace('"', "")
    ascii_name = filename.encode("ascii", "ignore").decode() or "audio"
    return StreamingResponse(
        storage.open_range(note.audio_locator),
        media_type=note.metadata.content_type or DEFAULT_CONTENT_TYPE,
        headers={
            "Content-Disposition": f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(filename)}",
            "Content-Length": str(size),
            "Content-Encoding": "identity",
        },
    )
