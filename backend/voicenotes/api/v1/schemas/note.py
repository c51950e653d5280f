from __future__ import annotations

from datetime import datetime  # noqa: TCH003
from uuid import UUID  # noqa: TCH003

from pydantic import ConfigDict, Field, field_validator

from voicenotes.api.v1.schemas.common import ApiModel
from voicenotes.core.models.note import Note, NoteStatus, Priority  # noqa: TCH001
from voicenotes.core.schemas.note_search import NotePage  # noqa: TCH001


class ActionItemPayload(ApiModel):
    task: str
    priority: Priority = Priority.MEDIUM
    deadline: str | None = None


class SegmentPayload(ApiModel):
    text: str
    confidence: float | None = None


class NoteMetadataPayload(ApiModel):
    model_config = ConfigDict(extra="allow")

    content_type: str | None = None
    size: int | None = None
    uploaded_at: datetime | None = None
    duration: float | None = None
    error: str | None = None
    transcription_model: str | None = None
    gcs_uri: str | None = None
    segments: list[SegmentPayload] = Field(default_factory=list)


class NoteResponse(ApiModel):
    id: UUID
    user_id: UUID
    title: str
    original_filename: str
    transcription: str | None = None
    summary: str | None = None
    action_items: list[ActionItemPayload] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    language: str | None = None
    duration: int | None = None
    status: NoteStatus
    metadata: NoteMetadataPayload
    notion_page_id: str | None = None
    notion_synced_at: datetime | None = None
    is_archived: bool = False
    is_favorite: bool = False
    processed_at: datetime | None = None
    email_subject: str | None = None
    created_at: datetime
    updated_at: datetime | None = None

    has_transcription: bool = False
    has_summary: bool = False
    has_action_items: bool = False

    @classmethod
    def from_note(cls, note: Note) -> NoteResponse:
        data = note.model_dump(exclude={"audio_locator", "email_body"})
        data.update(
            has_transcription=note.has_transcription,
            has_summary=note.has_summary,
            has_action_items=note.has_action_items,
        )
        return cls.model_validate(data)


class NoteUpdateRequest(ApiModel):
    """Editable note fields; omitted keys are left untouched."""

    title: str | None = Field(default=None, max_length=255)
    summary: str | None = None
    tags: list[str] | None = None
    categories: list[str] | None = None

    @field_validator("tags", "categories")
    @classmethod
    def validate_labels(cls, v: list[str] | None) -> list[str] | None:
        if v is None:
            return v
        if len(v) > 20:
            raise ValueError("At most 20 labels are allowed")
        return v


class Pagination(ApiModel):
    total: int
    page: int
    limit: int
    pages: int


class NoteListResponse(ApiModel):
    notes: list[NoteResponse]
    pagination: Pagination

    @classmethod
    def from_page(cls, page: NotePage) -> NoteListResponse:
        return cls(
            notes=[NoteResponse.from_note(n) for n in page.notes],
            pagination=Pagination(total=page.total, page=page.page, limit=page.limit, pages=page.pages),
        )


class FavoriteResponse(ApiModel):
    id: UUID
    is_favorite: bool


class ArchiveResponse(ApiModel):
    id: UUID
    is_archived: bool


class NotionSyncResponse(ApiModel):
    message: str = "Note synced to Notion"
    notion_page_id: str | None = None
    notion_synced_at: datetime | None = None


class StatsOverviewPayload(ApiModel):
    total_notes: int
    total_duration: int
    unique_categories: int
    favorites: int
    archived: int


class RecentNotePayload(ApiModel):
    id: UUID
    created_at: datetime


class RecentActivityPayload(ApiModel):
    last_week: int
    notes: list[RecentNotePayload]


class CategoryCountPayload(ApiModel):
    category: str
    count: int


class StatsResponse(ApiModel):
    overview: StatsOverviewPayload
    recent_activity: RecentActivityPayload
    categories: list[CategoryCountPayload]
