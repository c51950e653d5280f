from __future__ import annotations

from datetime import datetime  # noqa: TCH003
from enum import Enum
from uuid import UUID, uuid4

from pydantic import ConfigDict, Field, field_validator

from .base import AppBaseModel, TimestampedModel


class NoteStatus(str, Enum):
    """Lifecycle of a note's transcription."""

    PROCESSING = "processing"
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ActionItem(AppBaseModel):
    task: str = Field(..., min_length=1)
    priority: Priority = Priority.MEDIUM
    deadline: str | None = Field(default=None, description="Deadline as mentioned in the audio")


class Segment(AppBaseModel):
    text: str
    confidence: float | None = None


class NoteMetadata(AppBaseModel):
    """Open metadata bag; processing errors accumulate here without touching the note."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    content_type: str | None = None
    size: int | None = None
    uploaded_at: datetime | None = None
    duration: float | None = None
    error: str | None = None
    transcription_model: str | None = None
    gcs_uri: str | None = None
    segments: list[Segment] = Field(default_factory=list)


def normalize_labels(values: list[str] | None, *, limit: int | None = None) -> list[str]:
    """Lower-case, strip and de-duplicate labels, preserving first-seen order."""
    normalized: list[str] = []
    for value in values or []:
        if value and value.strip():
            label = value.strip().lower()[:50]
            if label not in normalized:
                normalized.append(label)
    return normalized[:limit] if limit is not None else normalized


class Note(TimestampedModel):
    """Voice note domain model."""

    id: UUID = Field(default_factory=uuid4, description="Unique note identifier")
    user_id: UUID = Field(..., description="Owner of the note")

    title: str = Field(..., max_length=255)
    original_filename: str = Field(..., max_length=255)
    audio_locator: str = Field(..., description="Storage locator for the audio blob")

    transcription: str | None = None
    summary: str | None = None
    action_items: list[ActionItem] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    language: str | None = None
    duration: int | None = Field(default=None, ge=0, description="Duration in seconds")

    status: NoteStatus = NoteStatus.PROCESSING
    metadata: NoteMetadata = Field(default_factory=NoteMetadata)

    notion_page_id: str | None = None
    notion_synced_at: datetime | None = None

    is_archived: bool = False
    is_favorite: bool = False
    processed_at: datetime | None = None

    email_subject: str | None = None
    email_body: str | None = None

    @field_validator("categories", "tags")
    @classmethod
    def validate_labels(cls, v: list[str]) -> list[str]:
        return normalize_labels(v)

    @property
    def has_transcription(self) -> bool:
        return bool(self.transcription)

    @property
    def has_summary(self) -> bool:
        return bool(self.summary)

    @property
    def has_action_items(self) -> bool:
        return len(self.action_items) > 0
