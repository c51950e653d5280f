from __future__ import annotations

import math
from datetime import datetime  # noqa: TCH003
from enum import Enum

from pydantic import Field

from voicenotes.core.models.base import AppBaseModel
from voicenotes.core.models.note import Note  # noqa: TCH001


class SortField(str, Enum):
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"
    TITLE = "title"
    DURATION = "duration"
    PROCESSED_AT = "processed_at"


class NoteListQuery(AppBaseModel):
    """Filters for the paginated note listing."""

    archived: bool = False
    favorite: bool | None = None
    sort_by: SortField = SortField.CREATED_AT
    descending: bool = True
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class NoteSearchQuery(AppBaseModel):
    """Filters for keyword search across title, transcription and summary."""

    query: str | None = None
    categories: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    start_date: datetime | None = None
    end_date: datetime | None = None
    archived: bool = False
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class NotePage(AppBaseModel):
    notes: list[Note]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0
