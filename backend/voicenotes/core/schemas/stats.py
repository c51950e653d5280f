from __future__ import annotations

from datetime import datetime  # noqa: TCH003
from uuid import UUID  # noqa: TCH003

from pydantic import Field

from voicenotes.core.models.base import AppBaseModel


class StatsOverview(AppBaseModel):
    total_notes: int = 0
    total_duration: int = 0
    unique_categories: int = 0
    favorites: int = 0
    archived: int = 0


class RecentNoteRef(AppBaseModel):
    id: UUID
    created_at: datetime


class RecentActivity(AppBaseModel):
    last_week: int = 0
    notes: list[RecentNoteRef] = Field(default_factory=list)


class CategoryCount(AppBaseModel):
    category: str
    count: int


class NoteStats(AppBaseModel):
    overview: StatsOverview = Field(default_factory=StatsOverview)
    recent_activity: RecentActivity = Field(default_factory=RecentActivity)
    categories: list[CategoryCount] = Field(default_factory=list)
