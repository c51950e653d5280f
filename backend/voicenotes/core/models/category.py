from __future__ import annotations

import re
from uuid import UUID, uuid4

from pydantic import Field, model_validator

from .base import TimestampedModel

_WHITESPACE = re.compile(r"\s+")


def slugify(name: str) -> str:
    return _WHITESPACE.sub("-", name.strip().lower())


class Category(TimestampedModel):
    """Controlled vocabulary entry referenced by name from ``Note.categories``."""

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=100)
    slug: str = Field(default="", max_length=100)
    color: str = "#6366f1"
    icon: str = "📌"
    description: str | None = None
    is_system: bool = False
    user_id: UUID | None = Field(default=None, description="None for system categories")
    usage_count: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def derive_slug(self) -> Category:
        if not self.slug:
            self.slug = slugify(self.name)
        return self


DEFAULT_CATEGORIES: tuple[dict, ...] = (
    {"name": "Meeting", "slug": "meeting", "icon": "👥", "color": "#3b82f6"},
    {"name": "Idea", "slug": "idea", "icon": "💡", "color": "#eab308"},
    {"name": "Todo", "slug": "todo", "icon": "✅", "color": "#ef4444"},
    {"name": "Personal", "slug": "personal", "icon": "👤", "color": "#10b981"},
    {"name": "Work", "slug": "work", "icon": "💼", "color": "#8b5cf6"},
    {"name": "Learning", "slug": "learning", "icon": "📚", "color": "#6366f1"},
    {"name": "Finance", "slug": "finance", "icon": "💰", "color": "#10b981"},
    {"name": "Health", "slug": "health", "icon": "🏃", "color": "#ec4899"},
    {"name": "General", "slug": "general", "icon": "📌", "color": "#6b7280"},
)
