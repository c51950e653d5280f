from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel as PydanticBaseModel
from pydantic import ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(UTC)


def month_key(moment: datetime) -> str:
    """Bucket key for monthly usage rollups, e.g. ``2024-03``."""
    return moment.strftime("%Y-%m")


class AppBaseModel(PydanticBaseModel):
    """Strict base for domain models: unknown fields are an error."""

    model_config = ConfigDict(
        from_attributes=True,
        extra="forbid",
        populate_by_name=True,
    )


class TimestampedModel(AppBaseModel):
    """Persisted entity with creation and last-update times (UTC)."""

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime | None = None

    def to_row(self) -> dict[str, Any]:
        """JSON-ready column mapping for an insert.

        A missing ``updated_at`` is left out so the column default applies.
        """
        row = self.model_dump(mode="json")
        if row.get("updated_at") is None:
            row.pop("updated_at", None)
        return row
