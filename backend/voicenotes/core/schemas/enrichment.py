from __future__ import annotations

from pydantic import Field

from voicenotes.core.models.base import AppBaseModel
from voicenotes.core.models.note import ActionItem  # noqa: TCH001


class NoteSummaryResult(AppBaseModel):
    """Validated summary output."""

    summary: str = Field(description="Concise summary of the voice note, at most a few short paragraphs")


class ActionItemsResult(AppBaseModel):
    """Validated action item extraction output."""

    action_items: list[ActionItem] = Field(
        default_factory=list,
        description="Tasks mentioned in the voice note",
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "action_items": [
                        {"task": "Send the budget to Marco", "priority": "high", "deadline": "Friday"}
                    ]
                }
            ]
        }
    }
