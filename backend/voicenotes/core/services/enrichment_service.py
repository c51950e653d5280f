from __future__ import annotations

from typing import TYPE_CHECKING, TypeVar

from openai import OpenAIError

from voicenotes.core.schemas.enrichment import ActionItemsResult, NoteSummaryResult
from voicenotes.utils.logging import get_logger

if TYPE_CHECKING:
    from openai import AsyncOpenAI
    from pydantic import BaseModel

    from voicenotes.core.models.note import ActionItem

logger = get_logger(__name__)

T = TypeVar("T", bound="BaseModel")

# Transcripts beyond this are truncated before prompting
MAX_INPUT_CHARS = 30_000

SUMMARY_INSTRUCTIONS = (
    "You summarize transcribed voice notes. Return JSON only, matching the provided schema.\n"
    "- Write the summary in the same language as the transcript.\n"
    "- Keep it concise: the key points and any decisions, at most three short paragraphs.\n"
    "- Do not invent facts that are not in the transcript."
)

ACTION_ITEMS_INSTRUCTIONS = (
    "You extract action items from transcribed voice notes. Return JSON only, matching the provided schema.\n"
    "- Only include concrete tasks the speaker or someone else has to do.\n"
    "- priority is high, medium or low; use medium when unclear.\n"
    "- deadline is the deadline as spoken (e.g. 'Friday', 'March 3rd'), or null.\n"
    "- Return an empty list when there are no tasks."
)


class EnrichmentService:
    """Summaries and action items through the OpenAI Responses API."""

    def __init__(self, client: AsyncOpenAI, *, model: str, reasoning_effort: str = "medium") -> None:
        self._client = client
        self._model = model
        self._reasoning_effort = reasoning_effort

    async def generate_summary(self, text: str | None) -> str | None:
        """Return a short summary, or None when the text is empty or the call fails."""
        if not text or not text.strip():
            return None
        result = await self._parse(SUMMARY_INSTRUCTIONS, text, NoteSummaryResult)
        if result is None:
            return None
        summary = result.summary.strip()
        logger.info("Summary generated", extra={"input_chars": len(text), "summary_chars": len(summary)})
        return summary or None

    async def extract_action_items(self, text: str | None) -> list[ActionItem]:
        """Return the tasks mentioned in ``text``; failures yield an empty list."""
        if not text or not text.strip():
            return []
        result = await self._parse(ACTION_ITEMS_INSTRUCTIONS, text, ActionItemsResult)
        if result is None:
            return []
        logger.info("Action items extracted", extra={"count": len(result.action_items)})
        return result.action_items

    async def _parse(self, instructions: str, text: str, schema: type[T]) -> T | None:
        try:
            response = await self._client.responses.parse(
                model=self._model,
                input=[
                    {
                        "role": "system",
                        "content": instructions,
                    },
                    {
                        "role": "user",
                        "content": "TRANSCRIPT:\n" + text[:MAX_INPUT_CHARS],
                    },
                ],
                reasoning={"effort": self._reasoning_effort},
                text={"verbosity": "low"},
                text_format=schema,
            )
        except OpenAIError as err:
            logger.error("OpenAI request failed", extra={"schema": schema.__name__, "error": str(err)})
            return None

        if getattr(response, "refusal", None):
            logger.warning("OpenAI refused to process the note: %s", response.refusal)
            return None
        return response.output_parsed
