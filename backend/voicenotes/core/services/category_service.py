from __future__ import annotations

import asyncio
import re
from collections import Counter
from datetime import timedelta
from typing import TYPE_CHECKING

from voicenotes.core.models.base import utcnow
from voicenotes.core.models.category import DEFAULT_CATEGORIES, Category
from voicenotes.core.services.text_analysis import HASHTAG_PATTERN, EntityExtractor, tokenize
from voicenotes.utils.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Sequence
    from uuid import UUID

    from voicenotes.core.repositories.category_repository import CategoryRepository
    from voicenotes.core.repositories.note_repository import NoteRepository

logger = get_logger(__name__)

DEFAULT_CATEGORY = "general"
MAX_CATEGORIES = 3
MIN_SCORE = 2
MAX_TAGS = 10
TRENDS_WINDOW = timedelta(days=30)
TRENDS_NOTE_LIMIT = 100

# Order matters: equal scores keep this order.
CATEGORY_RULES: dict[str, tuple[tuple[str, ...], re.Pattern[str]]] = {
    "meeting": (
        ("meeting", "discussion", "agenda", "minutes", "action items", "follow up", "schedule", "conference", "team", "project"),
        re.compile(r"\b(meeting|call|conference|discussion|agenda)\b", re.IGNORECASE),
    ),
    "idea": (
        ("idea", "thought", "concept", "brainstorm", "innovation", "creative", "suggestion", "proposal", "imagine"),
        re.compile(r"\b(idea|thought|what if|maybe we could|suggestion)\b", re.IGNORECASE),
    ),
    "todo": (
        ("todo", "task", "reminder", "need to", "must", "should", "deadline", "due", "complete", "finish"),
        re.compile(r"\b(need to|have to|must|should|todo|task|remind me)\b", re.IGNORECASE),
    ),
    "personal": (
        ("personal", "private", "diary", "journal", "feeling", "emotion", "family", "friend", "life"),
        re.compile(r"\b(personal|private|myself|feeling|family)\b", re.IGNORECASE),
    ),
    "work": (
        ("work", "job", "office", "colleague", "boss", "client", "project", "deadline", "professional"),
        re.compile(r"\b(work|office|client|project|boss|colleague)\b", re.IGNORECASE),
    ),
    "learning": (
        ("learn", "study", "course", "book", "article", "research", "understand", "knowledge", "education"),
        re.compile(r"\b(learn|study|read|research|course|understand)\b", re.IGNORECASE),
    ),
    "finance": (
        ("money", "budget", "expense", "income", "investment", "savings", "cost", "price", "payment"),
        re.compile(r"\b(money|budget|expense|cost|pay|investment|dollar|euro)\b", re.IGNORECASE),
    ),
    "health": (
        ("health", "fitness", "exercise", "diet", "medical", "doctor", "wellness", "symptom", "medication"),
        re.compile(r"\b(health|fitness|exercise|doctor|medical|symptom)\b", re.IGNORECASE),
    ),
}


def keyword_score(tokens: Sequence[str], keywords: Sequence[str]) -> float:
    """+1 per keyword present as a token, +0.5 per keyword overlapping any token."""
    score = 0.0
    token_set = set(tokens)
    for keyword in keywords:
        if keyword in token_set:
            score += 1
        if any(keyword in token or token in keyword for token in tokens):
            score += 0.5
    return score


class CategoryService:
    """Keyword/pattern categorization plus the category vocabulary."""

    def __init__(
        self,
        repo: CategoryRepository,
        extractor: EntityExtractor,
        note_repo: NoteRepository | None = None,
    ) -> None:
        self._repo = repo
        self._extractor = extractor
        self._note_repo = note_repo

    def score(self, text: str) -> dict[str, float]:
        lowered = text.lower()
        tokens = tokenize(lowered)
        scores: dict[str, float] = {}
        for name, (keywords, pattern) in CATEGORY_RULES.items():
            points = 2.0 if pattern.search(lowered) else 0.0
            scores[name] = points + keyword_score(tokens, keywords)

        entities = self._extractor.analyze(text)
        if entities.people or entities.places:
            scores["meeting"] += 1
        if entities.money:
            scores["finance"] += 2
        if entities.dates:
            scores["todo"] += 1
        return scores

    def categorize(self, transcription: str | None, summary: str | None = None) -> list[str]:
        """Return up to three categories ordered by score, or ``["general"]``."""
        text = f"{transcription or ''} {summary or ''}".strip()
        try:
            scores = self.score(text)
        except Exception as err:
            logger.error("Categorization failed", extra={"error": str(err)})
            return [DEFAULT_CATEGORY]

        ranked = sorted(
            (name for name, value in scores.items() if value > MIN_SCORE),
            key=lambda name: scores[name],
            reverse=True,
        )
        return ranked[:MAX_CATEGORIES] or [DEFAULT_CATEGORY]

    async def categorize_note(self, transcription: str | None, summary: str | None = None) -> list[str]:
        return await asyncio.to_thread(self.categorize, transcription, summary)

    def extract_tags(self, text: str | None) -> list[str]:
        """Noun phrases of moderate length plus #hashtags, at most ten."""
        if not text:
            return []
        tags: list[str] = []
        try:
            for phrase in self._extractor.analyze(text).noun_phrases:
                tag = phrase.strip().lower()
                if 3 < len(tag) < 20 and tag not in tags:
                    tags.append(tag)
        except Exception as err:
            logger.error("Tag extraction failed", extra={"error": str(err)})
        for match in HASHTAG_PATTERN.finditer(text):
            tag = match.group(1).lower()
            if tag not in tags:
                tags.append(tag)
        return tags[:MAX_TAGS]

    async def extract_note_tags(self, text: str | None) -> list[str]:
        return await asyncio.to_thread(self.extract_tags, text)

    async def user_category_trends(self, user_id: UUID) -> list[dict[str, int | str]]:
        """Category frequency over the user's notes from the last 30 days."""
        if self._note_repo is None:
            return []
        notes = await self._note_repo.list_for_user(
            user_id, archived=None, created_after=utcnow() - TRENDS_WINDOW, limit=TRENDS_NOTE_LIMIT
        )
        counts: Counter[str] = Counter()
        for note in notes:
            counts.update(note.categories)
        return [{"category": name, "count": count} for name, count in counts.most_common()]

    async def list_categories(self, user_id: UUID | None = None) -> Sequence[Category]:
        return await self._repo.list(user_id=user_id)

    async def record_usage(self, categories: Sequence[str]) -> None:
        """Best-effort usage counter bump for assigned categories."""
        try:
            await self._repo.increment_usage(list(categories))
        except Exception as err:
            logger.warning("Failed to update category usage", extra={"categories": list(categories), "error": str(err)})

    async def seed_defaults(self) -> int:
        """Create any missing default categories. Returns how many were created."""
        created = 0
        for entry in DEFAULT_CATEGORIES:
            if await self._repo.get_by_slug(entry["slug"]) is not None:
                continue
            await self._repo.create(Category(is_system=True, **entry))
            created += 1
        if created:
            logger.info("Seeded default categories", extra={"count": created})
        return created
