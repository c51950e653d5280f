import asyncio
import logging
from datetime import timedelta
from uuid import uuid4

from tests.fakes import FakeExtractor, InMemoryCategoryRepository, InMemoryNoteRepository
from voicenotes.core.models.base import utcnow
from voicenotes.core.models.category import DEFAULT_CATEGORIES
from voicenotes.core.models.note import Note
from voicenotes.core.services import category_service
from voicenotes.core.services.category_service import (
    CATEGORY_RULES,
    CategoryService,
    keyword_score,
)


def make_service(**entities):
    return CategoryService(InMemoryCategoryRepository(), FakeExtractor(**entities), note_repo=InMemoryNoteRepository())


class TestKeywordScore:
    def test_exact_token_scores_one_and_a_half(self):
        # exact token (+1) and the token also overlaps the keyword (+0.5)
        assert keyword_score(["budget"], ["budget"]) == 1.5

    def test_partial_overlap_scores_half(self):
        assert keyword_score(["payments"], ["payment"]) == 0.5

    def test_no_overlap(self):
        assert keyword_score(["zebra"], ["meeting", "agenda"]) == 0


class TestCategorize:
    def test_unmatched_text_falls_back_to_general(self):
        assert make_service().categorize("Xylophone zebra quokka") == ["general"]

    def test_empty_text_is_general(self):
        assert make_service().categorize(None, None) == ["general"]
        assert make_service().categorize("", "") == ["general"]

    def test_meeting_language_ranks_meeting_first(self):
        text = "Meeting with the team about the project agenda and the conference schedule"
        result = make_service().categorize(text)
        assert result[0] == "meeting"
        assert len(result) <= 3

    def test_result_is_deterministic(self):
        service = make_service()
        text = "I need to pay the doctor and keep the budget for exercise"
        first = service.categorize(text)
        assert all(service.categorize(text) == first for _ in range(5))
        assert "finance" in first
        assert len(first) <= 3

    def test_summary_contributes_to_scoring(self):
        service = make_service()
        assert service.categorize("Xylophone zebra quokka", "Budget money expense") != ["general"]

    def test_money_entities_boost_finance(self):
        plain = make_service().score("Quokka")
        boosted = make_service(money=["$40"]).score("Quokka")
        assert boosted["finance"] == plain["finance"] + 2

    def test_people_and_places_boost_meeting(self):
        boosted = make_service(people=["Ada"], places=["Rome"]).score("Quokka")
        assert boosted["meeting"] == make_service().score("Quokka")["meeting"] + 1

    def test_dates_boost_todo(self):
        boosted = make_service(dates=["March 3, 2025"]).score("Quokka")
        assert boosted["todo"] == make_service().score("Quokka")["todo"] + 1

    def test_extractor_failure_yields_general(self):
        class Broken(FakeExtractor):
            def analyze(self, text):
                raise RuntimeError("model crashed")

        service = CategoryService(InMemoryCategoryRepository(), Broken())
        assert service.categorize("Meeting agenda") == ["general"]

    def test_rule_table_order(self):
        assert list(CATEGORY_RULES) == ["meeting", "idea", "todo", "personal", "work", "learning", "finance", "health"]


class TestTags:
    def test_noun_phrases_filtered_by_length_and_hashtags_added(self):
        service = make_service(noun_phrases=["the quarterly plan", "it", "an extraordinarily long noun phrase"])
        tags = service.extract_tags("Discussed the quarterly plan #Roadmap #q3")
        assert tags == ["the quarterly plan", "roadmap", "q3"]

    def test_at_most_ten_tags(self):
        text = " ".join(f"#tag{i}" for i in range(15))
        assert len(make_service().extract_tags(text)) == 10

    def test_no_text_no_tags(self):
        assert make_service().extract_tags(None) == []


class TestVocabulary:
    def test_seed_defaults_is_idempotent(self):
        service = make_service()
        assert asyncio.run(service.seed_defaults()) == len(DEFAULT_CATEGORIES)
        assert asyncio.run(service.seed_defaults()) == 0
        names = [c.slug for c in asyncio.run(service.list_categories())]
        assert "general" in names

    def test_record_usage_increments_counters(self):
        repo = InMemoryCategoryRepository()
        service = CategoryService(repo, FakeExtractor())
        asyncio.run(service.seed_defaults())
        asyncio.run(service.record_usage(["work", "todo"]))
        assert repo.rows["work"].usage_count == 1
        assert repo.rows["meeting"].usage_count == 0

    def test_trends_count_recent_categories(self):
        notes = InMemoryNoteRepository()
        service = CategoryService(InMemoryCategoryRepository(), FakeExtractor(), note_repo=notes)
        user_id = uuid4()
        for categories in (["work", "todo"], ["work"], ["idea"]):
            asyncio.run(
                notes.create(
                    Note(
                        user_id=user_id,
                        title="n",
                        original_filename="a.mp3",
                        audio_locator="mem://a",
                        categories=categories,
                    )
                )
            )
        trends = asyncio.run(service.user_category_trends(user_id))
        assert trends[0] == {"category": "work", "count": 2}
        assert {t["category"] for t in trends} == {"work", "todo", "idea"}

    def test_trends_only_read_the_most_recent_notes(self, monkeypatch):
        class RecordingNotes(InMemoryNoteRepository):
            def __init__(self):
                super().__init__()
                self.calls = []

            async def list_for_user(self, user_id, **filters):
                self.calls.append(filters)
                return await super().list_for_user(user_id, **filters)

        notes = RecordingNotes()
        service = CategoryService(InMemoryCategoryRepository(), FakeExtractor(), note_repo=notes)
        user_id = uuid4()
        base = utcnow()
        for offset, category in enumerate(["idea", "work", "work"]):
            asyncio.run(
                notes.create(
                    Note(
                        user_id=user_id,
                        title="n",
                        original_filename="a.mp3",
                        audio_locator="mem://a",
                        categories=[category],
                        created_at=base - timedelta(minutes=offset),
                    )
                )
            )

        monkeypatch.setattr(category_service, "TRENDS_NOTE_LIMIT", 2)
        trends = asyncio.run(service.user_category_trends(user_id))

        assert notes.calls[0]["limit"] == 2
        assert trends == [{"category": "idea", "count": 1}, {"category": "work", "count": 1}]


class TestSeedLogging:
    def test_seeding_logs_at_info(self, caplog):
        caplog.set_level(logging.INFO, logger=category_service.__name__)
        service = make_service()

        assert asyncio.run(service.seed_defaults()) == len(DEFAULT_CATEGORIES)
        [record] = [r for r in caplog.records if r.getMessage() == "Seeded default categories"]
        assert record.count == len(DEFAULT_CATEGORIES)
