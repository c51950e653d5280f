import asyncio
import uuid
from datetime import timedelta

import pytest

from tests.fakes import FakeNotionClient, MemoryStorage, build_test_container
from voicenotes.core.errors import NotionSyncError
from voicenotes.core.models.base import utcnow
from voicenotes.core.models.note import Note, NoteStatus
from voicenotes.core.models.user import NotionCredentials, User, UserSettings
from voicenotes.core.schemas.note_search import NoteListQuery, NoteSearchQuery, SortField


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def notion():
    return FakeNotionClient()


@pytest.fixture
def container(settings, storage, notion):
    return build_test_container(settings, storage=storage, notion_client=notion)


@pytest.fixture
def user(container):
    return asyncio.run(container.users.create(User(email="demo@x.com", password_hash="x")))


def add_note(container, user, **fields):
    locator = f"mem://{uuid.uuid4().hex}.mp3"
    container.storage.blobs[locator] = b"ID3-audio"
    defaults = {
        "user_id": user.id,
        "title": "Note",
        "original_filename": "memo.mp3",
        "audio_locator": locator,
        "status": NoteStatus.COMPLETED,
    }
    return asyncio.run(container.notes.create(Note(**{**defaults, **fields})))


class TestListing:
    def test_pagination_newest_first(self, container, user):
        start = utcnow() - timedelta(days=1)
        for i in range(25):
            add_note(container, user, title=f"n{i}", created_at=start + timedelta(minutes=i))

        page = asyncio.run(container.note_service.list_notes(user.id, NoteListQuery()))
        assert page.total == 25
        assert page.pages == 2
        assert len(page.notes) == 20
        assert page.notes[0].title == "n24"

        second = asyncio.run(container.note_service.list_notes(user.id, NoteListQuery(page=2)))
        assert [n.title for n in second.notes] == ["n4", "n3", "n2", "n1", "n0"]

    def test_archived_hidden_by_default(self, container, user):
        add_note(container, user, is_archived=True)
        add_note(container, user)
        page = asyncio.run(container.note_service.list_notes(user.id, NoteListQuery()))
        assert page.total == 1

    def test_sort_by_title_ascending(self, container, user):
        for title in ("b", "a", "c"):
            add_note(container, user, title=title)
        query = NoteListQuery(sort_by=SortField.TITLE, descending=False)
        page = asyncio.run(container.note_service.list_notes(user.id, query))
        assert [n.title for n in page.notes] == ["a", "b", "c"]

    def test_other_users_notes_invisible(self, container, user):
        other = asyncio.run(container.users.create(User(email="other@x.com")))
        note = add_note(container, other)
        assert asyncio.run(container.note_service.get_note(note.id, user.id)) is None
        assert asyncio.run(container.note_service.get_note("not-a-uuid", user.id)) is None


class TestSearch:
    def test_inverted_date_range(self, container, user):
        query = NoteSearchQuery(start_date=utcnow(), end_date=utcnow() - timedelta(days=1))
        with pytest.raises(ValueError):
            asyncio.run(container.note_service.search_notes(user.id, query))

    def test_keyword_and_category(self, container, user):
        add_note(container, user, transcription="Budget for Q3", categories=["finance"])
        add_note(container, user, transcription="Budget party", categories=["personal"])
        query = NoteSearchQuery(query="budget", categories=["finance"])
        page = asyncio.run(container.note_service.search_notes(user.id, query))
        assert [n.categories for n in page.notes] == [["finance"]]


class TestEdits:
    def test_update_sanitizes(self, container, user):
        note = add_note(container, user)
        updated = asyncio.run(
            container.note_service.update_note(
                note.id,
                {"title": "  Renamed ", "tags": ["Work", "work", " "], "status": "failed", "summary": "  "},
                user,
            )
        )
        assert updated.title == "Renamed"
        assert updated.tags == ["work"]
        assert updated.summary is None
        assert updated.status is NoteStatus.COMPLETED

    def test_blank_title_rejected(self, container, user):
        note = add_note(container, user)
        with pytest.raises(ValueError):
            asyncio.run(container.note_service.update_note(note.id, {"title": "   "}, user))

    def test_toggles_flip_back(self, container, user):
        note = add_note(container, user)
        service = container.note_service
        assert asyncio.run(service.toggle_favorite(note.id, user.id)).is_favorite is True
        assert asyncio.run(service.toggle_favorite(note.id, user.id)).is_favorite is False
        assert asyncio.run(service.toggle_archive(note.id, user.id)).is_archived is True

    def test_delete_removes_blob_and_archives_page(self, container, user, notion):
        notion_user = asyncio.run(
            container.users.update_fields(
                user.id,
                {
                    "settings": UserSettings(notion_sync=True),
                    "notion_credentials": NotionCredentials(api_key="secret_abc", database_id="db-1"),
                },
            )
        )
        note = add_note(container, notion_user, notion_page_id="page-9")
        assert asyncio.run(container.note_service.delete_note(note.id, notion_user)) is True
        assert note.audio_locator not in container.storage.blobs
        assert notion.pages.updated == [{"page_id": "page-9", "archived": True}]
        assert asyncio.run(container.note_service.delete_note(note.id, notion_user)) is False


class TestOnDemand:
    def test_sync_requires_configuration(self, container, user):
        note = add_note(container, user)
        with pytest.raises(ValueError):
            asyncio.run(container.note_service.sync_to_notion(note.id, user))

    def test_sync_failure_propagates(self, container, user, notion):
        async def refuse(*args, **kwargs):
            raise NotionSyncError("boom")

        notion_user = User(
            id=user.id,
            email=user.email,
            settings=UserSettings(notion_sync=True),
            notion_credentials=NotionCredentials(api_key="secret_abc", database_id="db-1"),
        )
        note = add_note(container, notion_user)
        container.notion.create_page = refuse
        with pytest.raises(NotionSyncError):
            asyncio.run(container.note_service.sync_to_notion(note.id, notion_user))

    def test_transcribe_pending_note(self, container, user):
        note = add_note(container, user, status=NoteStatus.PENDING)
        done = asyncio.run(container.note_service.transcribe(note.id, user))
        assert done.status is NoteStatus.COMPLETED
        assert done.transcription == "Xylophone zebra quokka"

    def test_transcribe_rejects_completed_note(self, container, user):
        note = add_note(container, user)
        with pytest.raises(ValueError):
            asyncio.run(container.note_service.transcribe(note.id, user))


class TestStats:
    def test_counts(self, container, user):
        add_note(container, user, duration=30, categories=["work", "meeting"], is_favorite=True)
        add_note(container, user, duration=15, categories=["work"], is_archived=True)
        add_note(container, user, created_at=utcnow() - timedelta(days=30))

        stats = asyncio.run(container.note_service.stats(user.id))
        assert stats.overview.total_notes == 3
        assert stats.overview.total_duration == 45
        assert stats.overview.unique_categories == 2
        assert stats.overview.favorites == 1
        assert stats.overview.archived == 1
        assert stats.recent_activity.last_week == 2
        assert stats.categories[0].category == "work"
        assert stats.categories[0].count == 2
