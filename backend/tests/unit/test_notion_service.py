import asyncio
import uuid

import httpx

from tests.fakes import FakeNotionClient
from voicenotes.core.models.note import ActionItem, Note
from voicenotes.core.models.user import NotionCredentials, User
from voicenotes.core.services.notion_service import (
    NotionService,
    page_blocks,
    page_properties,
    rich_text,
)

CREDENTIALS = NotionCredentials(api_key="secret_abc", database_id="db-1")


def make_note(**fields):
    defaults = {
        "user_id": uuid.uuid4(),
        "title": "Weekly sync",
        "original_filename": "sync.mp3",
        "audio_locator": "mem://sync.mp3",
    }
    return Note(**{**defaults, **fields})


class TestPageContent:
    def test_rich_text_chunks(self):
        chunks = rich_text("a" * 4500)
        assert [len(c["text"]["content"]) for c in chunks] == [2000, 2000, 500]

    def test_rich_text_empty(self):
        assert rich_text(None) == [{"type": "text", "text": {"content": ""}}]

    def test_properties(self):
        note = make_note(summary="Short", categories=["meeting", "work"], duration=90)
        props = page_properties(note)
        assert props["Title"]["title"][0]["text"]["content"] == "Weekly sync"
        assert props["Categories"]["multi_select"] == [{"name": "meeting"}, {"name": "work"}]
        assert props["Duration"] == {"number": 90}
        assert props["Date"]["date"]["start"] == note.created_at.isoformat()

    def test_blocks(self):
        note = make_note(
            summary="Short",
            transcription="Long text",
            action_items=[ActionItem(task="Send deck", priority="high", deadline="Friday")],
        )
        blocks = page_blocks(note)
        assert [b["type"] for b in blocks] == [
            "heading_2", "paragraph", "heading_2", "to_do", "divider", "heading_2", "paragraph",
        ]
        assert blocks[3]["to_do"]["rich_text"][0]["text"]["content"] == "[high] Send deck (due Friday)"

    def test_blocks_for_bare_note(self):
        assert page_blocks(make_note()) == []


class TestSync:
    def test_create_then_update(self):
        client = FakeNotionClient()
        service = NotionService(client_factory=lambda key: client)
        note = make_note(summary="Short")

        changes = asyncio.run(service.sync_note(note, CREDENTIALS))
        assert changes["notion_page_id"] == "page-1"
        assert changes["notion_synced_at"] is not None

        synced = note.model_copy(update=changes)
        again = asyncio.run(service.sync_note(synced, CREDENTIALS))
        assert again["notion_page_id"] == "page-1"
        assert len(client.pages.created) == 1
        [update] = client.pages.updated
        assert update["page_id"] == "page-1"
        assert set(update["properties"]) == {"Title", "Summary", "Categories"}

    def test_credentials_fall_back_to_defaults(self):
        service = NotionService(default_api_key="secret_default", default_database_id="db-default")
        assert service.credentials_for(User(email="demo@x.com")).database_id == "db-default"
        assert NotionService().credentials_for(User(email="demo@x.com")) is None

    def test_verify_integration(self):
        service = NotionService(client_factory=lambda key: FakeNotionClient())
        result = asyncio.run(service.verify_integration("secret_abc", "db-1"))
        assert result.valid
        assert result.database_name == "Voice Notes"

    def test_verify_reports_missing_properties(self):
        service = NotionService(client_factory=lambda key: FakeNotionClient(properties=["Title", "Date"]))
        result = asyncio.run(service.verify_integration("secret_abc", "db-1"))
        assert not result.valid
        assert "Summary, Categories, Duration" in result.error

    def test_verify_transport_failure(self):
        client = FakeNotionClient()

        async def unreachable(database_id):
            raise httpx.ConnectError("unreachable")

        client.databases.retrieve = unreachable
        service = NotionService(client_factory=lambda key: client)
        result = asyncio.run(service.verify_integration("secret_abc", "db-1"))
        assert not result.valid
        assert "unreachable" in result.error
