import asyncio

import httpx
import pytest

from tests.conftest import inbound_payload
from tests.fakes import (
    FAIL_MARKER,
    FakeNotionClient,
    FakeTranscriber,
    MemoryStorage,
    PostmarkOutbox,
    build_test_container,
)
from voicenotes.core.errors import StorageError
from voicenotes.core.models.note import NoteStatus
from voicenotes.core.models.user import NotionCredentials, User, UserSettings
from voicenotes.core.schemas.inbound import InboundEmail
from voicenotes.core.schemas.processing import InboundStatus

MP3 = b"ID3\x03\x00fake-mp3-bytes"


def run_inbound(container, **payload_kwargs):
    message = InboundEmail.model_validate(inbound_payload(**payload_kwargs))
    return asyncio.run(container.pipeline.handle(message))


def add_user(container, email="demo@x.com", **fields):
    return asyncio.run(container.users.create(User(email=email, password_hash="x", **fields)))


def user_notes(container, user):
    return [n for n in container.notes.rows.values() if n.user_id == user.id]


class TestSenderResolution:
    def test_unknown_sender_is_provisioned_and_prompted(self, settings, outbox):
        container = build_test_container(settings, outbox=outbox)
        outcome = run_inbound(container, sender="Stranger <New@Example.com>")

        assert outcome.status is InboundStatus.REGISTRATION_SENT
        user = asyncio.run(container.users.get_by_email("new@example.com"))
        assert user is not None
        assert user.is_active is False
        assert user.verification_token
        assert container.notes.rows == {}
        assert outbox.subjects() == ["Complete your Voice Notes registration"]

    def test_inactive_sender_gets_prompt_again(self, settings, outbox):
        container = build_test_container(settings, outbox=outbox)
        run_inbound(container, sender="new@example.com")
        outcome = run_inbound(container, sender="new@example.com")

        assert outcome.status is InboundStatus.REGISTRATION_SENT
        assert len(outbox.to("new@example.com")) == 2
        assert container.notes.rows == {}

    def test_invalid_sender_is_rejected(self, settings):
        container = build_test_container(settings)
        with pytest.raises(ValueError):
            run_inbound(container, sender="not-an-address")


class TestNoAudio:
    def test_no_audio_sends_exactly_one_notice(self, settings, outbox):
        container = build_test_container(settings, outbox=outbox)
        user = add_user(container)
        outcome = run_inbound(container, attachments=[("report.pdf", "application/pdf", b"%PDF-1.4")])

        assert outcome.status is InboundStatus.NO_AUDIO
        assert user_notes(container, user) == []
        assert outbox.subjects() == ["No audio file found in your email"]

    def test_empty_attachment_list(self, settings, outbox):
        container = build_test_container(settings, outbox=outbox)
        add_user(container)
        outcome = run_inbound(container, attachments=[])
        assert outcome.status is InboundStatus.NO_AUDIO
        assert len(outbox.messages) == 1


class TestProcessing:
    def test_single_memo_end_to_end(self, settings, outbox):
        container = build_test_container(settings, outbox=outbox)
        user = add_user(container)
        outcome = run_inbound(container, attachments=[("memo.mp3", "audio/mpeg", MP3)])

        assert outcome.status is InboundStatus.PROCESSED
        [note] = user_notes(container, user)
        assert note.original_filename == "memo.mp3"
        assert note.metadata.content_type == "audio/mpeg"
        assert note.metadata.size == len(MP3)
        assert note.status is NoteStatus.COMPLETED
        assert note.transcription == "Xylophone zebra quokka"
        assert note.summary == "Quokka zebra recap"
        assert note.categories == ["general"]
        assert note.duration == 42
        assert note.processed_at is not None
        assert note.title == "Standup notes"

        assert outbox.subjects() == ["Voice Notes: 1 transcribed successfully"]
        refreshed = asyncio.run(container.users.get(user.id))
        assert refreshed.usage.total_notes == 1
        assert refreshed.usage.total_duration == 42
        assert sum(m.notes for m in refreshed.usage.monthly_usage.values()) == 1

    def test_failed_attachment_does_not_abort_siblings(self, settings, outbox):
        container = build_test_container(settings, outbox=outbox)
        user = add_user(container)
        outcome = run_inbound(
            container,
            attachments=[
                ("broken.mp3", "audio/mpeg", FAIL_MARKER + b"-bytes"),
                ("good.mp3", "audio/mpeg", MP3),
            ],
        )

        report = outcome.report
        assert [r.filename for r in report.results] == ["broken.mp3", "good.mp3"]
        assert [r.ok for r in report.results] == [False, True]

        by_name = {n.original_filename: n for n in user_notes(container, user)}
        assert by_name["broken.mp3"].status is NoteStatus.FAILED
        assert "no results" in by_name["broken.mp3"].metadata.error
        assert by_name["good.mp3"].status is NoteStatus.COMPLETED

        # one confirmation email covering both attachments
        [message] = outbox.messages
        assert message["Subject"] == "Voice Notes: 1 transcribed successfully"
        assert "broken.mp3" in message["HtmlBody"]
        refreshed = asyncio.run(container.users.get(user.id))
        assert refreshed.usage.total_notes == 1

    def test_non_audio_attachments_are_skipped(self, settings):
        container = build_test_container(settings)
        user = add_user(container)
        run_inbound(
            container,
            attachments=[("notes.txt", "text/plain", b"hello"), ("memo.m4a", "audio/x-m4a", MP3)],
        )
        assert [n.original_filename for n in user_notes(container, user)] == ["memo.m4a"]

    def test_oversized_attachment_fails_individually(self, settings):
        container = build_test_container(settings.model_copy(update={"max_attachment_bytes": 8}))
        user = add_user(container)
        outcome = run_inbound(container, attachments=[("long.mp3", "audio/mpeg", MP3)])

        [result] = outcome.report.results
        assert not result.ok
        assert "limit" in result.error
        assert user_notes(container, user) == []

    def test_undecodable_attachment_does_not_abort_siblings(self, settings, outbox):
        container = build_test_container(settings, outbox=outbox)
        user = add_user(container)
        payload = inbound_payload(
            attachments=[("garbled.mp3", "audio/mpeg", MP3), ("good.mp3", "audio/mpeg", MP3)]
        )
        payload["Attachments"][0]["Content"] = "!!!not-base64!!!"
        outcome = asyncio.run(container.pipeline.handle(InboundEmail.model_validate(payload)))

        assert outcome.status is InboundStatus.PROCESSED
        assert [r.ok for r in outcome.report.results] == [False, True]
        assert "not valid base64" in outcome.report.results[0].error
        assert [n.original_filename for n in user_notes(container, user)] == ["good.mp3"]
        assert len(outbox.messages) == 1
        refreshed = asyncio.run(container.users.get(user.id))
        assert refreshed.usage.total_notes == 1

    def test_storage_failure_does_not_abort_siblings(self, settings, outbox):
        class FlakyStorage(MemoryStorage):
            async def put(self, data, key, content_type):
                if key.endswith("unlucky.mp3"):
                    raise StorageError("bucket unavailable")
                return await super().put(data, key, content_type)

        container = build_test_container(settings, outbox=outbox, storage=FlakyStorage())
        user = add_user(container)
        outcome = run_inbound(
            container,
            attachments=[("unlucky.mp3", "audio/mpeg", MP3), ("good.mp3", "audio/mpeg", MP3)],
        )

        assert [r.ok for r in outcome.report.results] == [False, True]
        assert outcome.report.results[0].error == "bucket unavailable"
        [note] = user_notes(container, user)
        assert note.original_filename == "good.mp3"
        assert note.status is NoteStatus.COMPLETED
        assert len(outbox.messages) == 1

    def test_note_is_saved_as_processing_before_transcription(self, settings):
        class ObservingTranscriber(FakeTranscriber):
            def __init__(self):
                super().__init__()
                self.notes = None
                self.seen = []

            async def transcribe(self, path, language=None):
                self.seen = [n.status for n in self.notes.rows.values()]
                return await super().transcribe(path, language)

        transcriber = ObservingTranscriber()
        container = build_test_container(settings, transcriber=transcriber)
        transcriber.notes = container.notes
        user = add_user(container)
        run_inbound(container)

        assert transcriber.seen == [NoteStatus.PROCESSING]
        assert user_notes(container, user)[0].status is NoteStatus.COMPLETED

    def test_auto_transcribe_off_leaves_note_pending(self, settings):
        transcriber = FakeTranscriber()
        container = build_test_container(settings, transcriber=transcriber)
        user = add_user(container, settings=UserSettings(auto_transcribe=False))
        run_inbound(container)

        [note] = user_notes(container, user)
        assert note.status is NoteStatus.PENDING
        assert note.transcription is None
        assert transcriber.languages == []

    def test_user_language_pins_recognition(self, settings):
        transcriber = FakeTranscriber()
        container = build_test_container(settings, transcriber=transcriber)
        add_user(container, settings=UserSettings(language="it-IT"))
        run_inbound(container)
        assert transcriber.languages == ["it-IT"]

    def test_confirmation_email_failure_does_not_fail_processing(self, settings):
        outbox = PostmarkOutbox(status_code=422)
        container = build_test_container(settings, outbox=outbox)
        user = add_user(container)
        outcome = run_inbound(container)

        assert outcome.status is InboundStatus.PROCESSED
        assert user_notes(container, user)[0].status is NoteStatus.COMPLETED


class TestNotionMirror:
    def _notion_user(self, container):
        return add_user(
            container,
            settings=UserSettings(notion_sync=True),
            notion_credentials=NotionCredentials(api_key="secret_abc", database_id="db-1"),
        )

    def test_completed_note_is_mirrored(self, settings):
        notion = FakeNotionClient()
        container = build_test_container(settings, notion_client=notion)
        user = self._notion_user(container)
        run_inbound(container)

        [note] = user_notes(container, user)
        assert note.notion_page_id == "page-1"
        assert note.notion_synced_at is not None
        [created] = notion.pages.created
        assert created["parent"] == {"database_id": "db-1"}

    def test_notion_failure_is_swallowed(self, settings):
        notion = FakeNotionClient()

        async def refuse(**kwargs):
            raise httpx.ConnectError("notion unreachable")

        notion.pages.create = refuse
        container = build_test_container(settings, notion_client=notion)
        user = self._notion_user(container)
        outcome = run_inbound(container)

        assert outcome.report.results[0].ok
        [note] = user_notes(container, user)
        assert note.status is NoteStatus.COMPLETED
        assert note.notion_page_id is None
