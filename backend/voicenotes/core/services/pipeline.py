from __future__ import annotations

import asyncio
import secrets
from typing import TYPE_CHECKING

from voicenotes.core.errors import EmailDeliveryError, NotionSyncError
from voicenotes.core.models.base import utcnow
from voicenotes.core.models.note import Note, NoteMetadata, NoteStatus
from voicenotes.core.models.user import User, UserSettings
from voicenotes.core.schemas.processing import (
    AttachmentResult,
    InboundOutcome,
    InboundStatus,
    ProcessingReport,
)
from voicenotes.core.services.storage_service import build_storage_key
from voicenotes.utils.logging import get_logger

if TYPE_CHECKING:
    from voicenotes.core.repositories.note_repository import NoteRepository
    from voicenotes.core.repositories.user_repository import UserRepository
    from voicenotes.core.schemas.inbound import InboundAttachment, InboundEmail
    from voicenotes.core.services.category_service import CategoryService
    from voicenotes.core.services.email_service import EmailService
    from voicenotes.core.services.enrichment_service import EnrichmentService
    from voicenotes.core.services.media_service import MediaInspector
    from voicenotes.core.services.notion_service import NotionService
    from voicenotes.core.services.storage_service import StorageBackend
    from voicenotes.core.services.transcription_service import SpeechTranscriber

logger = get_logger(__name__)


def default_title(subject: str | None) -> str:
    subject = (subject or "").strip()
    return subject[:255] if subject else f"Voice Note - {utcnow():%Y-%m-%d}"


class NoteProcessor:
    """Transcription sub-flow for a stored note, and its Notion mirror."""

    def __init__(
        self,
        *,
        notes: NoteRepository,
        storage: StorageBackend,
        media: MediaInspector,
        transcriber: SpeechTranscriber,
        enrichment: EnrichmentService,
        categories: CategoryService,
        notion: NotionService,
    ) -> None:
        self._notes = notes
        self._storage = storage
        self._media = media
        self._transcriber = transcriber
        self._enrichment = enrichment
        self._categories = categories
        self._notion = notion

    async def transcribe(self, note: Note, user: User) -> Note:
        """Transcribe, enrich and categorize ``note`` in a single update.

        On failure the note is marked ``failed`` with the error in its
        metadata and the exception propagates.
        """
        scratch = None
        prepared = None
        try:
            scratch = await self._storage.download_to_scratch(note.audio_locator)
            prepared = await self._media.prepare_for_transcription(scratch)
            transcript = await self._transcriber.transcribe(prepared, language=user.settings.language)

            summary, action_items = await asyncio.gather(
                self._enrichment.generate_summary(transcript.text),
                self._enrichment.extract_action_items(transcript.text),
            )
            categories = await self._categories.categorize_note(transcript.text, summary)
            tags = await self._categories.extract_note_tags(transcript.text)

            metadata = note.metadata.model_copy(
                update={
                    "error": None,
                    "transcription_model": transcript.model,
                    "gcs_uri": transcript.gcs_uri,
                    "segments": transcript.segments,
                }
            )
            updated = await self._notes.update_fields(
                note.id,
                {
                    "transcription": transcript.text,
                    "summary": summary,
                    "action_items": action_items,
                    "categories": categories,
                    "tags": note.tags + [t for t in tags if t not in note.tags],
                    "language": transcript.language,
                    "status": NoteStatus.COMPLETED,
                    "processed_at": utcnow(),
                    "metadata": metadata,
                },
            )
        except Exception as err:
            logger.error(
                "Transcription failed",
                extra={"note_id": str(note.id), "error_type": type(err).__name__, "error": str(err)},
            )
            await self._mark_failed(note, str(err))
            raise
        finally:
            self._storage.cleanup_scratch(scratch, prepared)

        if updated is None:
            raise LookupError(f"Note {note.id} disappeared during processing")

        logger.info("Transcription completed", extra={"note_id": str(note.id), "categories": categories})
        await self._categories.record_usage(categories)
        if user.notion_enabled:
            updated = await self.mirror_quietly(updated, user)
        return updated

    async def _mark_failed(self, note: Note, message: str) -> None:
        metadata = note.metadata.model_copy(update={"error": message})
        try:
            await self._notes.update_fields(note.id, {"status": NoteStatus.FAILED, "metadata": metadata})
        except Exception as err:
            logger.error("Failed to record transcription error", extra={"note_id": str(note.id), "error": str(err)})

    async def mirror(self, note: Note, user: User) -> Note:
        """Create or update the note's Notion page; raises ``NotionSyncError``."""
        credentials = self._notion.credentials_for(user)
        if credentials is None:
            raise NotionSyncError("Notion integration is not configured")
        changes = await self._notion.sync_note(note, credentials)
        updated = await self._notes.update_fields(note.id, changes)
        return updated or note

    async def mirror_quietly(self, note: Note, user: User) -> Note:
        """Mirror to Notion; failures are logged and the note is returned unchanged."""
        try:
            return await self.mirror(note, user)
        except NotionSyncError as err:
            logger.warning("Notion sync failed", extra={"note_id": str(note.id), "error": str(err)})
            return note


class InboundPipeline:
    """Turn one inbound email into notes plus a single reply to the sender."""

    def __init__(
        self,
        *,
        users: UserRepository,
        notes: NoteRepository,
        storage: StorageBackend,
        media: MediaInspector,
        processor: NoteProcessor,
        email: EmailService,
        max_attachment_bytes: int,
    ) -> None:
        self._users = users
        self._notes = notes
        self._storage = storage
        self._media = media
        self._processor = processor
        self._email = email
        self._max_attachment_bytes = max_attachment_bytes

    async def handle(self, message: InboundEmail) -> InboundOutcome:
        sender = message.sender
        if not sender or "@" not in sender:
            raise ValueError("Inbound email has no valid sender address")

        logger.info(
            "Received inbound email",
            extra={"sender": sender, "subject": message.subject, "attachments": len(message.attachments)},
        )

        user = await self._users.get_by_email(sender)
        if user is None:
            user = await self._users.create(
                User(
                    email=sender,
                    is_active=False,
                    is_verified=False,
                    verification_token=secrets.token_urlsafe(32),
                    settings=UserSettings(),
                )
            )
            logger.info("Auto-provisioned user for unknown sender", extra={"user_id": str(user.id)})
        if not user.is_active:
            await self._email.send_registration_prompt(sender)
            return InboundOutcome(status=InboundStatus.REGISTRATION_SENT)

        audio = message.audio_attachments
        if not audio:
            logger.warning("No audio attachments found", extra={"user_id": str(user.id)})
            await self._notify(self._email.send_no_audio_notice(sender))
            return InboundOutcome(status=InboundStatus.NO_AUDIO)

        results = [await self._process_safely(user, message, attachment) for attachment in audio]
        report = ProcessingReport(results=results)

        await self._notify(self._email.send_processing_confirmation(sender, report))
        if report.succeeded:
            usage = user.usage.record(notes=len(report.succeeded), duration=report.total_duration)
            await self._users.update_fields(user.id, {"usage": usage})

        logger.info(
            "Inbound email processed",
            extra={"user_id": str(user.id), "succeeded": len(report.succeeded), "failed": len(report.failed)},
        )
        return InboundOutcome(status=InboundStatus.PROCESSED, report=report)

    async def _process_safely(self, user: User, message: InboundEmail, attachment: InboundAttachment) -> AttachmentResult:
        try:
            return await self.process_attachment(user, message, attachment)
        except Exception as err:
            logger.error(
                "Error processing attachment",
                extra={"attachment": attachment.name, "error_type": type(err).__name__, "error": str(err)},
            )
            return AttachmentResult.failure(attachment.name, str(err))

    async def process_attachment(self, user: User, message: InboundEmail, attachment: InboundAttachment) -> AttachmentResult:
        data = attachment.decode()
        if len(data) > self._max_attachment_bytes:
            raise ValueError(f"Attachment exceeds the {self._max_attachment_bytes // (1024 * 1024)}MB limit")

        locator = await self._storage.put(data, build_storage_key(user.id, attachment.name), attachment.content_type)
        duration = await self._probe_duration(locator)

        note = await self._notes.create(
            Note(
                user_id=user.id,
                title=default_title(message.subject),
                original_filename=attachment.name[:255],
                audio_locator=locator,
                duration=round(duration),
                status=NoteStatus.PROCESSING if user.settings.auto_transcribe else NoteStatus.PENDING,
                email_subject=message.subject,
                email_body=message.text_body,
                metadata=NoteMetadata(
                    content_type=attachment.content_type,
                    size=attachment.content_length or len(data),
                    uploaded_at=utcnow(),
                    duration=duration,
                ),
            )
        )
        logger.info("Note created", extra={"note_id": str(note.id), "user_id": str(user.id), "status": note.status.value})

        if note.status is NoteStatus.PROCESSING:
            try:
                await self._processor.transcribe(note, user)
            except Exception as err:
                return AttachmentResult.failure(attachment.name, str(err), note_id=note.id)
        return AttachmentResult.success(attachment.name, note.id, note.duration or 0)

    async def _probe_duration(self, locator: str) -> float:
        path = await self._storage.download_to_scratch(locator)
        try:
            return await self._media.duration(path)
        finally:
            self._storage.cleanup_scratch(path)

    @staticmethod
    async def _notify(send) -> None:
        try:
            await send
        except EmailDeliveryError as err:
            logger.error("Failed to send notification email", extra={"error": str(err)})
