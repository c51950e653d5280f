from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from voicenotes.core.services.auth_service import AuthService, TokenService
from voicenotes.core.services.category_service import CategoryService
from voicenotes.core.services.note_service import NoteService
from voicenotes.core.services.pipeline import InboundPipeline, NoteProcessor
from voicenotes.utils.logging import get_logger

if TYPE_CHECKING:
    from voicenotes.config import Settings
    from voicenotes.core.repositories.category_repository import CategoryRepository
    from voicenotes.core.repositories.note_repository import NoteRepository
    from voicenotes.core.repositories.user_repository import UserRepository
    from voicenotes.core.services.email_service import EmailService
    from voicenotes.core.services.enrichment_service import EnrichmentService
    from voicenotes.core.services.media_service import MediaInspector
    from voicenotes.core.services.notion_service import NotionService
    from voicenotes.core.services.storage_service import StorageBackend
    from voicenotes.core.services.text_analysis import EntityExtractor
    from voicenotes.core.services.transcription_service import SpeechTranscriber

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    """Every collaborator the API and the inbound pipeline need, built once."""

    settings: Settings
    users: UserRepository
    notes: NoteRepository
    categories: CategoryRepository
    storage: StorageBackend
    media: MediaInspector
    transcriber: SpeechTranscriber
    enrichment: EnrichmentService
    notion: NotionService
    email: EmailService
    tokens: TokenService
    category_service: CategoryService
    processor: NoteProcessor
    pipeline: InboundPipeline
    auth_service: AuthService
    note_service: NoteService

    @classmethod
    def assemble(
        cls,
        settings: Settings,
        *,
        users: UserRepository,
        notes: NoteRepository,
        categories: CategoryRepository,
        storage: StorageBackend,
        media: MediaInspector,
        transcriber: SpeechTranscriber,
        enrichment: EnrichmentService,
        extractor: EntityExtractor,
        notion: NotionService,
        email: EmailService,
    ) -> ServiceContainer:
        """Wire the domain services on top of the given adapters."""
        tokens = TokenService(
            settings.jwt_secret, algorithm=settings.jwt_algorithm, expires_in=settings.jwt_expires_in
        )
        category_service = CategoryService(categories, extractor, note_repo=notes)
        processor = NoteProcessor(
            notes=notes,
            storage=storage,
            media=media,
            transcriber=transcriber,
            enrichment=enrichment,
            categories=category_service,
            notion=notion,
        )
        return cls(
            settings=settings,
            users=users,
            notes=notes,
            categories=categories,
            storage=storage,
            media=media,
            transcriber=transcriber,
            enrichment=enrichment,
            notion=notion,
            email=email,
            tokens=tokens,
            category_service=category_service,
            processor=processor,
            pipeline=InboundPipeline(
                users=users,
                notes=notes,
                storage=storage,
                media=media,
                processor=processor,
                email=email,
                max_attachment_bytes=settings.max_attachment_bytes,
            ),
            auth_service=AuthService(
                users,
                tokens,
                email=email,
                notion=notion,
                bcrypt_rounds=settings.bcrypt_rounds,
                reset_ttl=settings.password_reset_ttl,
            ),
            note_service=NoteService(notes, storage=storage, processor=processor, notion=notion),
        )


def build_container(settings: Settings) -> ServiceContainer:
    """Production wiring: Supabase repositories and the real external adapters."""
    from voicenotes.core.repositories.implementations.supabase.category_repository import (
        SupabaseCategoryRepository,
    )
    from voicenotes.core.repositories.implementations.supabase.note_repository import SupabaseNoteRepository
    from voicenotes.core.repositories.implementations.supabase.user_repository import SupabaseUserRepository
    from voicenotes.core.services.email_service import EmailService
    from voicenotes.core.services.enrichment_service import EnrichmentService
    from voicenotes.core.services.media_service import MediaInspector
    from voicenotes.core.services.notion_service import NotionService
    from voicenotes.core.services.storage_service import build_storage_backend
    from voicenotes.core.services.text_analysis import SpacyEntityExtractor
    from voicenotes.core.services.transcription_service import GoogleSpeechTranscriber
    from voicenotes.db.base import create_database_client
    from voicenotes.utils.openai_client import create_openai_client

    client = create_database_client(settings)
    logger.info("Building service container", extra={"storage_backend": settings.storage_backend})
    return ServiceContainer.assemble(
        settings,
        users=SupabaseUserRepository(client),
        notes=SupabaseNoteRepository(client),
        categories=SupabaseCategoryRepository(client),
        storage=build_storage_backend(settings),
        media=MediaInspector(settings.ffmpeg_path, settings.ffprobe_path, scratch_dir=settings.scratch_dir),
        transcriber=GoogleSpeechTranscriber.from_settings(settings),
        enrichment=EnrichmentService(
            create_openai_client(settings),
            model=settings.enrichment_model,
            reasoning_effort=settings.enrichment_model_reasoning,
        ),
        extractor=SpacyEntityExtractor(settings.spacy_model),
        notion=NotionService(
            default_api_key=settings.notion_api_key,
            default_database_id=settings.notion_database_id,
        ),
        email=EmailService(
            server_token=settings.postmark_server_token,
            from_email=settings.postmark_from_email,
            inbound_address=settings.postmark_inbound_address,
            frontend_url=settings.frontend_url,
        ),
    )
