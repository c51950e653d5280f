from __future__ import annotations

from enum import Enum
from uuid import UUID  # noqa: TCH003

from pydantic import Field

from voicenotes.core.models.base import AppBaseModel
from voicenotes.core.models.note import Segment  # noqa: TCH001


class TranscriptionResult(AppBaseModel):
    """Output of the speech adapter."""

    text: str
    language: str | None = None
    segments: list[Segment] = Field(default_factory=list)
    model: str = "google-cloud-speech"
    gcs_uri: str | None = None


class AudioMetadata(AppBaseModel):
    duration: float | None = None
    bit_rate: int | None = None
    sample_rate: int | None = None
    channels: int | None = None
    codec: str | None = None
    format_name: str | None = None
    size: int | None = None


class AttachmentResult(AppBaseModel):
    """Outcome of processing one inbound attachment.

    Either ``note_id`` is set (success) or ``error`` is (failure); a failed
    attachment may still carry the ``note_id`` of the note that recorded it.
    """

    filename: str
    note_id: UUID | None = None
    duration: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, filename: str, note_id: UUID, duration: int) -> AttachmentResult:
        return cls(filename=filename, note_id=note_id, duration=duration)

    @classmethod
    def failure(cls, filename: str, error: str, note_id: UUID | None = None) -> AttachmentResult:
        return cls(filename=filename, error=error, note_id=note_id)


class ProcessingReport(AppBaseModel):
    """Aggregate of attachment results used for the confirmation email and usage."""

    results: list[AttachmentResult] = Field(default_factory=list)

    @property
    def succeeded(self) -> list[AttachmentResult]:
        return [r for r in self.results if r.ok]

    @property
    def failed(self) -> list[AttachmentResult]:
        return [r for r in self.results if not r.ok]

    @property
    def total_duration(self) -> int:
        return sum(r.duration for r in self.succeeded)


class InboundStatus(str, Enum):
    REGISTRATION_SENT = "registration_sent"
    NO_AUDIO = "no_audio"
    PROCESSED = "processed"


class InboundOutcome(AppBaseModel):
    status: InboundStatus
    report: ProcessingReport = Field(default_factory=ProcessingReport)

    @property
    def message(self) -> str:
        return {
            InboundStatus.REGISTRATION_SENT: "Registration email sent",
            InboundStatus.NO_AUDIO: "No audio attachments",
            InboundStatus.PROCESSED: "Email processed successfully",
        }[self.status]
