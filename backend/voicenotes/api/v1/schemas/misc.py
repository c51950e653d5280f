from __future__ import annotations

from uuid import UUID  # noqa: TCH003

from voicenotes.api.v1.schemas.common import ApiModel
from voicenotes.core.schemas.processing import InboundOutcome  # noqa: TCH001


class CategoryResponse(ApiModel):
    id: UUID
    name: str
    slug: str
    color: str
    icon: str
    description: str | None = None
    is_system: bool = False
    usage_count: int = 0


class CategoryTrend(ApiModel):
    category: str
    count: int


class AttachmentResultPayload(ApiModel):
    filename: str
    status: str
    note_id: UUID | None = None
    duration: int = 0
    error: str | None = None


class InboundResponse(ApiModel):
    message: str
    status: str
    attachments: int = 0
    succeeded: int = 0
    failed: int = 0
    results: list[AttachmentResultPayload] = []

    @classmethod
    def from_outcome(cls, outcome: InboundOutcome) -> InboundResponse:
        report = outcome.report
        return cls(
            message=outcome.message,
            status=outcome.status.value,
            attachments=len(report.results),
            succeeded=len(report.succeeded),
            failed=len(report.failed),
            results=[
                AttachmentResultPayload(
                    filename=r.filename,
                    status="ok" if r.ok else "failed",
                    note_id=r.note_id,
                    duration=r.duration,
                    error=r.error,
                )
                for r in report.results
            ],
        )
