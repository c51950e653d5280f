from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import ValidationError

from voicenotes.api.v1.schemas.misc import InboundResponse
from voicenotes.core.models.base import utcnow
from voicenotes.core.schemas.inbound import InboundEmail
from voicenotes.dependencies import get_inbound_pipeline, verify_inbound_signature
from voicenotes.utils.logging import get_logger

if TYPE_CHECKING:
    from voicenotes.core.services.pipeline import InboundPipeline

logger = get_logger(__name__)

router = APIRouter()


@router.post("/inbound", response_model=InboundResponse)
async def inbound_email(
    body: bytes = Depends(verify_inbound_signature),
    pipeline: InboundPipeline = Depends(get_inbound_pipeline),
):
    """Postmark inbound hook: one email in, notes plus a single reply out.

    Transcription runs inline, so the request stays open until every
    attachment has been processed.
    """
    try:
        message = InboundEmail.model_validate_json(body)
    except ValidationError as err:
        logger.warning("Malformed inbound payload", extra={"error_count": err.error_count()})
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Malformed inbound email payload") from err

    try:
        outcome = await pipeline.handle(message)
    except ValueError as err:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(err)) from err
    except Exception as err:
        logger.error(
            "Webhook processing error",
            extra={"error_type": type(err).__name__, "error": str(err)},
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to process inbound email",
        ) from err
    return InboundResponse.from_outcome(outcome)


@router.get("/health")
async def webhook_health():
    return {"status": "ok", "webhook": "active", "timestamp": utcnow().isoformat()}
