from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from voicenotes.dependencies import get_container

if TYPE_CHECKING:
    from voicenotes.core.container import ServiceContainer

router = APIRouter()

SERVICE_NAME = "voicenotes-api"
VERSION = "0.1.0"


@router.get("/")
async def health_check():
    """Health check endpoint."""
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "status": "healthy",
            "service": SERVICE_NAME,
            "version": VERSION,
        },
    )


@router.get("/ready")
async def readiness_check(container: ServiceContainer = Depends(get_container)):
    """Readiness check: database reachability and media tooling."""
    db_status = "connected"
    try:
        await container.category_service.list_categories()
    except Exception as e:
        db_status = f"error: {str(e)}"

    media_status = "available" if await container.media.check_available() else "missing"
    ready = db_status == "connected"

    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if ready else "degraded",
            "database": db_status,
            "media_tools": media_status,
            "storage_backend": container.settings.storage_backend,
            "api_prefix": container.settings.api_prefix,
        },
    )
