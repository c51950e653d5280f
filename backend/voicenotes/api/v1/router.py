from __future__ import annotations

from fastapi import APIRouter

from .endpoints import audio, auth, categories, health, notes, webhook

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(notes.router, prefix="/notes", tags=["notes"])
api_router.include_router(audio.router, prefix="/audio", tags=["audio"])
api_router.include_router(webhook.router, prefix="/webhook", tags=["webhook"])
api_router.include_router(categories.router, prefix="/categories", tags=["categories"])
