from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends

from voicenotes.api.v1.schemas.misc import CategoryResponse, CategoryTrend
from voicenotes.dependencies import get_category_service, get_current_user

if TYPE_CHECKING:
    from voicenotes.core.models.user import User
    from voicenotes.core.services.category_service import CategoryService

router = APIRouter()


@router.get("", response_model=list[CategoryResponse])
async def list_categories(
    current_user: User = Depends(get_current_user),
    service: CategoryService = Depends(get_category_service),
):
    """System categories plus the user's own."""
    categories = await service.list_categories(current_user.id)
    return [CategoryResponse.model_validate(c) for c in categories]


@router.get("/trends", response_model=list[CategoryTrend])
async def category_trends(
    current_user: User = Depends(get_current_user),
    service: CategoryService = Depends(get_category_service),
):
    """Category frequency across the last 30 days of notes."""
    trends = await service.user_category_trends(current_user.id)
    return [CategoryTrend.model_validate(t) for t in trends]
