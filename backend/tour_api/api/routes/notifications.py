"""
In-app notification endpoints.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from tour_api.db.session import get_db
from tour_api.schemas.common import ApiResponse, Pagination
from tour_api.schemas.notification import NotificationListResponse, NotificationResponse
from tour_api.services import notification_service
from tour_api.core.messages import get_language, translate
from tour_api.core.security import get_current_user_id

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    items, total, unread = await notification_service.list_notifications(db, user_id, page, limit)
    return NotificationListResponse(
        data=[NotificationResponse.model_validate(n) for n in items],
        pagination=Pagination.build(page, limit, total),
        unread_count=unread,
    )


@router.put("/read-all", response_model=ApiResponse[dict])
async def mark_all_read(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    lang: str = Depends(get_language),
):
    count = await notification_service.mark_all_as_read(db, user_id)
    return ApiResponse(message=translate("notifications_marked_read", lang), data={"updated": count})


@router.put("/{notification_id}/read", response_model=ApiResponse[NotificationResponse])
async def mark_read(
    notification_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    notification = await notification_service.mark_as_read(db, notification_id, user_id)
    return ApiResponse(data=NotificationResponse.model_validate(notification))
