"""
Pydantic schemas for notifications.
"""

from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel

from tour_api.schemas.common import PaginatedResponse


class NotificationResponse(BaseModel):
    id: int
    type: str
    title_ar: str
    title_en: str
    message_ar: str
    message_en: str
    data: Optional[dict[str, Any]]
    is_read: bool
    read_at: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationListResponse(PaginatedResponse[NotificationResponse]):
    unread_count: int
