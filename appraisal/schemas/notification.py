from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import datetime
from appraisal.models.notification import NotificationType


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: NotificationType
    title: str
    message: str
    link: Optional[str] = None
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class UnreadCount(BaseModel):
    unread: int


class MarkAllReadResponse(BaseModel):
    marked_read: int
