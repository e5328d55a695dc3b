from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from appraisal.core.permissions import Capability
from appraisal.database import get_db
from appraisal.models.user import User
from appraisal.routers.auth_deps import require_capability
from appraisal.schemas.notification import MarkAllReadResponse, NotificationResponse, UnreadCount
from appraisal.services.notification import NotificationService

router = APIRouter(prefix="/notifications", tags=["Notifications"])

inbox_owner = require_capability(Capability.view_notifications)


@router.get("", response_model=List[NotificationResponse])
def list_notifications(
    unread_only: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(inbox_owner),
):
    return NotificationService.list_for_user(db, current_user.id, unread_only=unread_only)


@router.get("/unread-count", response_model=UnreadCount)
def unread_count(db: Session = Depends(get_db), current_user: User = Depends(inbox_owner)):
    return UnreadCount(unread=NotificationService.unread_count(db, current_user.id))


@router.patch("/{notification_id}/read", response_model=NotificationResponse)
def mark_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(inbox_owner),
):
    return NotificationService.mark_read(db, current_user.id, notification_id)


@router.post("/mark-all-read", response_model=MarkAllReadResponse)
def mark_all_read(db: Session = Depends(get_db), current_user: User = Depends(inbox_owner)):
    return MarkAllReadResponse(marked_read=NotificationService.mark_all_read(db, current_user.id))
