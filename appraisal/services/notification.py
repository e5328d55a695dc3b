"""
In-app notifications. Static helpers take the caller's session so workflow
services can add a notification inside their own transaction.
"""
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from appraisal.core.clock import utcnow
from appraisal.core.exceptions import NotFoundError
from appraisal.models.notification import Notification, NotificationType

logger = logging.getLogger(__name__)


class NotificationService:

    @staticmethod
    def create_notification(
        db: Session,
        user_id: int,
        title: str,
        message: str,
        type: str = NotificationType.general.value,
        link: Optional[str] = None,
    ) -> Notification:
        """Adds the notification to the session; the caller commits."""
        notification = Notification(
            user_id=user_id,
            type=NotificationType(type),
            title=title,
            message=message,
            link=link,
        )
        db.add(notification)
        return notification

    @staticmethod
    def notify_user(db: Session, user_id: int, title: str, message: str, type: str = "general", link: Optional[str] = None) -> Notification:
        notification = NotificationService.create_notification(db, user_id, title, message, type, link)
        db.commit()
        db.refresh(notification)
        logger.info(f"Notified user {user_id}: {title}")
        return notification

    @staticmethod
    def list_for_user(db: Session, user_id: int, unread_only: bool = False, limit: int = 50) -> List[Notification]:
        query = db.query(Notification).filter(Notification.user_id == user_id)
        if unread_only:
            query = query.filter(Notification.is_read.is_(False))
        return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()

    @staticmethod
    def unread_count(db: Session, user_id: int) -> int:
        return db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.is_read.is_(False)
        ).count()

    @staticmethod
    def mark_read(db: Session, user_id: int, notification_id: int) -> Notification:
        # Scoped to the owner: someone else's notification is simply not found
        notification = db.query(Notification).filter(
            Notification.id == notification_id,
            Notification.user_id == user_id
        ).first()
        if not notification:
            raise NotFoundError("Notification", notification_id)
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = utcnow()
            db.commit()
            db.refresh(notification)
        return notification

    @staticmethod
    def mark_all_read(db: Session, user_id: int) -> int:
        updated = db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.is_read.is_(False)
        ).update({Notification.is_read: True, Notification.read_at: utcnow()}, synchronize_session=False)
        db.commit()
        return updated
