import enum
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Text, Index, Enum as SQLEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from appraisal.database import Base


class NotificationType(str, enum.Enum):
    general = "general"
    evaluation = "evaluation"
    reminder = "reminder"


class Notification(Base):
    """In-app inbox entry. Email delivery is separate and may fail on its own."""
    __tablename__ = "notifications"
    __table_args__ = (Index("ix_notifications_user_unread", "user_id", "is_read"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(SQLEnum(NotificationType), default=NotificationType.general, nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    # Client route to open, e.g. /evaluations/12
    link = Column(String(255), nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="notifications")
