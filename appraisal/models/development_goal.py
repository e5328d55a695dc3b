import enum
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Enum as SQLEnum, CheckConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from appraisal.database import Base


class GoalStatus(str, enum.Enum):
    not_started = "not_started"
    on_track = "on_track"
    delayed = "delayed"
    completed = "completed"


class GoalCategory(str, enum.Enum):
    technical = "technical"
    leadership = "leadership"
    communication = "communication"
    domain = "domain"
    other = "other"


class DevelopmentGoal(Base):
    __tablename__ = "development_goals"
    __table_args__ = (CheckConstraint("progress BETWEEN 0 AND 100", name="ck_development_goal_progress"),)

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    evaluation_id = Column(Integer, ForeignKey("evaluations.id", ondelete="CASCADE"), nullable=False, index=True)
    employee_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(SQLEnum(GoalCategory), default=GoalCategory.other, nullable=False)
    target_date = Column(DateTime(timezone=True), nullable=False)
    progress = Column(Integer, default=0, nullable=False)
    status = Column(SQLEnum(GoalStatus), default=GoalStatus.not_started, nullable=False)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    evaluation = relationship("Evaluation", back_populates="development_goals")
    employee = relationship("User", foreign_keys=[employee_id])
