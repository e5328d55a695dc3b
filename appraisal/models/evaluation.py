"""
Evaluation Model.
One employee's review for one period. Status moves through the workflow
not_started -> self_submitted -> manager_reviewed -> meeting_scheduled
-> meeting_completed -> finalized. Calibration lives in its own columns.
"""
import enum
from sqlalchemy import (
    Column, Integer, String, Text, DateTime, Boolean, ForeignKey, JSON,
    Enum as SQLEnum, UniqueConstraint, CheckConstraint,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from appraisal.database import Base


class EvaluationStatus(str, enum.Enum):
    not_started = "not_started"
    self_submitted = "self_submitted"
    manager_reviewed = "manager_reviewed"
    meeting_scheduled = "meeting_scheduled"
    meeting_completed = "meeting_completed"
    finalized = "finalized"


class Evaluation(Base):
    __tablename__ = "evaluations"
    __table_args__ = (
        UniqueConstraint("employee_id", "period_key", name="uq_evaluation_employee_period"),
        CheckConstraint("overall_rating IS NULL OR (overall_rating BETWEEN 1 AND 5)", name="ck_evaluation_rating"),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    employee_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    manager_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    initiated_appraisal_id = Column(Integer, ForeignKey("initiated_appraisals.id"), nullable=False, index=True)
    appraisal_cycle_id = Column(Integer, ForeignKey("appraisal_cycles.id"), nullable=True)
    frequency_calendar_detail_id = Column(Integer, ForeignKey("frequency_calendar_details.id"), nullable=True)
    period_key = Column(String, nullable=False)
    questionnaire_template_ids = Column(JSON, nullable=False, default=list)

    # Lists of {"template_id", "question_id", "type", "value"}
    self_evaluation_data = Column(JSON, nullable=True)
    self_evaluation_submitted_at = Column(DateTime(timezone=True), nullable=True)
    manager_evaluation_data = Column(JSON, nullable=True)
    manager_evaluation_submitted_at = Column(DateTime(timezone=True), nullable=True)
    manager_comments = Column(Text, nullable=True)
    overall_rating = Column(Integer, nullable=True)

    calibrated_rating = Column(Integer, nullable=True)
    calibration_remarks = Column(Text, nullable=True)
    calibrated_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    calibrated_at = Column(DateTime(timezone=True), nullable=True)

    meeting_scheduled_at = Column(DateTime(timezone=True), nullable=True)
    meeting_title = Column(String, nullable=True)
    meeting_description = Column(Text, nullable=True)
    meeting_notes = Column(Text, nullable=True)
    show_notes_to_employee = Column(Boolean, default=False, nullable=False)
    meeting_completed_at = Column(DateTime(timezone=True), nullable=True)
    finalized_at = Column(DateTime(timezone=True), nullable=True)

    status = Column(SQLEnum(EvaluationStatus), default=EvaluationStatus.not_started, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    employee = relationship("User", foreign_keys=[employee_id])
    manager = relationship("User", foreign_keys=[manager_id])
    calibrated_by = relationship("User", foreign_keys=[calibrated_by_id])
    initiated_appraisal = relationship("InitiatedAppraisal", back_populates="evaluations")
    appraisal_cycle = relationship("AppraisalCycle")
    frequency_calendar_detail = relationship("FrequencyCalendarDetail")
    development_goals = relationship("DevelopmentGoal", back_populates="evaluation", cascade="all, delete-orphan")

    @property
    def effective_rating(self):
        """Calibrated rating when HR has set one, otherwise the manager's rating."""
        return self.calibrated_rating if self.calibrated_rating is not None else self.overall_rating

    @property
    def is_completed(self) -> bool:
        return self.status == EvaluationStatus.finalized

    def __repr__(self):
        return f"<Evaluation {self.id} employee={self.employee_id} {self.status.value}>"
