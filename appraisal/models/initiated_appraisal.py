"""
InitiatedAppraisal Model.
One batch of evaluations for an appraisal group and a review period (period_key).
"""
import enum
from datetime import timedelta
from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, Index, JSON, Enum as SQLEnum, text
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from appraisal.core.clock import as_utc
from appraisal.database import Base


class AppraisalType(str, enum.Enum):
    questionnaire_based = "questionnaire_based"
    kpi_based = "kpi_based"
    mbo_based = "mbo_based"
    okr_based = "okr_based"


class ReviewScope(str, enum.Enum):
    """Which questionnaires an evaluation carries: employee, manager or both."""
    self_review = "self"
    manager = "manager"
    both = "both"


class PublishType(str, enum.Enum):
    now = "now"
    as_per_calendar = "as_per_calendar"


class AppraisalStatus(str, enum.Enum):
    draft = "draft"
    active = "active"
    closed = "closed"
    cancelled = "cancelled"


class InitiatedAppraisal(Base):
    __tablename__ = "initiated_appraisals"
    __table_args__ = (
        # One live batch per group and period; a cancelled batch does not block re-initiation
        Index(
            "uq_initiated_appraisal_live_period",
            "company_id", "appraisal_group_id", "period_key",
            unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    appraisal_group_id = Column(Integer, ForeignKey("appraisal_groups.id"), nullable=False, index=True)

    appraisal_type = Column(SQLEnum(AppraisalType), nullable=False)
    review_scope = Column(SQLEnum(ReviewScope), default=ReviewScope.both, nullable=False)
    questionnaire_template_ids = Column(JSON, nullable=False, default=list)
    document_url = Column(String, nullable=True)  # KPI/MBO sheet

    frequency_calendar_id = Column(Integer, ForeignKey("frequency_calendars.id"), nullable=True)
    frequency_calendar_detail_id = Column(Integer, ForeignKey("frequency_calendar_details.id"), nullable=True)
    appraisal_cycle_id = Column(Integer, ForeignKey("appraisal_cycles.id"), nullable=True)
    period_key = Column(String, nullable=False, index=True)

    days_to_initiate = Column(Integer, default=0, nullable=False)
    days_to_close = Column(Integer, nullable=True)
    number_of_reminders = Column(Integer, default=3, nullable=False)
    exclude_tenure_less_than_year = Column(Boolean, default=False, nullable=False)
    excluded_employee_ids = Column(JSON, nullable=False, default=list)
    make_public = Column(Boolean, default=False, nullable=False)

    publish_type = Column(SQLEnum(PublishType), default=PublishType.now, nullable=False)
    status = Column(SQLEnum(AppraisalStatus), default=AppraisalStatus.active, nullable=False, index=True)

    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    appraisal_group = relationship("AppraisalGroup")
    frequency_calendar = relationship("FrequencyCalendar")
    frequency_calendar_detail = relationship("FrequencyCalendarDetail")
    appraisal_cycle = relationship("AppraisalCycle")
    created_by = relationship("User", foreign_keys=[created_by_id])
    evaluations = relationship("Evaluation", back_populates="initiated_appraisal")

    @property
    def due_date(self):
        if self.days_to_close is None or self.created_at is None:
            return None
        return as_utc(self.created_at) + timedelta(days=self.days_to_close)

    def __repr__(self):
        return f"<InitiatedAppraisal {self.id} group={self.appraisal_group_id} period={self.period_key}>"
