import enum
from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey, JSON, Enum as SQLEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from appraisal.database import Base
from appraisal.models.initiated_appraisal import AppraisalType, ReviewScope


class ScheduledTaskStatus(str, enum.Enum):
    pending = "pending"
    processing = "processing"
    executed = "executed"
    failed = "failed"


class ScheduledAppraisalTask(Base):
    """
    A deferred initiation for one calendar period.
    Carries the full initiation request; the runner turns it into an
    InitiatedAppraisal with membership resolved at execution time.
    """
    __tablename__ = "scheduled_appraisal_tasks"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    appraisal_group_id = Column(Integer, ForeignKey("appraisal_groups.id"), nullable=False)
    appraisal_type = Column(SQLEnum(AppraisalType), nullable=False)
    review_scope = Column(SQLEnum(ReviewScope), nullable=False)
    questionnaire_template_ids = Column(JSON, nullable=False, default=list)
    document_url = Column(String, nullable=True)

    frequency_calendar_id = Column(Integer, ForeignKey("frequency_calendars.id"), nullable=False)
    frequency_calendar_detail_id = Column(Integer, ForeignKey("frequency_calendar_details.id"), nullable=False)
    appraisal_cycle_id = Column(Integer, ForeignKey("appraisal_cycles.id"), nullable=True)

    days_to_initiate = Column(Integer, default=0, nullable=False)
    days_to_close = Column(Integer, nullable=True)
    number_of_reminders = Column(Integer, default=3, nullable=False)
    exclude_tenure_less_than_year = Column(Boolean, default=False, nullable=False)
    excluded_employee_ids = Column(JSON, nullable=False, default=list)
    make_public = Column(Boolean, default=False, nullable=False)

    scheduled_at = Column(DateTime(timezone=True), nullable=False, index=True)
    status = Column(SQLEnum(ScheduledTaskStatus), default=ScheduledTaskStatus.pending, nullable=False, index=True)
    claimed_at = Column(DateTime(timezone=True), nullable=True)
    executed_at = Column(DateTime(timezone=True), nullable=True)
    error = Column(Text, nullable=True)
    initiated_appraisal_id = Column(Integer, ForeignKey("initiated_appraisals.id"), nullable=True)
    evaluations_created = Column(Integer, default=0, nullable=False)

    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    frequency_calendar_detail = relationship("FrequencyCalendarDetail")
    initiated_appraisal = relationship("InitiatedAppraisal")
