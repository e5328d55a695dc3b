from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Enum as SQLEnum, UniqueConstraint, CheckConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from appraisal.database import Base
from appraisal.models.company import RecordStatus


class ReviewFrequency(Base):
    """Named cadence such as MONTHLY, QUARTERLY or ANNUAL."""
    __tablename__ = "review_frequencies"
    __table_args__ = (UniqueConstraint("company_id", "code", name="uq_review_frequency_company_code"),)

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    code = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    status = Column(SQLEnum(RecordStatus), default=RecordStatus.active, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class FrequencyCalendar(Base):
    __tablename__ = "frequency_calendars"
    __table_args__ = (UniqueConstraint("company_id", "code", name="uq_frequency_calendar_company_code"),)

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    code = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    appraisal_cycle_id = Column(Integer, ForeignKey("appraisal_cycles.id"), nullable=False)
    review_frequency_id = Column(Integer, ForeignKey("review_frequencies.id"), nullable=True)
    status = Column(SQLEnum(RecordStatus), default=RecordStatus.active, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    appraisal_cycle = relationship("AppraisalCycle")
    review_frequency = relationship("ReviewFrequency")
    details = relationship(
        "FrequencyCalendarDetail",
        back_populates="calendar",
        cascade="all, delete-orphan",
        order_by="FrequencyCalendarDetail.start_date",
    )


class FrequencyCalendarDetail(Base):
    """One period of a calendar, e.g. "Q1 2026"."""
    __tablename__ = "frequency_calendar_details"
    __table_args__ = (CheckConstraint("start_date <= end_date", name="ck_calendar_detail_dates"),)

    id = Column(Integer, primary_key=True, index=True)
    frequency_calendar_id = Column(Integer, ForeignKey("frequency_calendars.id"), nullable=False, index=True)
    display_name = Column(String, nullable=False)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    status = Column(SQLEnum(RecordStatus), default=RecordStatus.active, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    calendar = relationship("FrequencyCalendar", back_populates="details")
