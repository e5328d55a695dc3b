from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Enum as SQLEnum, UniqueConstraint, CheckConstraint
from sqlalchemy.sql import func
from appraisal.database import Base
from appraisal.models.company import RecordStatus


class AppraisalCycle(Base):
    __tablename__ = "appraisal_cycles"
    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uq_appraisal_cycle_company_code"),
        CheckConstraint("from_date <= to_date", name="ck_appraisal_cycle_dates"),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    code = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    from_date = Column(DateTime(timezone=True), nullable=False)
    to_date = Column(DateTime(timezone=True), nullable=False)
    status = Column(SQLEnum(RecordStatus), default=RecordStatus.active, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def is_active(self) -> bool:
        return self.status == RecordStatus.active
