from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Enum as SQLEnum, UniqueConstraint
from sqlalchemy.sql import func
from appraisal.database import Base
from appraisal.models.company import RecordStatus


class Level(Base):
    __tablename__ = "levels"
    __table_args__ = (UniqueConstraint("company_id", "code", name="uq_level_company_code"),)

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    code = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    status = Column(SQLEnum(RecordStatus), default=RecordStatus.active, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
