"""
Department Model.
Departments are an org dimension used to filter appraisal groups and progress reports.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, Enum as SQLEnum, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from appraisal.database import Base
from appraisal.models.company import RecordStatus


class Department(Base):
    __tablename__ = "departments"
    __table_args__ = (UniqueConstraint("company_id", "code", name="uq_department_company_code"),)

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)

    name = Column(String, nullable=False, index=True)
    code = Column(String, nullable=False, index=True)  # Short code like "ENG", "HR", "FIN"
    description = Column(Text, nullable=True)

    status = Column(SQLEnum(RecordStatus), default=RecordStatus.active, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    employees = relationship("User", foreign_keys="User.department_id", back_populates="department")

    def __repr__(self):
        return f"<Department {self.code}: {self.name}>"
