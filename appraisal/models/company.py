import enum
from sqlalchemy import Column, Integer, String, Text, DateTime, Enum as SQLEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from appraisal.database import Base


class RecordStatus(str, enum.Enum):
    active = "active"
    inactive = "inactive"


class Company(Base):
    """Tenant root. Every tenant-owned row carries a company_id."""
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    # URL slug used on the company login page (e.g. "hfactor")
    company_url = Column(String, unique=True, nullable=True, index=True)
    address = Column(Text, nullable=True)
    email = Column(String, nullable=True)
    status = Column(SQLEnum(RecordStatus), default=RecordStatus.active, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    users = relationship("User", back_populates="company")

    def __repr__(self):
        return f"<Company {self.name}>"
