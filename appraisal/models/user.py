"""
User Model with role-based access.
Every user belongs to one company (tenant); employees carry their org dimensions
and reporting manager so appraisal groups and progress reports can filter on them.
"""
from sqlalchemy import Column, Integer, String, Enum, DateTime, Boolean, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum
from appraisal.database import Base


class UserRole(str, enum.Enum):
    """
    User roles, most to least permissions:
    - super_admin: Platform-wide access (company management)
    - admin: Company configuration (org dimensions, calendars, templates)
    - hr_manager: Appraisal groups, initiation, progress, calibration
    - manager: Reviews and meetings for direct reports
    - employee: Self-evaluation and development goals
    """
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    HR_MANAGER = "hr_manager"
    MANAGER = "manager"
    EMPLOYEE = "employee"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    code = Column(String, nullable=True, index=True)  # Employee code, e.g. "EMP-0042"
    designation = Column(String, nullable=True)

    role = Column(Enum(UserRole), default=UserRole.EMPLOYEE, nullable=False)

    company_id = Column(Integer, ForeignKey("companies.id"), nullable=True, index=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=True, index=True)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=True, index=True)
    level_id = Column(Integer, ForeignKey("levels.id"), nullable=True, index=True)
    grade_id = Column(Integer, ForeignKey("grades.id"), nullable=True, index=True)
    reporting_manager_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)

    date_of_joining = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    company = relationship("Company", back_populates="users")
    department = relationship("Department", foreign_keys=[department_id], back_populates="employees")
    location = relationship("Location")
    level = relationship("Level")
    grade = relationship("Grade")
    reporting_manager = relationship("User", remote_side=[id], back_populates="direct_reports")
    direct_reports = relationship("User", back_populates="reporting_manager")
    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User {self.email} ({self.role.value})>"

    @property
    def full_name(self) -> str:
        name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return name or self.email

    @property
    def is_hr(self) -> bool:
        """Check if user can run appraisal operations (initiation, calibration)."""
        return self.role in [UserRole.SUPER_ADMIN, UserRole.ADMIN, UserRole.HR_MANAGER]
