import enum
from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey, JSON, Enum as SQLEnum
from sqlalchemy.sql import func
from appraisal.database import Base
from appraisal.models.company import RecordStatus


class QuestionType(str, enum.Enum):
    text = "text"
    textarea = "textarea"
    rating = "rating"


class TemplateTargetRole(str, enum.Enum):
    """Which participant answers the template."""
    employee = "employee"
    manager = "manager"


class QuestionnaireTemplate(Base):
    __tablename__ = "questionnaire_templates"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    target_role = Column(SQLEnum(TemplateTargetRole), nullable=False, index=True)

    # Applicability filters; NULL means "applies to everyone"
    applicable_level_id = Column(Integer, ForeignKey("levels.id"), nullable=True)
    applicable_grade_id = Column(Integer, ForeignKey("grades.id"), nullable=True)
    applicable_location_id = Column(Integer, ForeignKey("locations.id"), nullable=True)

    # Ordered list of {"id", "text", "type", "required"}
    questions = Column(JSON, nullable=False, default=list)
    send_on_mail = Column(Boolean, default=False)
    year = Column(Integer, nullable=True)
    status = Column(SQLEnum(RecordStatus), default=RecordStatus.active, nullable=False)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def applies_to(self, user) -> bool:
        """True when every set applicability filter matches the user."""
        if self.applicable_level_id is not None and self.applicable_level_id != user.level_id:
            return False
        if self.applicable_grade_id is not None and self.applicable_grade_id != user.grade_id:
            return False
        if self.applicable_location_id is not None and self.applicable_location_id != user.location_id:
            return False
        return True

    def __repr__(self):
        return f"<QuestionnaireTemplate {self.id}: {self.name} ({self.target_role.value})>"
