from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import List, Optional
from datetime import datetime
from appraisal.models.company import RecordStatus
from appraisal.models.questionnaire_template import QuestionType, TemplateTargetRole


class Question(BaseModel):
    id: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1)
    type: QuestionType = QuestionType.text
    required: bool = False


def _unique_ids(questions: List[Question]) -> List[Question]:
    seen = set()
    for question in questions:
        if question.id in seen:
            raise ValueError(f"Duplicate question id '{question.id}'")
        seen.add(question.id)
    return questions


class TemplateBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    target_role: TemplateTargetRole
    applicable_level_id: Optional[int] = None
    applicable_grade_id: Optional[int] = None
    applicable_location_id: Optional[int] = None
    send_on_mail: bool = False
    year: Optional[int] = None


class TemplateCreate(TemplateBase):
    questions: List[Question] = Field(..., min_length=1)

    @field_validator("questions")
    @classmethod
    def check_ids(cls, value):
        return _unique_ids(value)


class TemplateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    applicable_level_id: Optional[int] = None
    applicable_grade_id: Optional[int] = None
    applicable_location_id: Optional[int] = None
    questions: Optional[List[Question]] = None
    status: Optional[RecordStatus] = None

    @field_validator("questions")
    @classmethod
    def check_ids(cls, value):
        if value is not None:
            if not value:
                raise ValueError("A template needs at least one question")
            _unique_ids(value)
        return value


class TemplateCopyRequest(BaseModel):
    name: Optional[str] = None
    year: Optional[int] = None


class TemplateResponse(TemplateBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    company_id: int
    questions: List[Question]
    status: RecordStatus
    created_at: Optional[datetime] = None
