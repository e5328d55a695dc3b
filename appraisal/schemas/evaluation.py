from pydantic import BaseModel, Field, ConfigDict
from typing import Annotated, List, Literal, Optional, Union
from datetime import datetime
from appraisal.models.evaluation import EvaluationStatus


class TextAnswer(BaseModel):
    template_id: int
    question_id: str
    type: Literal["text", "textarea"]
    value: str


class RatingAnswer(BaseModel):
    template_id: int
    question_id: str
    type: Literal["rating"]
    value: int = Field(..., ge=1, le=5)


# Answers are tagged by question type; the tag must match the question
Answer = Annotated[Union[TextAnswer, RatingAnswer], Field(discriminator="type")]


class SelfEvaluationRequest(BaseModel):
    responses: List[Answer] = []


class ManagerReviewRequest(BaseModel):
    responses: List[Answer] = []
    overall_rating: int
    comments: Optional[str] = None


class ScheduleMeetingRequest(BaseModel):
    meeting_date: datetime
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None


class MeetingNotesRequest(BaseModel):
    meeting_notes: str = Field(..., min_length=1)
    show_notes_to_employee: bool = False
    overall_rating: Optional[int] = None


class CalibrationRequest(BaseModel):
    calibrated_rating: int
    calibration_remarks: Optional[str] = None


class EvaluationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    employee_id: int
    employee_name: Optional[str] = None
    manager_id: int
    manager_name: Optional[str] = None
    initiated_appraisal_id: int
    appraisal_cycle_id: Optional[int] = None
    frequency_calendar_detail_id: Optional[int] = None
    period_key: str
    questionnaire_template_ids: List[int] = []
    status: EvaluationStatus

    self_evaluation_data: Optional[List[Answer]] = None
    self_evaluation_submitted_at: Optional[datetime] = None
    manager_evaluation_data: Optional[List[Answer]] = None
    manager_evaluation_submitted_at: Optional[datetime] = None
    manager_comments: Optional[str] = None
    overall_rating: Optional[int] = None
    calibrated_rating: Optional[int] = None
    calibration_remarks: Optional[str] = None
    calibrated_at: Optional[datetime] = None
    effective_rating: Optional[int] = None

    meeting_scheduled_at: Optional[datetime] = None
    meeting_title: Optional[str] = None
    meeting_description: Optional[str] = None
    meeting_notes: Optional[str] = None
    show_notes_to_employee: bool = False
    meeting_completed_at: Optional[datetime] = None
    finalized_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class EvaluationActionResponse(BaseModel):
    evaluation: EvaluationResponse
    # False when the follow-up notification could not be delivered; the transition still stands
    notification_delivered: bool = True


class ManagerSubmissionResponse(BaseModel):
    evaluation_id: int
    employee_id: int
    employee_name: str
    employee_code: Optional[str] = None
    initiated_appraisal_id: int
    period_key: str
    status: EvaluationStatus
    self_evaluation_submitted_at: Optional[datetime] = None
    manager_evaluation_submitted_at: Optional[datetime] = None
    overall_rating: Optional[int] = None


class EvaluationExportRequest(BaseModel):
    evaluation_ids: List[int] = Field(..., min_length=1)
    format: Literal["pdf", "docx"] = "pdf"
