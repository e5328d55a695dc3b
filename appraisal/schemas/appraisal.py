from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import List, Optional
from datetime import datetime
from appraisal.core.config import settings
from appraisal.models.company import RecordStatus
from appraisal.models.initiated_appraisal import AppraisalType, ReviewScope, PublishType, AppraisalStatus
from appraisal.models.scheduled_task import ScheduledTaskStatus
from appraisal.models.evaluation import EvaluationStatus


# --- Appraisal groups ---
class AppraisalGroupCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    member_ids: List[int] = []


class AppraisalGroupUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    status: Optional[RecordStatus] = None


class AppraisalGroupResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    status: RecordStatus
    member_count: int = 0
    created_at: Optional[datetime] = None


class GroupMemberAddRequest(BaseModel):
    user_ids: List[int] = Field(..., min_length=1)


class GroupMemberFilterRequest(BaseModel):
    """Adds every active employee matching all the given org dimensions."""
    location_ids: List[int] = []
    department_ids: List[int] = []
    level_ids: List[int] = []
    grade_ids: List[int] = []

    @model_validator(mode="after")
    def require_a_filter(self):
        if not (self.location_ids or self.department_ids or self.level_ids or self.grade_ids):
            raise ValueError("At least one location, department, level or grade filter is required")
        return self


class GroupMemberResponse(BaseModel):
    user_id: int
    full_name: str
    email: str
    code: Optional[str] = None
    department_id: Optional[int] = None
    location_id: Optional[int] = None
    level_id: Optional[int] = None
    grade_id: Optional[int] = None


class GroupMembershipChange(BaseModel):
    added: int
    already_members: int


# --- Initiation ---
class PeriodTiming(BaseModel):
    """Timing override for one selected calendar period."""
    frequency_calendar_detail_id: int
    days_to_initiate: Optional[int] = Field(None, ge=0)
    days_to_close: Optional[int] = Field(None, ge=1)


class InitiateAppraisalRequest(BaseModel):
    appraisal_group_id: int
    appraisal_type: AppraisalType
    review_scope: ReviewScope = ReviewScope.both
    publish_type: PublishType = PublishType.now
    questionnaire_template_ids: List[int] = []
    document_url: Optional[str] = None

    appraisal_cycle_id: Optional[int] = None
    frequency_calendar_id: Optional[int] = None
    frequency_calendar_detail_ids: List[int] = []
    period_timings: List[PeriodTiming] = []

    days_to_initiate: int = Field(0, ge=0)
    days_to_close: Optional[int] = Field(None, ge=1)
    number_of_reminders: int = Field(settings.default_number_of_reminders, ge=0)
    exclude_tenure_less_than_year: bool = False
    excluded_employee_ids: List[int] = []
    make_public: bool = False


class InitiatedAppraisalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    appraisal_group_id: int
    appraisal_type: AppraisalType
    review_scope: ReviewScope
    questionnaire_template_ids: List[int] = []
    document_url: Optional[str] = None
    appraisal_cycle_id: Optional[int] = None
    frequency_calendar_id: Optional[int] = None
    frequency_calendar_detail_id: Optional[int] = None
    period_key: str
    days_to_initiate: int
    days_to_close: Optional[int] = None
    number_of_reminders: int
    publish_type: PublishType
    status: AppraisalStatus
    created_at: Optional[datetime] = None
    due_date: Optional[datetime] = None


class ScheduledTaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    appraisal_group_id: int
    appraisal_type: AppraisalType
    review_scope: ReviewScope
    frequency_calendar_id: int
    frequency_calendar_detail_id: int
    days_to_initiate: int
    days_to_close: Optional[int] = None
    scheduled_at: datetime
    status: ScheduledTaskStatus
    claimed_at: Optional[datetime] = None
    executed_at: Optional[datetime] = None
    error: Optional[str] = None
    initiated_appraisal_id: Optional[int] = None
    evaluations_created: int = 0


class InitiateAppraisalResponse(BaseModel):
    publish_type: PublishType
    initiated_appraisals: List[InitiatedAppraisalResponse] = []
    scheduled_tasks: List[ScheduledTaskResponse] = []
    evaluations_created: int = 0
    emails_failed: int = 0


class ScheduledRunResponse(BaseModel):
    claimed: int
    executed: int
    failed: int
    reclaimed: int = 0
    tasks: List[ScheduledTaskResponse] = []


# --- Progress & reporting ---
class ProgressFilters(BaseModel):
    """Every filter is optional; unset or "all" means no constraint."""
    initiated_appraisal_id: Optional[int] = None
    appraisal_group_id: Optional[int] = None
    employee: Optional[str] = None
    location_id: Optional[int] = None
    department_id: Optional[int] = None
    level_id: Optional[int] = None
    grade_id: Optional[int] = None
    manager_id: Optional[int] = None
    status: Optional[str] = None
    appraisal_cycle_id: Optional[int] = None
    frequency_calendar_detail_id: Optional[int] = None


class EmployeeProgress(BaseModel):
    evaluation_id: int
    employee_id: int
    employee_name: str
    employee_code: Optional[str] = None
    manager_id: int
    manager_name: Optional[str] = None
    department: Optional[str] = None
    location: Optional[str] = None
    level: Optional[str] = None
    grade: Optional[str] = None
    status: EvaluationStatus
    completed: bool
    overall_rating: Optional[int] = None
    calibrated_rating: Optional[int] = None
    effective_rating: Optional[int] = None


class AppraisalProgress(BaseModel):
    initiated_appraisal_id: int
    appraisal_group_id: int
    appraisal_group_name: Optional[str] = None
    appraisal_type: AppraisalType
    period_key: str
    frequency_calendar: Optional[str] = None
    status: AppraisalStatus
    created_at: Optional[datetime] = None
    due_date: Optional[datetime] = None
    total_employees: int
    completed_evaluations: int
    percentage: int
    employee_progress: List[EmployeeProgress] = []


class ProgressRow(EmployeeProgress):
    initiated_appraisal_id: int
    appraisal_group: Optional[str] = None
    appraisal_type: AppraisalType
    frequency_calendar: Optional[str] = None
    created_at: Optional[datetime] = None
    due_date: Optional[datetime] = None


class ReminderRequest(BaseModel):
    employee_id: int
    initiated_appraisal_id: int


class ReminderResponse(BaseModel):
    success: bool
    message: str
