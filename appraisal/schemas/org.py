from pydantic import BaseModel, Base64Bytes, Field, ConfigDict, EmailStr, model_validator
from typing import Optional, List
from datetime import datetime
from appraisal.models.company import RecordStatus
from appraisal.models.user import UserRole

CODE_PATTERN = "^[A-Za-z0-9_-]+$"


class CompanyCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    company_url: Optional[str] = Field(None, pattern=CODE_PATTERN)
    address: Optional[str] = None
    email: Optional[EmailStr] = None


class CompanyResponse(CompanyCreate):
    model_config = ConfigDict(from_attributes=True)

    id: int
    status: RecordStatus
    email: Optional[str] = None


class CompanyUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    address: Optional[str] = None
    email: Optional[EmailStr] = None


class CompanyOnboardRequest(CompanyCreate):
    """A new tenant together with its first ADMIN account."""
    admin_email: EmailStr
    admin_password: str = Field(..., min_length=8)
    admin_first_name: str = Field(..., min_length=1)
    admin_last_name: Optional[str] = None


class CompanyOnboardResponse(BaseModel):
    company: CompanyResponse
    admin_user_id: int


# --- Org dimensions ---
class DimensionBase(BaseModel):
    code: str = Field(..., min_length=1, max_length=20, pattern=CODE_PATTERN)
    status: RecordStatus = RecordStatus.active


class LocationCreate(DimensionBase):
    name: str = Field(..., min_length=1, max_length=100)
    state: Optional[str] = None
    country: Optional[str] = None


class LocationResponse(LocationCreate):
    model_config = ConfigDict(from_attributes=True)
    id: int
    company_id: int


class DepartmentCreate(DimensionBase):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None


class DepartmentResponse(DepartmentCreate):
    model_config = ConfigDict(from_attributes=True)
    id: int
    company_id: int


class LevelCreate(DimensionBase):
    description: str = Field(..., min_length=1)


class LevelResponse(LevelCreate):
    model_config = ConfigDict(from_attributes=True)
    id: int
    company_id: int


class GradeCreate(DimensionBase):
    description: str = Field(..., min_length=1)


class GradeResponse(GradeCreate):
    model_config = ConfigDict(from_attributes=True)
    id: int
    company_id: int


class DimensionUpdate(BaseModel):
    """Partial update shared by every org dimension."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    status: Optional[RecordStatus] = None


# --- Employees ---
class EmployeeCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    first_name: str
    last_name: Optional[str] = None
    code: Optional[str] = None
    designation: Optional[str] = None
    role: UserRole = UserRole.EMPLOYEE
    department_id: Optional[int] = None
    location_id: Optional[int] = None
    level_id: Optional[int] = None
    grade_id: Optional[int] = None
    reporting_manager_id: Optional[int] = None
    date_of_joining: Optional[datetime] = None


class EmployeeUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    designation: Optional[str] = None
    role: Optional[UserRole] = None
    department_id: Optional[int] = None
    location_id: Optional[int] = None
    level_id: Optional[int] = None
    grade_id: Optional[int] = None
    reporting_manager_id: Optional[int] = None
    date_of_joining: Optional[datetime] = None
    is_active: Optional[bool] = None


class EmployeeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    full_name: str
    code: Optional[str] = None
    designation: Optional[str] = None
    role: UserRole
    department_id: Optional[int] = None
    location_id: Optional[int] = None
    level_id: Optional[int] = None
    grade_id: Optional[int] = None
    reporting_manager_id: Optional[int] = None
    date_of_joining: Optional[datetime] = None
    is_active: bool


class EmployeeBulkUpload(BaseModel):
    file_data: Base64Bytes  # base64-encoded XLSX built from the import template


class ImportedEmployee(BaseModel):
    row: int
    email: str
    name: str


class RejectedRow(BaseModel):
    row: int
    email: Optional[str] = None
    error: str


class ImportSummary(BaseModel):
    total: int
    successful: int
    failed: int


class EmployeeBulkUploadResponse(BaseModel):
    summary: ImportSummary
    success: List[ImportedEmployee]
    errors: List[RejectedRow]


# --- Cycles & calendars ---
class AppraisalCycleCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=20, pattern=CODE_PATTERN)
    description: str = Field(..., min_length=1)
    from_date: datetime
    to_date: datetime
    status: RecordStatus = RecordStatus.active

    @model_validator(mode="after")
    def check_dates(self):
        if self.from_date > self.to_date:
            raise ValueError("from_date must be on or before to_date")
        return self


class AppraisalCycleResponse(AppraisalCycleCreate):
    model_config = ConfigDict(from_attributes=True)
    id: int
    company_id: int


class ReviewFrequencyCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=20, pattern=CODE_PATTERN)
    description: str = Field(..., min_length=1)


class ReviewFrequencyResponse(ReviewFrequencyCreate):
    model_config = ConfigDict(from_attributes=True)
    id: int
    company_id: int
    status: RecordStatus


class CalendarDetailCreate(BaseModel):
    display_name: str = Field(..., min_length=1)
    start_date: datetime
    end_date: datetime

    @model_validator(mode="after")
    def check_dates(self):
        if self.start_date > self.end_date:
            raise ValueError("start_date must be on or before end_date")
        return self


class CalendarDetailResponse(CalendarDetailCreate):
    model_config = ConfigDict(from_attributes=True)
    id: int
    frequency_calendar_id: int
    status: RecordStatus


class FrequencyCalendarCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=20, pattern=CODE_PATTERN)
    description: str = Field(..., min_length=1)
    appraisal_cycle_id: int
    review_frequency_id: Optional[int] = None
    details: List[CalendarDetailCreate] = []


class FrequencyCalendarResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    company_id: int
    code: str
    description: str
    appraisal_cycle_id: int
    review_frequency_id: Optional[int] = None
    status: RecordStatus
    details: List[CalendarDetailResponse] = []
