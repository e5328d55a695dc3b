"""
Company configuration endpoints: org dimensions, employees, appraisal cycles,
review frequencies and frequency calendars.
"""
from typing import List, Type

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel
from sqlalchemy.orm import Session

from appraisal.core.permissions import Capability
from appraisal.database import get_db
from appraisal.models.company import RecordStatus
from appraisal.models.user import User
from appraisal.routers.auth_deps import get_current_company, get_current_user, require_capability
from appraisal.schemas.org import (
    AppraisalCycleCreate, AppraisalCycleResponse,
    CalendarDetailCreate, CalendarDetailResponse,
    DepartmentCreate, DepartmentResponse,
    DimensionUpdate,
    EmployeeBulkUpload, EmployeeBulkUploadResponse,
    EmployeeCreate, EmployeeResponse, EmployeeUpdate,
    FrequencyCalendarCreate, FrequencyCalendarResponse,
    GradeCreate, GradeResponse,
    LevelCreate, LevelResponse,
    LocationCreate, LocationResponse,
    ReviewFrequencyCreate, ReviewFrequencyResponse,
)
from appraisal.services import employee_import
from appraisal.services.export_service import XLSX_MEDIA_TYPE
from appraisal.services.org_service import DIMENSION_MODELS, OrgService

router = APIRouter(prefix="/org", tags=["Organization"])

manage_config = require_capability(Capability.manage_org_config)


def _register_dimension(path: str, create_schema: Type[BaseModel], response_schema: Type[BaseModel]):
    """List/create/update/deactivate routes for one org dimension."""
    model = DIMENSION_MODELS[path]

    def list_items(
        include_inactive: bool = False,
        db: Session = Depends(get_db),
        company_id: int = Depends(get_current_company),
        current_user: User = Depends(get_current_user),
    ):
        return OrgService(db, company_id).list_dimension(model, include_inactive)

    def create_item(
        payload: create_schema,
        db: Session = Depends(get_db),
        company_id: int = Depends(get_current_company),
        current_user: User = Depends(manage_config),
    ):
        return OrgService(db, company_id).create_dimension(model, payload.model_dump())

    def update_item(
        item_id: int,
        payload: DimensionUpdate,
        db: Session = Depends(get_db),
        company_id: int = Depends(get_current_company),
        current_user: User = Depends(manage_config),
    ):
        return OrgService(db, company_id).update_dimension(model, item_id, payload.model_dump(exclude_unset=True))

    def deactivate_item(
        item_id: int,
        db: Session = Depends(get_db),
        company_id: int = Depends(get_current_company),
        current_user: User = Depends(manage_config),
    ):
        return OrgService(db, company_id).deactivate_dimension(model, item_id)

    router.add_api_route(f"/{path}", list_items, methods=["GET"], response_model=List[response_schema])
    router.add_api_route(f"/{path}", create_item, methods=["POST"], response_model=response_schema, status_code=201)
    router.add_api_route(f"/{path}/{{item_id}}", update_item, methods=["PATCH"], response_model=response_schema)
    router.add_api_route(f"/{path}/{{item_id}}", deactivate_item, methods=["DELETE"], response_model=response_schema)


_register_dimension("locations", LocationCreate, LocationResponse)
_register_dimension("departments", DepartmentCreate, DepartmentResponse)
_register_dimension("levels", LevelCreate, LevelResponse)
_register_dimension("grades", GradeCreate, GradeResponse)


# --- Employees ---
@router.get("/employees", response_model=List[EmployeeResponse])
def list_employees(
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(require_capability(Capability.manage_appraisal_groups)),
):
    return OrgService(db, company_id).list_employees(include_inactive)


@router.post("/employees", response_model=EmployeeResponse, status_code=201)
def create_employee(
    payload: EmployeeCreate,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(manage_config),
):
    return OrgService(db, company_id).create_employee(payload.model_dump())


@router.get("/employees/bulk-upload/template")
def download_import_template(current_user: User = Depends(manage_config)):
    return Response(
        content=employee_import.build_template(),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": 'attachment; filename="employee_import_template.xlsx"'},
    )


@router.post("/employees/bulk-upload", response_model=EmployeeBulkUploadResponse)
def bulk_upload_employees(
    payload: EmployeeBulkUpload,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(manage_config),
):
    return OrgService(db, company_id).bulk_import_employees(payload.file_data)


@router.patch("/employees/{employee_id}", response_model=EmployeeResponse)
def update_employee(
    employee_id: int,
    payload: EmployeeUpdate,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(manage_config),
):
    return OrgService(db, company_id).update_employee(employee_id, payload.model_dump(exclude_unset=True))


# --- Appraisal cycles ---
@router.get("/appraisal-cycles", response_model=List[AppraisalCycleResponse])
def list_cycles(
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(get_current_user),
):
    return OrgService(db, company_id).list_cycles()


@router.post("/appraisal-cycles", response_model=AppraisalCycleResponse, status_code=201)
def create_cycle(
    payload: AppraisalCycleCreate,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(manage_config),
):
    return OrgService(db, company_id).create_cycle(payload.model_dump())


@router.patch("/appraisal-cycles/{cycle_id}/status", response_model=AppraisalCycleResponse)
def set_cycle_status(
    cycle_id: int,
    status: RecordStatus,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(manage_config),
):
    return OrgService(db, company_id).set_cycle_status(cycle_id, status)


# --- Review frequencies ---
@router.get("/review-frequencies", response_model=List[ReviewFrequencyResponse])
def list_frequencies(
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(get_current_user),
):
    return OrgService(db, company_id).list_frequencies()


@router.post("/review-frequencies", response_model=ReviewFrequencyResponse, status_code=201)
def create_frequency(
    payload: ReviewFrequencyCreate,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(manage_config),
):
    return OrgService(db, company_id).create_frequency(payload.model_dump())


# --- Frequency calendars ---
@router.get("/frequency-calendars", response_model=List[FrequencyCalendarResponse])
def list_calendars(
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(get_current_user),
):
    return OrgService(db, company_id).list_calendars()


@router.post("/frequency-calendars", response_model=FrequencyCalendarResponse, status_code=201)
def create_calendar(
    payload: FrequencyCalendarCreate,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(manage_config),
):
    return OrgService(db, company_id).create_calendar(payload.model_dump())


@router.get("/frequency-calendars/{calendar_id}", response_model=FrequencyCalendarResponse)
def get_calendar(
    calendar_id: int,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(get_current_user),
):
    return OrgService(db, company_id).get_calendar(calendar_id)


@router.post("/frequency-calendars/{calendar_id}/details", response_model=CalendarDetailResponse, status_code=201)
def add_calendar_detail(
    calendar_id: int,
    payload: CalendarDetailCreate,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(manage_config),
):
    return OrgService(db, company_id).add_calendar_detail(calendar_id, payload.model_dump())
