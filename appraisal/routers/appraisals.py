"""
Appraisal initiation, scheduled tasks and progress reporting.
Fixed paths are declared before the /{appraisal_id} routes.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from appraisal.core.clock import utcnow
from appraisal.core.permissions import Capability
from appraisal.database import get_db
from appraisal.models.scheduled_task import ScheduledTaskStatus
from appraisal.models.user import User
from appraisal.routers.auth_deps import get_current_company, require_capability
from appraisal.schemas.appraisal import (
    AppraisalProgress, InitiateAppraisalRequest, InitiateAppraisalResponse,
    InitiatedAppraisalResponse, ProgressFilters, ProgressRow,
    ScheduledRunResponse, ScheduledTaskResponse,
)
from appraisal.services import export_service
from appraisal.services.initiation_service import InitiationService
from appraisal.services.progress_service import ProgressService
from appraisal.services.scheduled_task_runner import ScheduledTaskRunner

router = APIRouter(prefix="/appraisals", tags=["Appraisals"])

initiate_guard = require_capability(Capability.initiate_appraisals)
progress_guard = require_capability(Capability.view_progress)
scheduler_guard = require_capability(Capability.run_scheduled_tasks)


@router.post("/initiate", response_model=InitiateAppraisalResponse, status_code=201)
def initiate_appraisal(
    payload: InitiateAppraisalRequest,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(initiate_guard),
):
    request = payload.model_dump()
    request["period_timings"] = [t.model_dump() for t in payload.period_timings]
    result = InitiationService(db, company_id).initiate(current_user, request)
    return InitiateAppraisalResponse(
        publish_type=result.publish_type,
        initiated_appraisals=[InitiatedAppraisalResponse.model_validate(a) for a in result.initiated_appraisals],
        scheduled_tasks=[ScheduledTaskResponse.model_validate(t) for t in result.scheduled_tasks],
        evaluations_created=result.evaluations_created,
        emails_failed=result.emails_failed,
    )


# --- Progress ---
@router.get("", response_model=List[AppraisalProgress])
def appraisal_progress(
    filters: ProgressFilters = Depends(),
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(progress_guard),
):
    return ProgressService(db, company_id).aggregate(filters.model_dump())


@router.get("/rows", response_model=List[ProgressRow])
def progress_rows(
    filters: ProgressFilters = Depends(),
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(progress_guard),
):
    return ProgressService(db, company_id).rows(filters.model_dump())


@router.post("/rows/export")
def export_progress_rows(
    filters: ProgressFilters,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(progress_guard),
):
    rows = ProgressService(db, company_id).rows(filters.model_dump())
    content = export_service.rows_to_xlsx(rows)
    filename = f"appraisal_progress_{utcnow():%Y%m%d}.xlsx"
    return Response(
        content=content,
        media_type=export_service.XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# --- Scheduled tasks ---
@router.get("/scheduled-tasks", response_model=List[ScheduledTaskResponse])
def list_scheduled_tasks(
    status: Optional[ScheduledTaskStatus] = None,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(scheduler_guard),
):
    return ScheduledTaskRunner(db, company_id).list_tasks(status)


@router.post("/scheduled-tasks/run", response_model=ScheduledRunResponse)
def run_scheduled_tasks(
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(scheduler_guard),
):
    """Process this company's due tasks now instead of waiting for the next sweep."""
    summary = ScheduledTaskRunner(db, company_id).run_due()
    return ScheduledRunResponse(
        claimed=summary.claimed,
        executed=summary.executed,
        failed=summary.failed,
        reclaimed=summary.reclaimed,
        tasks=[ScheduledTaskResponse.model_validate(t) for t in summary.tasks],
    )


@router.get("/scheduled-tasks/{task_id}", response_model=ScheduledTaskResponse)
def get_scheduled_task(
    task_id: int,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(scheduler_guard),
):
    return ScheduledTaskRunner(db, company_id).get_task(task_id)


@router.post("/scheduled-tasks/{task_id}/requeue", response_model=ScheduledTaskResponse)
def requeue_scheduled_task(
    task_id: int,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(scheduler_guard),
):
    return ScheduledTaskRunner(db, company_id).requeue(task_id)


# --- Initiated appraisals ---
@router.get("/{appraisal_id}", response_model=InitiatedAppraisalResponse)
def get_appraisal(
    appraisal_id: int,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(progress_guard),
):
    return InitiationService(db, company_id).get_appraisal(appraisal_id)


@router.post("/{appraisal_id}/generate-evaluations", response_model=InitiateAppraisalResponse)
def generate_evaluations(
    appraisal_id: int,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(initiate_guard),
):
    created = InitiationService(db, company_id).generate_evaluations(appraisal_id, current_user)
    return InitiateAppraisalResponse(
        publish_type=created.initiated_appraisal.publish_type,
        initiated_appraisals=[InitiatedAppraisalResponse.model_validate(created.initiated_appraisal)],
        evaluations_created=len(created.evaluations),
        emails_failed=created.emails_failed,
    )
