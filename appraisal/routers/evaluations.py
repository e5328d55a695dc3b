"""
Evaluation workflow endpoints.
Participants are checked in EvaluationService; the routes only authenticate.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from appraisal.core.permissions import Capability
from appraisal.database import get_db
from appraisal.models.evaluation import Evaluation, EvaluationStatus
from appraisal.models.user import User
from appraisal.routers.auth_deps import get_current_company, get_current_user, require_capability
from appraisal.schemas.evaluation import (
    CalibrationRequest, EvaluationActionResponse, EvaluationExportRequest, EvaluationResponse,
    ManagerReviewRequest, ManagerSubmissionResponse, MeetingNotesRequest,
    ScheduleMeetingRequest, SelfEvaluationRequest,
)
from appraisal.services import export_service
from appraisal.services.evaluation_service import EvaluationService

router = APIRouter(prefix="/evaluations", tags=["Evaluations"])


def to_response(evaluation: Evaluation, viewer: User) -> EvaluationResponse:
    response = EvaluationResponse.model_validate(evaluation)
    update = {
        "employee_name": evaluation.employee.full_name if evaluation.employee else None,
        "manager_name": evaluation.manager.full_name if evaluation.manager else None,
    }
    # Meeting notes stay private to the manager and HR unless shared
    if viewer.id == evaluation.employee_id and not evaluation.show_notes_to_employee:
        update["meeting_notes"] = None
    return response.model_copy(update=update)


def _action(evaluation: Evaluation, viewer: User, delivered: bool = True) -> EvaluationActionResponse:
    return EvaluationActionResponse(evaluation=to_response(evaluation, viewer), notification_delivered=delivered)


@router.get("", response_model=List[EvaluationResponse])
def list_evaluations(
    status: Optional[EvaluationStatus] = None,
    initiated_appraisal_id: Optional[int] = None,
    employee_id: Optional[int] = None,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(get_current_user),
):
    evaluations = EvaluationService(db, company_id).list_evaluations(
        current_user, status, initiated_appraisal_id, employee_id
    )
    return [to_response(e, current_user) for e in evaluations]


@router.get("/manager-submissions", response_model=List[ManagerSubmissionResponse])
def manager_submissions(
    status: Optional[EvaluationStatus] = None,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(get_current_user),
):
    evaluations = EvaluationService(db, company_id).manager_submissions(current_user.id, status)
    return [
        ManagerSubmissionResponse(
            evaluation_id=e.id,
            employee_id=e.employee_id,
            employee_name=e.employee.full_name,
            employee_code=e.employee.code,
            initiated_appraisal_id=e.initiated_appraisal_id,
            period_key=e.period_key,
            status=e.status,
            self_evaluation_submitted_at=e.self_evaluation_submitted_at,
            manager_evaluation_submitted_at=e.manager_evaluation_submitted_at,
            overall_rating=e.overall_rating,
        )
        for e in evaluations
    ]


@router.post("/export")
def export_evaluations(
    payload: EvaluationExportRequest,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(get_current_user),
):
    content = EvaluationService(db, company_id).export_documents(payload.evaluation_ids, current_user, payload.format)
    return Response(
        content=content,
        media_type=export_service.DOCUMENT_MEDIA_TYPES[payload.format],
        headers={"Content-Disposition": f'attachment; filename="evaluations.{payload.format}"'},
    )


@router.get("/{evaluation_id}", response_model=EvaluationResponse)
def get_evaluation(
    evaluation_id: int,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(get_current_user),
):
    evaluation = EvaluationService(db, company_id).get_for_actor(evaluation_id, current_user)
    return to_response(evaluation, current_user)


@router.put("/{evaluation_id}/self/draft", response_model=EvaluationActionResponse)
def save_self_draft(
    evaluation_id: int,
    payload: SelfEvaluationRequest,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(get_current_user),
):
    responses = [a.model_dump() for a in payload.responses]
    evaluation = EvaluationService(db, company_id).save_self_draft(evaluation_id, current_user, responses)
    return _action(evaluation, current_user)


@router.put("/{evaluation_id}/self", response_model=EvaluationActionResponse)
def submit_self_evaluation(
    evaluation_id: int,
    payload: SelfEvaluationRequest,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(get_current_user),
):
    responses = [a.model_dump() for a in payload.responses]
    evaluation, delivered = EvaluationService(db, company_id).submit_self(evaluation_id, current_user, responses)
    return _action(evaluation, current_user, delivered)


@router.put("/{evaluation_id}/manager-review", response_model=EvaluationActionResponse)
def submit_manager_review(
    evaluation_id: int,
    payload: ManagerReviewRequest,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(get_current_user),
):
    evaluation, delivered = EvaluationService(db, company_id).submit_manager_review(
        evaluation_id,
        current_user,
        payload.overall_rating,
        [a.model_dump() for a in payload.responses],
        payload.comments,
    )
    return _action(evaluation, current_user, delivered)


@router.post("/{evaluation_id}/schedule-meeting", response_model=EvaluationActionResponse)
def schedule_meeting(
    evaluation_id: int,
    payload: ScheduleMeetingRequest,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(get_current_user),
):
    evaluation, delivered = EvaluationService(db, company_id).schedule_meeting(
        evaluation_id, current_user, payload.meeting_date, payload.title, payload.description
    )
    return _action(evaluation, current_user, delivered)


@router.put("/{evaluation_id}/meeting-notes", response_model=EvaluationActionResponse)
def record_meeting(
    evaluation_id: int,
    payload: MeetingNotesRequest,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(get_current_user),
):
    evaluation = EvaluationService(db, company_id).record_meeting(
        evaluation_id,
        current_user,
        payload.meeting_notes,
        payload.show_notes_to_employee,
        payload.overall_rating,
    )
    return _action(evaluation, current_user)


@router.post("/{evaluation_id}/complete", response_model=EvaluationActionResponse)
def finalize_evaluation(
    evaluation_id: int,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(get_current_user),
):
    evaluation, delivered = EvaluationService(db, company_id).finalize(evaluation_id, current_user)
    return _action(evaluation, current_user, delivered)


@router.patch("/{evaluation_id}/calibrate", response_model=EvaluationResponse)
def calibrate_rating(
    evaluation_id: int,
    payload: CalibrationRequest,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(require_capability(Capability.calibrate)),
):
    evaluation = EvaluationService(db, company_id).calibrate(
        evaluation_id, current_user, payload.calibrated_rating, payload.calibration_remarks
    )
    return to_response(evaluation, current_user)
