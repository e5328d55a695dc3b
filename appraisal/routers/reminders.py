from fastapi import APIRouter, Body, Depends, Request
from sqlalchemy.orm import Session

from appraisal.core.limiter import limiter
from appraisal.core.permissions import Capability
from appraisal.database import get_db
from appraisal.models.user import User
from appraisal.routers.auth_deps import get_current_company, require_capability
from appraisal.schemas.appraisal import ReminderRequest, ReminderResponse
from appraisal.services.reminder_service import ReminderService

router = APIRouter(tags=["Reminders"])


@router.post("/send-reminder", response_model=ReminderResponse)
@limiter.limit("30/minute")
def send_reminder(
    request: Request,
    payload: ReminderRequest = Body(...),
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(require_capability(Capability.send_reminders)),
):
    evaluation = ReminderService(db, company_id).send_reminder(
        payload.employee_id, payload.initiated_appraisal_id, current_user
    )
    return ReminderResponse(success=True, message=f"Reminder sent to {evaluation.employee.full_name}")
