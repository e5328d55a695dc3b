from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from appraisal.core.permissions import Capability
from appraisal.database import get_db
from appraisal.models.questionnaire_template import TemplateTargetRole
from appraisal.models.user import User
from appraisal.routers.auth_deps import get_current_company, get_current_user, require_capability
from appraisal.schemas.questionnaire import TemplateCopyRequest, TemplateCreate, TemplateResponse, TemplateUpdate
from appraisal.services.questionnaire_service import QuestionnaireService

router = APIRouter(prefix="/questionnaires", tags=["Questionnaires"])

manage_templates = require_capability(Capability.manage_templates)


@router.get("", response_model=List[TemplateResponse])
def list_templates(
    target_role: Optional[TemplateTargetRole] = None,
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(get_current_user),
):
    return QuestionnaireService(db, company_id).list_templates(target_role, include_inactive)


@router.post("", response_model=TemplateResponse, status_code=201)
def create_template(
    payload: TemplateCreate,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(manage_templates),
):
    return QuestionnaireService(db, company_id).create_template(payload.model_dump(mode="json"), current_user.id)


@router.get("/{template_id}", response_model=TemplateResponse)
def get_template(
    template_id: int,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(get_current_user),
):
    return QuestionnaireService(db, company_id).get_template(template_id)


@router.patch("/{template_id}", response_model=TemplateResponse)
def update_template(
    template_id: int,
    payload: TemplateUpdate,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(manage_templates),
):
    data = payload.model_dump(mode="json", exclude_unset=True)
    if "status" in data:
        data["status"] = payload.status
    return QuestionnaireService(db, company_id).update_template(template_id, data)


@router.delete("/{template_id}", response_model=TemplateResponse)
def deactivate_template(
    template_id: int,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(manage_templates),
):
    return QuestionnaireService(db, company_id).deactivate_template(template_id)


@router.post("/{template_id}/copy", response_model=TemplateResponse, status_code=201)
def copy_template(
    template_id: int,
    payload: TemplateCopyRequest,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(manage_templates),
):
    return QuestionnaireService(db, company_id).copy_template(
        template_id, current_user.id, name=payload.name, year=payload.year
    )
