from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from appraisal.core.permissions import Capability
from appraisal.database import get_db
from appraisal.models.user import User
from appraisal.routers.auth_deps import get_current_company, get_current_user, require_capability
from appraisal.schemas.org import CompanyOnboardRequest, CompanyOnboardResponse, CompanyResponse, CompanyUpdate
from appraisal.services.company_service import CompanyService

router = APIRouter(prefix="/companies", tags=["Companies"])

platform_admin = require_capability(Capability.manage_company)


@router.get("", response_model=List[CompanyResponse])
def list_companies(db: Session = Depends(get_db), current_user: User = Depends(platform_admin)):
    return CompanyService(db).list_companies()


@router.post("", response_model=CompanyOnboardResponse, status_code=201)
def onboard_company(
    payload: CompanyOnboardRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(platform_admin),
):
    company, admin = CompanyService(db).onboard(payload.model_dump(), current_user)
    return CompanyOnboardResponse(company=CompanyResponse.model_validate(company), admin_user_id=admin.id)


@router.get("/current", response_model=CompanyResponse)
def get_current_company_profile(
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(get_current_user),
):
    return CompanyService(db, company_id).get_company(company_id)


@router.patch("/current", response_model=CompanyResponse)
def update_current_company(
    payload: CompanyUpdate,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(require_capability(Capability.manage_org_config)),
):
    return CompanyService(db, company_id).update_company(company_id, payload.model_dump(exclude_unset=True))
