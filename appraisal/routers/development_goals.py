from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from appraisal.core.permissions import Capability
from appraisal.database import get_db
from appraisal.models.user import User
from appraisal.routers.auth_deps import get_current_company, require_capability
from appraisal.schemas.development_goal import DevelopmentGoalCreate, DevelopmentGoalResponse, DevelopmentGoalUpdate
from appraisal.services.development_goal_service import DevelopmentGoalService

router = APIRouter(prefix="/development-goals", tags=["Development Goals"])

goal_access = require_capability(Capability.manage_development_goals)


@router.get("", response_model=List[DevelopmentGoalResponse])
def list_goals(
    employee_id: Optional[int] = None,
    evaluation_id: Optional[int] = None,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(goal_access),
):
    return DevelopmentGoalService(db, company_id).list_goals(current_user, employee_id, evaluation_id)


@router.post("", response_model=DevelopmentGoalResponse, status_code=201)
def create_goal(
    payload: DevelopmentGoalCreate,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(goal_access),
):
    return DevelopmentGoalService(db, company_id).create_goal(current_user, payload.model_dump())


@router.get("/{goal_id}", response_model=DevelopmentGoalResponse)
def get_goal(
    goal_id: int,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(goal_access),
):
    return DevelopmentGoalService(db, company_id).get_goal(goal_id, current_user)


@router.patch("/{goal_id}", response_model=DevelopmentGoalResponse)
def update_goal(
    goal_id: int,
    payload: DevelopmentGoalUpdate,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(goal_access),
):
    return DevelopmentGoalService(db, company_id).update_goal(goal_id, current_user, payload.model_dump(exclude_unset=True))


@router.delete("/{goal_id}", status_code=204)
def delete_goal(
    goal_id: int,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(goal_access),
):
    DevelopmentGoalService(db, company_id).delete_goal(goal_id, current_user)
