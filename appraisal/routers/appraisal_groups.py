from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from appraisal.core.permissions import Capability
from appraisal.database import get_db
from appraisal.models.appraisal_group import AppraisalGroup
from appraisal.models.user import User
from appraisal.routers.auth_deps import get_current_company, require_capability
from appraisal.schemas.appraisal import (
    AppraisalGroupCreate, AppraisalGroupResponse, AppraisalGroupUpdate,
    GroupMemberAddRequest, GroupMemberFilterRequest, GroupMemberResponse, GroupMembershipChange,
)
from appraisal.services.appraisal_group_service import AppraisalGroupService

router = APIRouter(prefix="/appraisal-groups", tags=["Appraisal Groups"])

manage_groups = require_capability(Capability.manage_appraisal_groups)


def _group_response(service: AppraisalGroupService, group: AppraisalGroup) -> AppraisalGroupResponse:
    counts = service.member_counts([group.id])
    response = AppraisalGroupResponse.model_validate(group)
    response.member_count = counts.get(group.id, 0)
    return response


@router.get("", response_model=List[AppraisalGroupResponse])
def list_groups(
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(manage_groups),
):
    service = AppraisalGroupService(db, company_id)
    groups = service.list_groups(include_inactive)
    counts = service.member_counts([g.id for g in groups])
    return [
        AppraisalGroupResponse.model_validate(g).model_copy(update={"member_count": counts.get(g.id, 0)})
        for g in groups
    ]


@router.post("", response_model=AppraisalGroupResponse, status_code=201)
def create_group(
    payload: AppraisalGroupCreate,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(manage_groups),
):
    service = AppraisalGroupService(db, company_id)
    return _group_response(service, service.create_group(payload.model_dump(), current_user.id))


@router.patch("/{group_id}", response_model=AppraisalGroupResponse)
def update_group(
    group_id: int,
    payload: AppraisalGroupUpdate,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(manage_groups),
):
    service = AppraisalGroupService(db, company_id)
    return _group_response(service, service.update_group(group_id, payload.model_dump(exclude_unset=True)))


@router.get("/{group_id}/members", response_model=List[GroupMemberResponse])
def list_members(
    group_id: int,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(manage_groups),
):
    members = AppraisalGroupService(db, company_id).list_members(group_id)
    return [
        GroupMemberResponse(
            user_id=m.id,
            full_name=m.full_name,
            email=m.email,
            code=m.code,
            department_id=m.department_id,
            location_id=m.location_id,
            level_id=m.level_id,
            grade_id=m.grade_id,
        )
        for m in members
    ]


@router.post("/{group_id}/members", response_model=GroupMembershipChange)
def add_members(
    group_id: int,
    payload: GroupMemberAddRequest,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(manage_groups),
):
    return AppraisalGroupService(db, company_id).add_members(group_id, payload.user_ids, current_user.id)


@router.post("/{group_id}/members/by-filter", response_model=GroupMembershipChange)
def add_members_by_filter(
    group_id: int,
    payload: GroupMemberFilterRequest,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(manage_groups),
):
    return AppraisalGroupService(db, company_id).add_members_by_filter(
        group_id, current_user.id, **payload.model_dump()
    )


@router.delete("/{group_id}/members/{user_id}", status_code=204)
def remove_member(
    group_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    company_id: int = Depends(get_current_company),
    current_user: User = Depends(manage_groups),
):
    AppraisalGroupService(db, company_id).remove_member(group_id, user_id)
