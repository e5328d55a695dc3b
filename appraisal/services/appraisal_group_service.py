from typing import Any, Dict, List, Optional

from sqlalchemy import func

from appraisal.core.exceptions import NotFoundError, ValidationError
from appraisal.models.appraisal_group import AppraisalGroup, AppraisalGroupMember
from appraisal.models.company import RecordStatus
from appraisal.models.user import User
from appraisal.services.base import BaseService


class AppraisalGroupService(BaseService):

    def create_group(self, data: Dict[str, Any], created_by_id: int) -> AppraisalGroup:
        member_ids = data.pop("member_ids", [])
        group = AppraisalGroup(company_id=self.company_id, created_by_id=created_by_id, **data)
        self.db.add(group)
        self.db.flush()
        if member_ids:
            self._add(group, self._company_users(member_ids), created_by_id)
        self.commit()
        self.db.refresh(group)
        self.log_info(f"Created appraisal group {group.id} with {len(member_ids)} members", company_id=self.company_id)
        return group

    def list_groups(self, include_inactive: bool = False) -> List[AppraisalGroup]:
        query = self.db.query(AppraisalGroup).filter(AppraisalGroup.company_id == self.company_id)
        if not include_inactive:
            query = query.filter(AppraisalGroup.status == RecordStatus.active)
        return query.order_by(AppraisalGroup.name).all()

    def member_counts(self, group_ids: List[int]) -> Dict[int, int]:
        if not group_ids:
            return {}
        rows = self.db.query(
            AppraisalGroupMember.appraisal_group_id, func.count(AppraisalGroupMember.id)
        ).filter(
            AppraisalGroupMember.appraisal_group_id.in_(group_ids)
        ).group_by(AppraisalGroupMember.appraisal_group_id).all()
        return {group_id: count for group_id, count in rows}

    def get_group(self, group_id: int) -> AppraisalGroup:
        group = self.db.query(AppraisalGroup).filter(
            AppraisalGroup.id == group_id,
            AppraisalGroup.company_id == self.company_id
        ).first()
        if not group:
            raise NotFoundError("Appraisal group", group_id)
        return group

    def update_group(self, group_id: int, data: Dict[str, Any]) -> AppraisalGroup:
        group = self.get_group(group_id)
        for field, value in data.items():
            setattr(group, field, value)
        self.commit()
        self.db.refresh(group)
        return group

    # --- Membership ---
    def _company_users(self, user_ids: List[int]) -> List[User]:
        users = self.db.query(User).filter(
            User.id.in_(user_ids),
            User.company_id == self.company_id
        ).all()
        missing = sorted(set(user_ids) - {u.id for u in users})
        if missing:
            raise ValidationError("Unknown employees", details={"user_ids": f"not found: {missing}"})
        return users

    def _add(self, group: AppraisalGroup, users: List[User], added_by_id: int) -> Dict[str, int]:
        existing = {
            user_id for (user_id,) in self.db.query(AppraisalGroupMember.user_id).filter(
                AppraisalGroupMember.appraisal_group_id == group.id
            )
        }
        added = 0
        for user in users:
            if user.id in existing:
                continue
            self.db.add(AppraisalGroupMember(appraisal_group_id=group.id, user_id=user.id, added_by_id=added_by_id))
            existing.add(user.id)
            added += 1
        return {"added": added, "already_members": len(users) - added}

    def add_members(self, group_id: int, user_ids: List[int], added_by_id: int) -> Dict[str, int]:
        group = self.get_group(group_id)
        result = self._add(group, self._company_users(user_ids), added_by_id)
        self.commit()
        return result

    def add_members_by_filter(
        self,
        group_id: int,
        added_by_id: int,
        location_ids: Optional[List[int]] = None,
        department_ids: Optional[List[int]] = None,
        level_ids: Optional[List[int]] = None,
        grade_ids: Optional[List[int]] = None,
    ) -> Dict[str, int]:
        """Add every active employee matching all the non-empty dimension filters."""
        group = self.get_group(group_id)
        query = self.db.query(User).filter(User.company_id == self.company_id, User.is_active.is_(True))
        if location_ids:
            query = query.filter(User.location_id.in_(location_ids))
        if department_ids:
            query = query.filter(User.department_id.in_(department_ids))
        if level_ids:
            query = query.filter(User.level_id.in_(level_ids))
        if grade_ids:
            query = query.filter(User.grade_id.in_(grade_ids))
        result = self._add(group, query.all(), added_by_id)
        self.commit()
        return result

    def remove_member(self, group_id: int, user_id: int) -> None:
        group = self.get_group(group_id)
        member = self.db.query(AppraisalGroupMember).filter(
            AppraisalGroupMember.appraisal_group_id == group.id,
            AppraisalGroupMember.user_id == user_id
        ).first()
        if not member:
            raise NotFoundError("Group member", user_id)
        self.db.delete(member)
        self.commit()

    def list_members(self, group_id: int, active_only: bool = False) -> List[User]:
        group = self.get_group(group_id)
        query = self.db.query(User).join(
            AppraisalGroupMember, AppraisalGroupMember.user_id == User.id
        ).filter(AppraisalGroupMember.appraisal_group_id == group.id)
        if active_only:
            query = query.filter(User.is_active.is_(True))
        return query.order_by(User.id).all()
