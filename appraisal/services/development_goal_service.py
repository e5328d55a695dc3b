from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from appraisal.core.clock import as_utc, utcnow
from appraisal.core.exceptions import AccessDeniedError, NotFoundError, ValidationError
from appraisal.models.development_goal import DevelopmentGoal, GoalStatus
from appraisal.models.evaluation import Evaluation
from appraisal.models.user import User
from appraisal.services.base import BaseService

NON_NULLABLE_FIELDS = ("title", "category", "target_date", "progress")


def compute_goal_status(progress: int, target_date: datetime, now: Optional[datetime] = None) -> GoalStatus:
    """
    completed at 100%, not_started at 0%, delayed once the target has passed
    or when fewer than 30 days remain below 50% (7 days below 80%).
    """
    if progress >= 100:
        return GoalStatus.completed
    if progress <= 0:
        return GoalStatus.not_started
    now = now or utcnow()
    remaining = as_utc(target_date) - now
    if remaining < timedelta(0):
        return GoalStatus.delayed
    if remaining < timedelta(days=30) and progress < 50:
        return GoalStatus.delayed
    if remaining < timedelta(days=7) and progress < 80:
        return GoalStatus.delayed
    return GoalStatus.on_track


class DevelopmentGoalService(BaseService):

    def _evaluation(self, evaluation_id: int) -> Evaluation:
        evaluation = self.db.query(Evaluation).filter(
            Evaluation.id == evaluation_id,
            Evaluation.company_id == self.company_id
        ).first()
        if not evaluation:
            raise NotFoundError("Evaluation", evaluation_id)
        return evaluation

    @staticmethod
    def _check_access(evaluation: Evaluation, actor: User):
        if actor.is_hr or actor.id in (evaluation.employee_id, evaluation.manager_id):
            return
        raise AccessDeniedError("You cannot manage goals for this evaluation")

    def create_goal(self, actor: User, data: Dict[str, Any]) -> DevelopmentGoal:
        evaluation = self._evaluation(data["evaluation_id"])
        self._check_access(evaluation, actor)
        if evaluation.meeting_completed_at is None:
            raise ValidationError(
                "Development goals can be set once the review meeting has taken place",
                details={"evaluation_id": "review meeting not completed"}
            )
        if evaluation.appraisal_cycle is None or not evaluation.appraisal_cycle.is_active:
            raise ValidationError(
                "Development goals can only be set for evaluations in an active appraisal cycle",
                details={"appraisal_cycle_id": evaluation.appraisal_cycle_id}
            )
        goal = DevelopmentGoal(
            company_id=self.company_id,
            employee_id=evaluation.employee_id,
            created_by_id=actor.id,
            **data,
        )
        goal.status = compute_goal_status(goal.progress or 0, goal.target_date)
        self.db.add(goal)
        self.commit()
        self.db.refresh(goal)
        self.log_info(f"Development goal {goal.id} created for employee {goal.employee_id}")
        return goal

    def list_goals(self, actor: User, employee_id: Optional[int] = None, evaluation_id: Optional[int] = None) -> List[DevelopmentGoal]:
        query = self.db.query(DevelopmentGoal).join(Evaluation).filter(DevelopmentGoal.company_id == self.company_id)
        if not actor.is_hr:
            query = query.filter((DevelopmentGoal.employee_id == actor.id) | (Evaluation.manager_id == actor.id))
        if employee_id is not None:
            query = query.filter(DevelopmentGoal.employee_id == employee_id)
        if evaluation_id is not None:
            query = query.filter(DevelopmentGoal.evaluation_id == evaluation_id)
        goals = query.order_by(DevelopmentGoal.target_date, DevelopmentGoal.id).all()

        # Status drifts with the calendar; bring stored values up to date
        changed = False
        for goal in goals:
            status = compute_goal_status(goal.progress, goal.target_date)
            if status != goal.status:
                goal.status = status
                changed = True
        if changed:
            self.commit()
        return goals

    def get_goal(self, goal_id: int, actor: User) -> DevelopmentGoal:
        goal = self.db.query(DevelopmentGoal).filter(
            DevelopmentGoal.id == goal_id,
            DevelopmentGoal.company_id == self.company_id
        ).first()
        if not goal:
            raise NotFoundError("Development goal", goal_id)
        self._check_access(goal.evaluation, actor)
        return goal

    def update_goal(self, goal_id: int, actor: User, data: Dict[str, Any]) -> DevelopmentGoal:
        goal = self.get_goal(goal_id, actor)
        cleared = [f for f in NON_NULLABLE_FIELDS if f in data and data[f] is None]
        if cleared:
            raise ValidationError(
                "These goal fields cannot be cleared",
                details={f: "may not be null" for f in cleared}
            )
        for field, value in data.items():
            setattr(goal, field, value)
        goal.status = compute_goal_status(goal.progress, goal.target_date)
        self.commit()
        self.db.refresh(goal)
        return goal

    def delete_goal(self, goal_id: int, actor: User) -> None:
        goal = self.get_goal(goal_id, actor)
        self.db.delete(goal)
        self.commit()
