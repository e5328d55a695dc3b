import math
from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import joinedload

from appraisal.core.exceptions import ValidationError
from appraisal.models.evaluation import Evaluation, EvaluationStatus
from appraisal.models.initiated_appraisal import InitiatedAppraisal
from appraisal.models.user import User
from appraisal.services.base import BaseService

# Filters that narrow the employees inside an appraisal rather than the appraisals themselves
EMPLOYEE_FILTERS = ("employee", "location_id", "department_id", "level_id", "grade_id", "manager_id", "status")


def completion_percentage(completed: int, total: int) -> int:
    """Half-up rounded share of completed evaluations; 0 for an empty appraisal."""
    if total <= 0:
        return 0
    return int(math.floor(completed * 100 / total + 0.5))


def summarize(evaluations: Iterable[Evaluation]) -> Dict[str, int]:
    evaluations = list(evaluations)
    total = len(evaluations)
    completed = sum(1 for e in evaluations if e.status == EvaluationStatus.finalized)
    return {
        "total_employees": total,
        "completed_evaluations": completed,
        "percentage": completion_percentage(completed, total),
    }


def _is_set(value) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip()) and value.strip().lower() != "all"
    return True


def _calendar_label(appraisal: InitiatedAppraisal) -> Optional[str]:
    if appraisal.frequency_calendar_detail is not None:
        return appraisal.frequency_calendar_detail.display_name
    if appraisal.frequency_calendar is not None:
        return appraisal.frequency_calendar.code
    return None


def employee_progress(evaluation: Evaluation) -> Dict[str, Any]:
    employee: User = evaluation.employee
    return {
        "evaluation_id": evaluation.id,
        "employee_id": employee.id,
        "employee_name": employee.full_name,
        "employee_code": employee.code,
        "manager_id": evaluation.manager_id,
        "manager_name": evaluation.manager.full_name if evaluation.manager else None,
        "department": employee.department.name if employee.department else None,
        "location": employee.location.name if employee.location else None,
        "level": employee.level.code if employee.level else None,
        "grade": employee.grade.code if employee.grade else None,
        "status": evaluation.status,
        "completed": evaluation.status == EvaluationStatus.finalized,
        "overall_rating": evaluation.overall_rating,
        "calibrated_rating": evaluation.calibrated_rating,
        "effective_rating": evaluation.effective_rating,
    }


class ProgressService(BaseService):
    """Progress per initiated appraisal and the flattened per-employee view."""

    @staticmethod
    def _parse_status(value: Optional[str]) -> Optional[EvaluationStatus]:
        if not _is_set(value):
            return None
        try:
            return EvaluationStatus(value.strip().lower())
        except ValueError:
            raise ValidationError(
                f"Unknown evaluation status '{value}'",
                details={"status": [s.value for s in EvaluationStatus]}
            )

    def _appraisals(self, filters: Dict[str, Any]) -> List[InitiatedAppraisal]:
        query = self.db.query(InitiatedAppraisal).options(
            joinedload(InitiatedAppraisal.appraisal_group),
            joinedload(InitiatedAppraisal.frequency_calendar),
            joinedload(InitiatedAppraisal.frequency_calendar_detail),
        ).filter(InitiatedAppraisal.company_id == self.company_id)
        if _is_set(filters.get("initiated_appraisal_id")):
            query = query.filter(InitiatedAppraisal.id == filters["initiated_appraisal_id"])
        if _is_set(filters.get("appraisal_group_id")):
            query = query.filter(InitiatedAppraisal.appraisal_group_id == filters["appraisal_group_id"])
        if _is_set(filters.get("appraisal_cycle_id")):
            query = query.filter(InitiatedAppraisal.appraisal_cycle_id == filters["appraisal_cycle_id"])
        if _is_set(filters.get("frequency_calendar_detail_id")):
            query = query.filter(
                InitiatedAppraisal.frequency_calendar_detail_id == filters["frequency_calendar_detail_id"]
            )
        return query.order_by(InitiatedAppraisal.created_at.desc(), InitiatedAppraisal.id.desc()).all()

    def _evaluations(self, appraisal_ids: List[int], filters: Dict[str, Any]) -> List[Evaluation]:
        if not appraisal_ids:
            return []
        query = self.db.query(Evaluation).join(User, Evaluation.employee_id == User.id).options(
            joinedload(Evaluation.employee).joinedload(User.department),
            joinedload(Evaluation.employee).joinedload(User.location),
            joinedload(Evaluation.employee).joinedload(User.level),
            joinedload(Evaluation.employee).joinedload(User.grade),
            joinedload(Evaluation.manager),
        ).filter(Evaluation.initiated_appraisal_id.in_(appraisal_ids))

        for field, column in (
            ("location_id", User.location_id),
            ("department_id", User.department_id),
            ("level_id", User.level_id),
            ("grade_id", User.grade_id),
            ("manager_id", Evaluation.manager_id),
        ):
            if _is_set(filters.get(field)):
                query = query.filter(column == filters[field])
        status = self._parse_status(filters.get("status"))
        if status is not None:
            query = query.filter(Evaluation.status == status)

        evaluations = query.order_by(Evaluation.id).all()

        term = filters.get("employee")
        if _is_set(term):
            term = term.strip().lower()
            evaluations = [
                e for e in evaluations
                if term in e.employee.full_name.lower() or term in (e.employee.code or "").lower()
            ]
        return evaluations

    def aggregate(self, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        filters = filters or {}
        appraisals = self._appraisals(filters)
        evaluations = self._evaluations([a.id for a in appraisals], filters)

        by_appraisal: Dict[int, List[Evaluation]] = OrderedDict((a.id, []) for a in appraisals)
        for evaluation in evaluations:
            by_appraisal[evaluation.initiated_appraisal_id].append(evaluation)

        narrowed = any(_is_set(filters.get(f)) for f in EMPLOYEE_FILTERS)
        results = []
        for appraisal in appraisals:
            members = by_appraisal[appraisal.id]
            if narrowed and not members:
                continue
            results.append({
                "initiated_appraisal_id": appraisal.id,
                "appraisal_group_id": appraisal.appraisal_group_id,
                "appraisal_group_name": appraisal.appraisal_group.name if appraisal.appraisal_group else None,
                "appraisal_type": appraisal.appraisal_type,
                "period_key": appraisal.period_key,
                "frequency_calendar": _calendar_label(appraisal),
                "status": appraisal.status,
                "created_at": appraisal.created_at,
                "due_date": appraisal.due_date,
                **summarize(members),
                "employee_progress": [employee_progress(e) for e in members],
            })
        return results

    def rows(self, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """One row per employee evaluation, carrying its appraisal's columns."""
        filters = filters or {}
        appraisals = {a.id: a for a in self._appraisals(filters)}
        rows = []
        for evaluation in self._evaluations(list(appraisals), filters):
            appraisal = appraisals[evaluation.initiated_appraisal_id]
            rows.append({
                **employee_progress(evaluation),
                "initiated_appraisal_id": appraisal.id,
                "appraisal_group": appraisal.appraisal_group.name if appraisal.appraisal_group else None,
                "appraisal_type": appraisal.appraisal_type,
                "frequency_calendar": _calendar_label(appraisal),
                "created_at": appraisal.created_at,
                "due_date": appraisal.due_date,
            })
        return rows
