"""
Evaluation workflow service.

Every transition is a single conditional UPDATE keyed on the evaluation id and
the status the caller last saw. If another request moved the evaluation first,
no row matches and ConcurrentModification is raised; nothing is written.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from appraisal.core.clock import as_utc, utcnow
from appraisal.core.exceptions import (
    AccessDeniedError, ConcurrentModification, DependencyFailure,
    InvalidStateTransition, NotFoundError, ValidationError,
)
from appraisal.models.evaluation import Evaluation, EvaluationStatus
from appraisal.models.questionnaire_template import QuestionnaireTemplate, QuestionType, TemplateTargetRole
from appraisal.models.user import User
from appraisal.services.audit import AuditService
from appraisal.services import export_service
from appraisal.services.base import BaseService
from appraisal.services.email_service import EmailService
from appraisal.services.evaluation_state_machine import (
    EVENT_ACTORS, Actor, EvaluationEvent, next_status,
)
from appraisal.services.notification import NotificationService
from appraisal.services.questionnaire_service import question_index

RATING_RANGE = range(1, 6)
TEXT_TYPES = {QuestionType.text.value, QuestionType.textarea.value}


def validate_rating(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value not in RATING_RANGE:
        raise ValidationError(f"{field} must be an integer from 1 to 5", details={field: value})
    return value


def _is_answered(answer: Optional[dict]) -> bool:
    if answer is None:
        return False
    value = answer.get("value")
    if isinstance(value, str):
        return bool(value.strip())
    return value is not None


class EvaluationService(BaseService):

    def __init__(self, db, company_id: Optional[int] = None, email_service: Optional[EmailService] = None):
        super().__init__(db, company_id)
        self.email_service = email_service or EmailService()

    # --- Reads ---
    def get_evaluation(self, evaluation_id: int) -> Evaluation:
        evaluation = self.db.query(Evaluation).filter(
            Evaluation.id == evaluation_id,
            Evaluation.company_id == self.company_id
        ).first()
        if not evaluation:
            raise NotFoundError("Evaluation", evaluation_id)
        return evaluation

    def get_for_actor(self, evaluation_id: int, actor: User) -> Evaluation:
        evaluation = self.get_evaluation(evaluation_id)
        if actor.is_hr or actor.id in (evaluation.employee_id, evaluation.manager_id):
            return evaluation
        raise AccessDeniedError("You are not a participant in this evaluation")

    def list_evaluations(
        self,
        actor: User,
        status: Optional[EvaluationStatus] = None,
        initiated_appraisal_id: Optional[int] = None,
        employee_id: Optional[int] = None,
    ) -> List[Evaluation]:
        query = self.db.query(Evaluation).filter(Evaluation.company_id == self.company_id)
        if not actor.is_hr:
            query = query.filter((Evaluation.employee_id == actor.id) | (Evaluation.manager_id == actor.id))
        if status is not None:
            query = query.filter(Evaluation.status == status)
        if initiated_appraisal_id is not None:
            query = query.filter(Evaluation.initiated_appraisal_id == initiated_appraisal_id)
        if employee_id is not None:
            query = query.filter(Evaluation.employee_id == employee_id)
        return query.order_by(Evaluation.id).all()

    def manager_submissions(self, manager_id: int, status: Optional[EvaluationStatus] = None) -> List[Evaluation]:
        """Evaluations assigned to a manager, with their current status."""
        query = self.db.query(Evaluation).filter(
            Evaluation.company_id == self.company_id,
            Evaluation.manager_id == manager_id
        )
        if status is not None:
            query = query.filter(Evaluation.status == status)
        return query.order_by(Evaluation.status, Evaluation.id).all()

    # --- Guards ---
    @staticmethod
    def _check_actor(evaluation: Evaluation, actor: User, event: EvaluationEvent):
        required = EVENT_ACTORS[event]
        if required == Actor.employee and actor.id != evaluation.employee_id:
            raise AccessDeniedError("Only the evaluated employee can submit the self-evaluation")
        if required == Actor.manager and actor.id != evaluation.manager_id:
            raise AccessDeniedError("Only the assigned manager can perform this step")

    def _templates(self, evaluation: Evaluation) -> List[QuestionnaireTemplate]:
        if not evaluation.questionnaire_template_ids:
            return []
        return self.db.query(QuestionnaireTemplate).filter(
            QuestionnaireTemplate.id.in_(evaluation.questionnaire_template_ids)
        ).all()

    def _validate_responses(
        self,
        evaluation: Evaluation,
        responses: List[Dict[str, Any]],
        role: TemplateTargetRole,
        require_complete: bool,
    ) -> List[Dict[str, Any]]:
        """
        Check each answer against its question: the key must exist in one of the
        evaluation's templates for `role` and the answer type must match the
        question type. With require_complete every required question needs a value.
        """
        questions = question_index(self._templates(evaluation), role)
        errors = {}
        seen = {}
        for answer in responses:
            key = (answer.get("template_id"), answer.get("question_id"))
            label = f"{key[0]}:{key[1]}"
            question = questions.get(key)
            if question is None:
                errors[label] = "unknown question"
                continue
            if key in seen:
                errors[label] = "answered more than once"
                continue
            seen[key] = answer
            expected = question.get("type", QuestionType.text.value)
            if answer.get("type") != expected:
                errors[label] = f"expected a {expected} answer"
            elif expected == QuestionType.rating.value:
                value = answer.get("value")
                if isinstance(value, bool) or not isinstance(value, int) or value not in RATING_RANGE:
                    errors[label] = "rating must be an integer from 1 to 5"
            elif expected in TEXT_TYPES and not isinstance(answer.get("value"), str):
                errors[label] = "text answer must be a string"

        if require_complete:
            for key, question in questions.items():
                if question.get("required") and not _is_answered(seen.get(key)):
                    errors.setdefault(f"{key[0]}:{key[1]}", "required")

        if errors:
            raise ValidationError("Invalid evaluation responses", details=errors)
        return [dict(a) for a in responses]

    # --- Transition core ---
    def _transition(
        self,
        evaluation: Evaluation,
        actor: User,
        event: EvaluationEvent,
        values: Dict[str, Any],
    ) -> Evaluation:
        expected = evaluation.status
        target = next_status(expected, event)
        result = self.db.execute(
            update(Evaluation)
            .where(Evaluation.id == evaluation.id, Evaluation.status == expected)
            .values(status=target, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self.db.rollback()
            self.log_warning(f"Evaluation {evaluation.id} changed concurrently during {event.value}")
            raise ConcurrentModification()

        AuditService(self.db, self.company_id).log_action(
            action=f"evaluation_{event.value}",
            entity_type="evaluation",
            entity_id=evaluation.id,
            user_id=actor.id,
            user_role=actor.role,
            before_state={"status": expected},
            after_state={"status": target},
        )
        self.commit()
        self.db.refresh(evaluation)
        self.log_info(f"Evaluation {evaluation.id}: {expected.value} -> {target.value} via {event.value}")
        return evaluation

    def _notify(self, user: Optional[User], title: str, message: str, link: str, email: bool = False) -> bool:
        """Post-commit notification. Failures are logged and reported, never raised."""
        if user is None:
            return False
        try:
            NotificationService.notify_user(self.db, user.id, title, message, type="evaluation", link=link)
            if email:
                self.email_service.send(user.email, title, message)
            return True
        except (DependencyFailure, SQLAlchemyError) as e:
            self.log_warning(f"Notification to user {user.id} failed: {e}")
            return False

    # --- Employee steps ---
    def save_self_draft(self, evaluation_id: int, actor: User, responses: List[Dict[str, Any]]) -> Evaluation:
        evaluation = self.get_evaluation(evaluation_id)
        self._check_actor(evaluation, actor, EvaluationEvent.save_self_draft)
        next_status(evaluation.status, EvaluationEvent.save_self_draft)
        data = self._validate_responses(evaluation, responses, TemplateTargetRole.employee, require_complete=False)
        return self._transition(evaluation, actor, EvaluationEvent.save_self_draft, {"self_evaluation_data": data})

    def submit_self(self, evaluation_id: int, actor: User, responses: Optional[List[Dict[str, Any]]] = None) -> Tuple[Evaluation, bool]:
        evaluation = self.get_evaluation(evaluation_id)
        self._check_actor(evaluation, actor, EvaluationEvent.submit_self)
        next_status(evaluation.status, EvaluationEvent.submit_self)
        # An empty submission finalises whatever was saved as a draft
        answers = responses if responses else (evaluation.self_evaluation_data or [])
        data = self._validate_responses(evaluation, answers, TemplateTargetRole.employee, require_complete=True)
        evaluation = self._transition(evaluation, actor, EvaluationEvent.submit_self, {
            "self_evaluation_data": data,
            "self_evaluation_submitted_at": utcnow(),
        })
        delivered = self._notify(
            evaluation.manager,
            "Self-evaluation submitted",
            f"{evaluation.employee.full_name} submitted their self-evaluation and is ready for your review.",
            f"/evaluations/{evaluation.id}",
        )
        return evaluation, delivered

    # --- Manager steps ---
    def submit_manager_review(
        self,
        evaluation_id: int,
        actor: User,
        overall_rating: int,
        responses: Optional[List[Dict[str, Any]]] = None,
        comments: Optional[str] = None,
    ) -> Tuple[Evaluation, bool]:
        evaluation = self.get_evaluation(evaluation_id)
        self._check_actor(evaluation, actor, EvaluationEvent.submit_manager_review)
        next_status(evaluation.status, EvaluationEvent.submit_manager_review)
        rating = validate_rating(overall_rating, "overall_rating")
        data = self._validate_responses(evaluation, responses or [], TemplateTargetRole.manager, require_complete=True)
        evaluation = self._transition(evaluation, actor, EvaluationEvent.submit_manager_review, {
            "manager_evaluation_data": data,
            "manager_comments": comments,
            "overall_rating": rating,
            "manager_evaluation_submitted_at": utcnow(),
        })
        delivered = self._notify(
            evaluation.employee,
            "Manager review completed",
            "Your manager has completed the review of your evaluation.",
            f"/evaluations/{evaluation.id}",
        )
        return evaluation, delivered

    def schedule_meeting(
        self,
        evaluation_id: int,
        actor: User,
        meeting_date: datetime,
        title: str,
        description: Optional[str] = None,
    ) -> Tuple[Evaluation, bool]:
        evaluation = self.get_evaluation(evaluation_id)
        self._check_actor(evaluation, actor, EvaluationEvent.schedule_meeting)
        next_status(evaluation.status, EvaluationEvent.schedule_meeting)
        if as_utc(meeting_date) <= utcnow():
            raise ValidationError("Meeting date must be in the future", details={"meeting_date": "in the past"})
        # Rescheduling overwrites the previous slot
        evaluation = self._transition(evaluation, actor, EvaluationEvent.schedule_meeting, {
            "meeting_scheduled_at": meeting_date,
            "meeting_title": title,
            "meeting_description": description,
        })
        delivered = self._notify(
            evaluation.employee,
            "Review meeting scheduled",
            f"'{title}' is scheduled for {as_utc(meeting_date):%d %b %Y %H:%M} UTC.",
            f"/evaluations/{evaluation.id}",
            email=True,
        )
        return evaluation, delivered

    def record_meeting(
        self,
        evaluation_id: int,
        actor: User,
        meeting_notes: str,
        show_notes_to_employee: bool = False,
        overall_rating: Optional[int] = None,
    ) -> Evaluation:
        evaluation = self.get_evaluation(evaluation_id)
        self._check_actor(evaluation, actor, EvaluationEvent.record_meeting)
        next_status(evaluation.status, EvaluationEvent.record_meeting)
        values = {
            "meeting_notes": meeting_notes,
            "show_notes_to_employee": show_notes_to_employee,
            "meeting_completed_at": utcnow(),
        }
        if overall_rating is not None:
            values["overall_rating"] = validate_rating(overall_rating, "overall_rating")
        return self._transition(evaluation, actor, EvaluationEvent.record_meeting, values)

    def finalize(self, evaluation_id: int, actor: User) -> Tuple[Evaluation, bool]:
        evaluation = self.get_evaluation(evaluation_id)
        self._check_actor(evaluation, actor, EvaluationEvent.finalize)
        next_status(evaluation.status, EvaluationEvent.finalize)
        if evaluation.manager_evaluation_submitted_at is None:
            raise InvalidStateTransition("Cannot finalize an evaluation without a manager review")
        evaluation = self._transition(evaluation, actor, EvaluationEvent.finalize, {"finalized_at": utcnow()})
        delivered = self._notify(
            evaluation.employee,
            "Evaluation finalized",
            "Your performance evaluation has been finalized.",
            f"/evaluations/{evaluation.id}",
            email=True,
        )
        return evaluation, delivered

    # --- HR ---
    def calibrate(self, evaluation_id: int, actor: User, calibrated_rating: int, remarks: Optional[str] = None) -> Evaluation:
        """
        Record HR's adjusted rating. Works in any status once a rating exists and
        leaves overall_rating and status untouched.
        """
        if not actor.is_hr:
            raise AccessDeniedError("Only HR can calibrate ratings")
        evaluation = self.get_evaluation(evaluation_id)
        if evaluation.overall_rating is None:
            raise InvalidStateTransition(
                "Cannot calibrate an evaluation before the manager has rated it",
                details={"current_status": evaluation.status.value}
            )
        rating = validate_rating(calibrated_rating, "calibrated_rating")
        before = {"calibrated_rating": evaluation.calibrated_rating}
        self.db.execute(
            update(Evaluation)
            .where(Evaluation.id == evaluation.id)
            .values(
                calibrated_rating=rating,
                calibration_remarks=remarks,
                calibrated_by_id=actor.id,
                calibrated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        AuditService(self.db, self.company_id).log_action(
            action="evaluation_calibrated",
            entity_type="evaluation",
            entity_id=evaluation.id,
            user_id=actor.id,
            user_role=actor.role,
            before_state=before,
            after_state={"calibrated_rating": rating},
        )
        self.commit()
        self.db.refresh(evaluation)
        return evaluation

    # --- Export ---
    def export_documents(self, evaluation_ids: List[int], actor: User, fmt: str) -> bytes:
        """Render the given evaluations into one PDF or DOCX file."""
        documents = []
        for evaluation_id in dict.fromkeys(evaluation_ids):
            evaluation = self.get_for_actor(evaluation_id, actor)
            include_notes = actor.id != evaluation.employee_id or evaluation.show_notes_to_employee
            documents.append(export_service.build_document(evaluation, self._templates(evaluation), include_notes))
        self.log_info(f"Exporting {len(documents)} evaluations as {fmt}", user_id=actor.id)
        return export_service.render_documents(documents, fmt)
