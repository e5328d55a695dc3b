import pytest
from datetime import timedelta
from sqlalchemy.orm.attributes import set_committed_value

from appraisal.core.clock import utcnow
from appraisal.core.exceptions import (
    AccessDeniedError, ConcurrentModification, InvalidStateTransition, ValidationError,
)
from appraisal.models.evaluation import EvaluationStatus
from appraisal.models.notification import Notification
from appraisal.services.evaluation_service import EvaluationService
from appraisal.services.evaluation_state_machine import EvaluationEvent, available_events, next_status


@pytest.fixture
def service(db_session, company):
    return EvaluationService(db_session, company.id)


@pytest.fixture
def self_submitted(service, evaluation, employee, self_answers):
    evaluation, _ = service.submit_self(evaluation.id, employee, self_answers)
    return evaluation


@pytest.fixture
def reviewed(service, self_submitted, manager, manager_answers):
    evaluation, _ = service.submit_manager_review(self_submitted.id, manager, 4, manager_answers, "Solid year")
    return evaluation


# --- State machine table ---
def test_transition_table_walks_the_happy_path():
    status = EvaluationStatus.not_started
    for event in (
        EvaluationEvent.submit_self,
        EvaluationEvent.submit_manager_review,
        EvaluationEvent.schedule_meeting,
        EvaluationEvent.record_meeting,
        EvaluationEvent.finalize,
    ):
        status = next_status(status, event)
    assert status == EvaluationStatus.finalized


def test_finalized_evaluation_accepts_no_events():
    assert available_events(EvaluationStatus.finalized) == []


def test_reviewed_evaluation_can_be_finalized_without_meeting():
    assert next_status(EvaluationStatus.manager_reviewed, EvaluationEvent.finalize) == EvaluationStatus.finalized


# --- Employee steps ---
def test_draft_keeps_status_and_stores_answers(service, evaluation, employee, self_answers):
    evaluation = service.save_self_draft(evaluation.id, employee, self_answers[:1])
    assert evaluation.status == EvaluationStatus.not_started
    assert evaluation.self_evaluation_data[0]["question_id"] == "q1"
    assert evaluation.self_evaluation_submitted_at is None


def test_submit_without_answers_uses_saved_draft(service, evaluation, employee, self_answers):
    service.save_self_draft(evaluation.id, employee, self_answers)
    evaluation, _ = service.submit_self(evaluation.id, employee, [])
    assert evaluation.status == EvaluationStatus.self_submitted
    assert evaluation.self_evaluation_submitted_at is not None
    assert len(evaluation.self_evaluation_data) == 2


def test_submit_requires_every_required_question(service, evaluation, employee, templates, self_answers):
    with pytest.raises(ValidationError) as exc:
        service.submit_self(evaluation.id, employee, self_answers[:1])
    assert exc.value.details == {f"{templates['self'].id}:q2": "required"}
    assert service.get_evaluation(evaluation.id).status == EvaluationStatus.not_started


def test_answer_type_must_match_question(service, evaluation, employee, templates, self_answers):
    answers = [
        self_answers[0],
        {"template_id": templates["self"].id, "question_id": "q2", "type": "text", "value": "great"},
    ]
    with pytest.raises(ValidationError) as exc:
        service.submit_self(evaluation.id, employee, answers)
    assert exc.value.details[f"{templates['self'].id}:q2"] == "expected a rating answer"


def test_unknown_question_is_rejected(service, evaluation, employee, templates, self_answers):
    answers = self_answers + [
        {"template_id": templates["manager"].id, "question_id": "m1", "type": "text", "value": "sneaky"},
    ]
    with pytest.raises(ValidationError):
        service.submit_self(evaluation.id, employee, answers)


def test_only_the_employee_submits_self_evaluation(service, evaluation, manager, self_answers):
    with pytest.raises(AccessDeniedError):
        service.submit_self(evaluation.id, manager, self_answers)


def test_self_submission_notifies_manager(service, evaluation, employee, manager, self_answers, db_session):
    _, delivered = service.submit_self(evaluation.id, employee, self_answers)
    assert delivered is True
    titles = [n.title for n in db_session.query(Notification).filter(Notification.user_id == manager.id)]
    assert "Self-evaluation submitted" in titles


# --- Manager review ---
def test_manager_review_records_rating(service, self_submitted, manager, manager_answers):
    """A submitted self-evaluation reviewed with rating 4 becomes manager_reviewed."""
    evaluation, _ = service.submit_manager_review(self_submitted.id, manager, 4, manager_answers)
    assert evaluation.status == EvaluationStatus.manager_reviewed
    assert evaluation.overall_rating == 4
    assert evaluation.manager_evaluation_submitted_at is not None


def test_manager_review_before_self_submission_fails(service, evaluation, manager, manager_answers):
    with pytest.raises(InvalidStateTransition):
        service.submit_manager_review(evaluation.id, manager, 4, manager_answers)
    assert service.get_evaluation(evaluation.id).overall_rating is None


@pytest.mark.parametrize("rating", [0, 6, 3.5])
def test_manager_rating_must_be_one_to_five(service, self_submitted, manager, manager_answers, rating):
    with pytest.raises(ValidationError):
        service.submit_manager_review(self_submitted.id, manager, rating, manager_answers)


def test_employee_cannot_review_themselves(service, self_submitted, employee, manager_answers):
    with pytest.raises(AccessDeniedError):
        service.submit_manager_review(self_submitted.id, employee, 5, manager_answers)


def test_finalize_before_review_changes_nothing(service, self_submitted, manager):
    with pytest.raises(InvalidStateTransition):
        service.finalize(self_submitted.id, manager)
    evaluation = service.get_evaluation(self_submitted.id)
    assert evaluation.status == EvaluationStatus.self_submitted
    assert evaluation.finalized_at is None
    assert evaluation.overall_rating is None


def test_concurrent_review_loses_to_the_first_writer(service, self_submitted, manager, manager_answers):
    """Both requests saw self_submitted; the second conditional update matches no row."""
    first, _ = service.submit_manager_review(self_submitted.id, manager, 4, manager_answers)
    # The losing request still holds the status it read before the first commit
    set_committed_value(first, "status", EvaluationStatus.self_submitted)

    with pytest.raises(ConcurrentModification):
        service.submit_manager_review(self_submitted.id, manager, 2, manager_answers)

    evaluation = service.get_evaluation(self_submitted.id)
    assert evaluation.status == EvaluationStatus.manager_reviewed
    assert evaluation.overall_rating == 4


# --- Meeting and finalization ---
def test_meeting_must_be_in_the_future(service, reviewed, manager):
    with pytest.raises(ValidationError):
        service.schedule_meeting(reviewed.id, manager, utcnow() - timedelta(hours=1), "Review")


def test_rescheduling_overwrites_the_slot(service, reviewed, manager):
    service.schedule_meeting(reviewed.id, manager, utcnow() + timedelta(days=2), "Review")
    evaluation, _ = service.schedule_meeting(reviewed.id, manager, utcnow() + timedelta(days=5), "Review (moved)")
    assert evaluation.status == EvaluationStatus.meeting_scheduled
    assert evaluation.meeting_title == "Review (moved)"


def test_full_meeting_flow_to_finalized(service, reviewed, manager, email_outbox):
    service.schedule_meeting(reviewed.id, manager, utcnow() + timedelta(days=2), "Review", "Annual review chat")
    evaluation = service.record_meeting(reviewed.id, manager, "Agreed on growth plan", overall_rating=5)
    assert evaluation.status == EvaluationStatus.meeting_completed
    assert evaluation.overall_rating == 5
    assert evaluation.meeting_completed_at is not None

    evaluation, delivered = service.finalize(reviewed.id, manager)
    assert evaluation.status == EvaluationStatus.finalized
    assert evaluation.finalized_at is not None
    assert delivered is True
    assert email_outbox.sent[-1].subject == "Evaluation finalized"


def test_record_meeting_requires_a_scheduled_meeting(service, reviewed, manager):
    with pytest.raises(InvalidStateTransition):
        service.record_meeting(reviewed.id, manager, "Notes")


def test_notification_failure_does_not_undo_finalization(service, reviewed, manager, email_outbox):
    email_outbox.fail = True
    evaluation, delivered = service.finalize(reviewed.id, manager)
    assert delivered is False
    assert service.get_evaluation(evaluation.id).status == EvaluationStatus.finalized


# --- Calibration ---
def test_calibration_requires_a_rating(service, self_submitted, hr_user):
    with pytest.raises(InvalidStateTransition):
        service.calibrate(self_submitted.id, hr_user, 3)


def test_calibration_keeps_status_and_overall_rating(service, reviewed, hr_user):
    evaluation = service.calibrate(reviewed.id, hr_user, 3, "Normalised against peers")
    assert evaluation.status == EvaluationStatus.manager_reviewed
    assert evaluation.overall_rating == 4
    assert evaluation.calibrated_rating == 3
    assert evaluation.effective_rating == 3
    assert evaluation.calibrated_by_id == hr_user.id


def test_calibration_after_finalization(service, reviewed, manager, hr_user):
    service.finalize(reviewed.id, manager)
    evaluation = service.calibrate(reviewed.id, hr_user, 5)
    assert evaluation.status == EvaluationStatus.finalized
    assert evaluation.overall_rating == 4
    assert evaluation.calibrated_rating == 5


def test_only_hr_calibrates(service, reviewed, manager):
    with pytest.raises(AccessDeniedError):
        service.calibrate(reviewed.id, manager, 3)
