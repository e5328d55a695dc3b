import pytest
from datetime import timedelta

from appraisal.core.clock import as_utc, utcnow
from appraisal.core.exceptions import ConcurrentModification, ValidationError
from appraisal.models.appraisal_group import AppraisalGroupMember
from appraisal.models.evaluation import Evaluation
from appraisal.models.frequency_calendar import FrequencyCalendar
from appraisal.models.initiated_appraisal import AppraisalType, InitiatedAppraisal, PublishType, ReviewScope
from appraisal.models.scheduled_task import ScheduledAppraisalTask, ScheduledTaskStatus
from appraisal.services.initiation_service import InitiationService, build_period_key, is_eligible
from appraisal.services.progress_service import ProgressService


@pytest.fixture
def service(db_session, company):
    return InitiationService(db_session, company.id)


@pytest.fixture
def add_member(db_session, group, hr_user):
    def _add_member(user):
        db_session.add(AppraisalGroupMember(appraisal_group_id=group.id, user_id=user.id, added_by_id=hr_user.id))
        db_session.commit()
        return user
    return _add_member


def test_period_key_prefers_calendar_period_then_cycle():
    assert build_period_key(1, detail_id=7, cycle_id=3) == "detail:7"
    assert build_period_key(1, cycle_id=3) == "cycle:3"
    assert build_period_key(1) == "group:1"


def test_tenure_exclusion(make_user):
    now = utcnow()
    recent = make_user(date_of_joining=now - timedelta(days=100))
    veteran = make_user(date_of_joining=now - timedelta(days=400))
    unknown = make_user()
    assert not is_eligible(recent, set(), True, now)
    assert is_eligible(recent, set(), False, now)
    assert is_eligible(veteran, set(), True, now)
    assert is_eligible(unknown, set(), True, now)
    assert not is_eligible(veteran, {veteran.id}, False, now)


def test_immediate_initiation_for_three_employees(service, hr_user, make_user, manager, add_member, initiate_request):
    """A group of three published now has 0 of 3 evaluations completed."""
    add_member(make_user(reporting_manager_id=manager.id))
    add_member(make_user(reporting_manager_id=manager.id))

    result = service.initiate(hr_user, initiate_request())

    assert result.publish_type == PublishType.now
    assert result.evaluations_created == 3
    appraisal = result.initiated_appraisals[0]
    progress = ProgressService(service.db, service.company_id).aggregate({"initiated_appraisal_id": appraisal.id})
    assert progress[0]["total_employees"] == 3
    assert progress[0]["completed_evaluations"] == 0
    assert progress[0]["percentage"] == 0


def test_initiating_twice_creates_one_evaluation_per_employee(service, hr_user, initiate_request, db_session, employee):
    first = service.initiate(hr_user, initiate_request())
    second = service.initiate(hr_user, initiate_request())

    assert second.initiated_appraisals[0].id == first.initiated_appraisals[0].id
    assert second.evaluations_created == 0
    assert db_session.query(Evaluation).filter(Evaluation.employee_id == employee.id).count() == 1


@pytest.fixture
def stale_reads(monkeypatch, service):
    """
    Make `service` read the period as untouched, running `before_write` (a rival
    request) first. `times` bounds how many attempts see the stale state.
    """
    def _stale_reads(before_write, times):
        real_open_batch = InitiationService._open_batch
        real_covered = InitiationService._covered_employee_ids
        state = {"batch_reads": 0, "covered_reads": 0}

        def open_batch(self, group_id, period_key):
            if self is service and state["batch_reads"] < times:
                if state["batch_reads"] == 0:
                    before_write()
                state["batch_reads"] += 1
                return None
            return real_open_batch(self, group_id, period_key)

        def covered(self, period_key, employee_ids):
            if self is service and state["covered_reads"] < times:
                state["covered_reads"] += 1
                return set()
            return real_covered(self, period_key, employee_ids)

        monkeypatch.setattr(InitiationService, "_open_batch", open_batch)
        monkeypatch.setattr(InitiationService, "_covered_employee_ids", covered)
    return _stale_reads


def test_concurrent_initiation_merges_into_the_committed_batch(
    service, stale_reads, db_session, company, hr_user, initiate_request, employee
):
    rival = InitiationService(db_session, company.id)
    stale_reads(lambda: rival.initiate(hr_user, initiate_request()), times=1)

    result = service.initiate(hr_user, initiate_request())

    assert result.evaluations_created == 0
    assert db_session.query(InitiatedAppraisal).count() == 1
    assert result.initiated_appraisals[0].id == db_session.query(InitiatedAppraisal.id).scalar()
    assert db_session.query(Evaluation).filter(Evaluation.employee_id == employee.id).count() == 1


def test_persistent_conflict_is_a_concurrent_modification(
    service, stale_reads, db_session, company, hr_user, initiate_request
):
    rival = InitiationService(db_session, company.id)
    stale_reads(lambda: rival.initiate(hr_user, initiate_request()), times=2)

    with pytest.raises(ConcurrentModification):
        service.initiate(hr_user, initiate_request())
    assert db_session.query(InitiatedAppraisal).count() == 1


def test_reinitiation_picks_up_new_members(service, hr_user, initiate_request, make_user, add_member):
    service.initiate(hr_user, initiate_request())
    add_member(make_user())
    result = service.initiate(hr_user, initiate_request())
    assert result.evaluations_created == 1


def test_manager_defaults_to_initiator(service, hr_user, initiate_request, make_user, add_member, db_session):
    orphan = add_member(make_user())
    service.initiate(hr_user, initiate_request())
    evaluation = db_session.query(Evaluation).filter(Evaluation.employee_id == orphan.id).one()
    assert evaluation.manager_id == hr_user.id


def test_templates_follow_review_scope(service, hr_user, initiate_request, templates, employee):
    result = service.initiate(hr_user, initiate_request(review_scope=ReviewScope.self_review))
    evaluation = result.initiated_appraisals[0].evaluations[0]
    assert evaluation.questionnaire_template_ids == [templates["self"].id]


def test_questionnaire_appraisal_needs_templates(service, hr_user, initiate_request):
    with pytest.raises(ValidationError) as exc:
        service.initiate(hr_user, initiate_request(questionnaire_template_ids=[]))
    assert "questionnaire_template_ids" in exc.value.details


@pytest.mark.parametrize("appraisal_type", [AppraisalType.kpi_based, AppraisalType.mbo_based])
def test_document_based_appraisal_needs_document(service, hr_user, initiate_request, appraisal_type):
    with pytest.raises(ValidationError) as exc:
        service.initiate(hr_user, initiate_request(appraisal_type=appraisal_type, questionnaire_template_ids=[]))
    assert exc.value.details == {"document_url": "required"}


def test_no_eligible_employee_is_rejected(service, hr_user, initiate_request, employee):
    with pytest.raises(ValidationError):
        service.initiate(hr_user, initiate_request(excluded_employee_ids=[employee.id]))


def test_initiation_email_failure_is_counted_not_raised(service, hr_user, initiate_request, email_outbox):
    email_outbox.fail = True
    result = service.initiate(hr_user, initiate_request())
    assert result.evaluations_created == 1
    assert result.emails_failed == 1


def test_due_date_is_creation_plus_days_to_close(service, hr_user, initiate_request):
    appraisal = service.initiate(hr_user, initiate_request(days_to_close=21)).initiated_appraisals[0]
    assert appraisal.due_date == as_utc(appraisal.created_at) + timedelta(days=21)


def test_due_date_is_empty_without_days_to_close(service, hr_user, initiate_request):
    appraisal = service.initiate(hr_user, initiate_request(days_to_close=None)).initiated_appraisals[0]
    assert appraisal.due_date is None


# --- Calendar scheduling ---
def test_scheduling_creates_one_task_per_period(service, hr_user, initiate_request, calendar, db_session):
    request = initiate_request(
        publish_type=PublishType.as_per_calendar,
        frequency_calendar_id=calendar["calendar"].id,
        frequency_calendar_detail_ids=[calendar["q1"].id, calendar["q2"].id],
        days_to_initiate=2,
        period_timings=[{"frequency_calendar_detail_id": calendar["q2"].id, "days_to_initiate": 5, "days_to_close": 30}],
    )
    result = service.initiate(hr_user, request)

    assert result.initiated_appraisals == []
    assert db_session.query(Evaluation).count() == 0
    q1_task, q2_task = result.scheduled_tasks
    assert q1_task.status == ScheduledTaskStatus.pending
    assert as_utc(q1_task.scheduled_at) == as_utc(calendar["q1"].start_date) + timedelta(days=2)
    assert q1_task.days_to_close == 14
    assert as_utc(q2_task.scheduled_at) == as_utc(calendar["q2"].start_date) + timedelta(days=5)
    assert q2_task.days_to_close == 30
    # The cycle comes from the calendar
    assert q1_task.appraisal_cycle_id == calendar["calendar"].appraisal_cycle_id


def test_rescheduling_the_same_period_reuses_the_task(service, hr_user, initiate_request, calendar, db_session):
    def schedule():
        return service.initiate(hr_user, initiate_request(
            publish_type=PublishType.as_per_calendar,
            frequency_calendar_id=calendar["calendar"].id,
            frequency_calendar_detail_ids=[calendar["q1"].id],
        ))

    first = schedule()
    second = schedule()
    assert first.scheduled_tasks[0].id == second.scheduled_tasks[0].id
    assert db_session.query(ScheduledAppraisalTask).count() == 1


def test_scheduling_needs_a_calendar_period(service, hr_user, initiate_request, calendar):
    with pytest.raises(ValidationError):
        service.initiate(hr_user, initiate_request(publish_type=PublishType.as_per_calendar))
    with pytest.raises(ValidationError):
        service.initiate(hr_user, initiate_request(
            publish_type=PublishType.as_per_calendar,
            frequency_calendar_id=calendar["calendar"].id,
        ))


def test_period_must_belong_to_calendar(service, hr_user, initiate_request, calendar, company, cycle, db_session):
    other = FrequencyCalendar(company_id=company.id, code="OTHER", description="Other", appraisal_cycle_id=cycle.id)
    db_session.add(other)
    db_session.commit()
    with pytest.raises(ValidationError):
        service.initiate(hr_user, initiate_request(
            publish_type=PublishType.as_per_calendar,
            frequency_calendar_id=other.id,
            frequency_calendar_detail_ids=[calendar["q1"].id],
        ))


def test_immediate_initiation_for_a_calendar_period(service, hr_user, initiate_request, calendar):
    result = service.initiate(hr_user, initiate_request(frequency_calendar_detail_ids=[calendar["q1"].id]))
    appraisal = result.initiated_appraisals[0]
    assert appraisal.period_key == f"detail:{calendar['q1'].id}"
    assert appraisal.frequency_calendar_id == calendar["calendar"].id


# --- API ---
def test_initiate_endpoint(client, hr_user, auth_headers, group, templates):
    payload = {
        "appraisal_group_id": group.id,
        "appraisal_type": "questionnaire_based",
        "review_scope": "both",
        "publish_type": "now",
        "questionnaire_template_ids": [templates["self"].id, templates["manager"].id],
        "days_to_close": 10,
    }
    response = client.post("/api/appraisals/initiate", json=payload, headers=auth_headers(hr_user))
    assert response.status_code == 201
    data = response.json()
    assert data["evaluations_created"] == 1
    assert data["initiated_appraisals"][0]["due_date"] is not None


def test_employee_cannot_initiate(client, employee, auth_headers, group):
    payload = {"appraisal_group_id": group.id, "appraisal_type": "okr_based"}
    response = client.post("/api/appraisals/initiate", json=payload, headers=auth_headers(employee))
    assert response.status_code == 403


def test_validation_error_shape(client, hr_user, auth_headers, group):
    payload = {"appraisal_group_id": group.id, "appraisal_type": "kpi_based"}
    response = client.post("/api/appraisals/initiate", json=payload, headers=auth_headers(hr_user))
    assert response.status_code == 400
    error = response.json()["errors"][0]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["details"] == {"document_url": "required"}


def test_unknown_group_is_not_found(client, hr_user, auth_headers):
    payload = {"appraisal_group_id": 9999, "appraisal_type": "okr_based"}
    response = client.post("/api/appraisals/initiate", json=payload, headers=auth_headers(hr_user))
    assert response.status_code == 404
