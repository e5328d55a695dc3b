import pytest
from datetime import timedelta

from appraisal.core.clock import utcnow
from appraisal.core.exceptions import InvalidStateTransition
from appraisal.models.appraisal_group import AppraisalGroupMember
from appraisal.models.company import RecordStatus
from appraisal.models.evaluation import Evaluation
from appraisal.models.initiated_appraisal import PublishType
from appraisal.models.scheduled_task import ScheduledTaskStatus
from appraisal.services.initiation_service import InitiationService
from appraisal.services.scheduled_task_runner import ScheduledTaskRunner


@pytest.fixture
def schedule(db_session, company, hr_user, initiate_request, calendar):
    """Schedule the group for the given calendar periods (default: Q1, already due)."""
    def _schedule(periods=("q1",), **overrides):
        request = initiate_request(
            publish_type=PublishType.as_per_calendar,
            frequency_calendar_id=calendar["calendar"].id,
            frequency_calendar_detail_ids=[calendar[p].id for p in periods],
            **overrides
        )
        return InitiationService(db_session, company.id).initiate(hr_user, request).scheduled_tasks
    return _schedule


@pytest.fixture
def runner(db_session):
    return ScheduledTaskRunner(db_session)


def test_due_task_uses_membership_at_execution_time(runner, schedule, db_session, group, hr_user, make_user, employee):
    """Members added after scheduling are included when the task runs."""
    task, = schedule()
    newcomer = make_user()
    db_session.add(AppraisalGroupMember(appraisal_group_id=group.id, user_id=newcomer.id, added_by_id=hr_user.id))
    db_session.commit()

    summary = runner.run_due(utcnow())

    assert summary.claimed == 1
    assert summary.executed == 1
    task = runner.get_task(task.id)
    assert task.status == ScheduledTaskStatus.executed
    assert task.executed_at is not None
    assert task.evaluations_created == 2
    employees = {e.employee_id for e in db_session.query(Evaluation).filter(
        Evaluation.initiated_appraisal_id == task.initiated_appraisal_id
    )}
    assert employees == {employee.id, newcomer.id}


def test_future_task_is_left_pending(runner, schedule):
    task, = schedule(periods=("q2",))
    summary = runner.run_due(utcnow())
    assert summary.claimed == 0
    assert runner.get_task(task.id).status == ScheduledTaskStatus.pending


def test_task_with_no_eligible_members_still_executes(runner, schedule, employee):
    task, = schedule(excluded_employee_ids=[employee.id])
    runner.run_due(utcnow())
    task = runner.get_task(task.id)
    assert task.status == ScheduledTaskStatus.executed
    assert task.initiated_appraisal_id is None
    assert task.evaluations_created == 0


def test_failing_task_is_marked_failed_and_not_retried(runner, schedule, templates, db_session):
    task, = schedule()
    templates["self"].status = RecordStatus.inactive
    db_session.commit()

    summary = runner.run_due(utcnow())
    assert summary.failed == 1
    task = runner.get_task(task.id)
    assert task.status == ScheduledTaskStatus.failed
    assert "inactive" in task.error.lower()

    # A later sweep leaves it alone
    assert runner.run_due(utcnow() + timedelta(minutes=5)).claimed == 0


def test_only_one_worker_claims_a_task(runner, schedule, db_session):
    task, = schedule()
    other_worker = ScheduledTaskRunner(db_session)
    assert runner.claim(task.id) is True
    assert other_worker.claim(task.id) is False


def test_requeue_only_failed_tasks(runner, schedule, templates, db_session):
    task, = schedule()
    with pytest.raises(InvalidStateTransition):
        runner.requeue(task.id)

    templates["self"].status = RecordStatus.inactive
    db_session.commit()
    runner.run_due(utcnow())

    task = runner.requeue(task.id)
    assert task.status == ScheduledTaskStatus.pending
    assert task.error is None


def test_abandoned_claim_is_failed_and_can_be_requeued(runner, schedule):
    task, = schedule()
    now = utcnow()
    # Claimed two hours ago by a worker that never finished
    assert runner.claim(task.id, now - timedelta(hours=2)) is True

    summary = runner.run_due(now)

    assert summary.reclaimed == 1
    assert summary.claimed == 0
    task = runner.get_task(task.id)
    assert task.status == ScheduledTaskStatus.failed
    assert "re-queue" in task.error
    assert runner.requeue(task.id).status == ScheduledTaskStatus.pending


def test_recent_claim_is_left_running(runner, schedule):
    task, = schedule()
    now = utcnow()
    runner.claim(task.id, now - timedelta(minutes=1))

    summary = runner.run_due(now)

    assert summary.reclaimed == 0
    assert runner.get_task(task.id).status == ScheduledTaskStatus.processing


def test_company_runner_ignores_other_tenants(db_session, schedule):
    schedule()
    summary = ScheduledTaskRunner(db_session, company_id=99999).run_due(utcnow())
    assert summary.claimed == 0


def test_run_endpoint(client, hr_user, auth_headers, schedule):
    schedule()
    response = client.post("/api/appraisals/scheduled-tasks/run", headers=auth_headers(hr_user))
    assert response.status_code == 200
    data = response.json()
    assert data["executed"] == 1
    assert data["tasks"][0]["status"] == "executed"


def test_run_endpoint_requires_hr(client, employee, auth_headers):
    response = client.post("/api/appraisals/scheduled-tasks/run", headers=auth_headers(employee))
    assert response.status_code == 403
