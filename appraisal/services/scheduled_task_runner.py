import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from appraisal.core.clock import utcnow
from appraisal.core.config import settings
from appraisal.core.exceptions import InvalidStateTransition, NotFoundError
from appraisal.models.scheduled_task import ScheduledAppraisalTask, ScheduledTaskStatus
from appraisal.models.initiated_appraisal import PublishType
from appraisal.services.base import BaseService
from appraisal.services.initiation_service import CONFIG_FIELDS, InitiationService

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    claimed: int = 0
    executed: int = 0
    failed: int = 0
    reclaimed: int = 0
    tasks: List[ScheduledAppraisalTask] = field(default_factory=list)


class ScheduledTaskRunner(BaseService):
    """
    Promotes due ScheduledAppraisalTasks into InitiatedAppraisals.

    Without a company_id the runner sweeps every tenant (the background job);
    with one it only touches that company's tasks (the HR endpoint).
    Failed tasks are left failed; HR re-queues them explicitly. A task stuck in
    processing past the stale-claim window (its worker died) is marked failed
    so it can be re-queued the same way.
    """

    def __init__(self, db: Session, company_id: Optional[int] = None, email_service=None):
        super().__init__(db, company_id)
        self.email_service = email_service

    def _scoped(self, query):
        if self.company_id is not None:
            query = query.filter(ScheduledAppraisalTask.company_id == self.company_id)
        return query

    def due_task_ids(self, now: datetime) -> List[int]:
        query = self.db.query(ScheduledAppraisalTask.id).filter(
            ScheduledAppraisalTask.status == ScheduledTaskStatus.pending,
            ScheduledAppraisalTask.scheduled_at <= now
        )
        return [task_id for (task_id,) in self._scoped(query).order_by(ScheduledAppraisalTask.scheduled_at)]

    def claim(self, task_id: int, now: Optional[datetime] = None) -> bool:
        """Atomically move pending -> processing. Only one caller can win."""
        result = self.db.execute(
            update(ScheduledAppraisalTask)
            .where(
                ScheduledAppraisalTask.id == task_id,
                ScheduledAppraisalTask.status == ScheduledTaskStatus.pending
            )
            .values(status=ScheduledTaskStatus.processing, claimed_at=now or utcnow())
            .execution_options(synchronize_session=False)
        )
        self.commit()
        return result.rowcount == 1

    def fail_stale_claims(self, now: datetime) -> int:
        cutoff = now - timedelta(minutes=settings.scheduler.stale_claim_minutes)
        statement = update(ScheduledAppraisalTask).where(
            ScheduledAppraisalTask.status == ScheduledTaskStatus.processing,
            ScheduledAppraisalTask.claimed_at < cutoff
        )
        if self.company_id is not None:
            statement = statement.where(ScheduledAppraisalTask.company_id == self.company_id)
        result = self.db.execute(
            statement.values(
                status=ScheduledTaskStatus.failed,
                executed_at=now,
                error="Worker stopped before the task finished; re-queue to run it again",
            ).execution_options(synchronize_session=False)
        )
        self.commit()
        if result.rowcount:
            logger.warning(f"Marked {result.rowcount} abandoned scheduled task(s) as failed")
        return result.rowcount

    def run_due(self, now: Optional[datetime] = None) -> RunSummary:
        now = now or utcnow()
        summary = RunSummary()
        summary.reclaimed = self.fail_stale_claims(now)
        for task_id in self.due_task_ids(now):
            if not self.claim(task_id, now):
                logger.info(f"Scheduled task {task_id} was claimed by another worker")
                continue
            summary.claimed += 1
            task = self.execute(task_id, now)
            summary.tasks.append(task)
            if task.status == ScheduledTaskStatus.executed:
                summary.executed += 1
            else:
                summary.failed += 1
        if summary.claimed:
            logger.info(
                f"Scheduled sweep: {summary.claimed} claimed, {summary.executed} executed, {summary.failed} failed"
            )
        return summary

    def execute(self, task_id: int, now: datetime) -> ScheduledAppraisalTask:
        """Run a claimed task. Exceptions mark the task failed; they are not retried."""
        task = self.db.get(ScheduledAppraisalTask, task_id)
        self.db.refresh(task)
        try:
            initiation = InitiationService(self.db, task.company_id, email_service=self.email_service)
            config = {name: getattr(task, name) for name in CONFIG_FIELDS}
            created = initiation.create_evaluations(
                config,
                task.frequency_calendar_detail,
                task.created_by_id,
                PublishType.as_per_calendar,
                allow_empty=True,
            )
            task.status = ScheduledTaskStatus.executed
            task.executed_at = now
            task.error = None
            task.initiated_appraisal_id = created.initiated_appraisal.id if created.initiated_appraisal else None
            task.evaluations_created = len(created.evaluations)
            self.commit()
            logger.info(
                f"Scheduled task {task.id} executed: {task.evaluations_created} evaluations",
                extra={"task_id": task.id, "company_id": task.company_id},
            )
        except Exception as e:
            self.db.rollback()
            logger.exception(f"Scheduled task {task_id} failed")
            task = self.db.get(ScheduledAppraisalTask, task_id)
            task.status = ScheduledTaskStatus.failed
            task.executed_at = now
            task.error = str(e)[:2000]
            self.commit()
        self.db.refresh(task)
        return task

    # --- HR operations ---
    def list_tasks(self, status: Optional[ScheduledTaskStatus] = None) -> List[ScheduledAppraisalTask]:
        query = self._scoped(self.db.query(ScheduledAppraisalTask))
        if status is not None:
            query = query.filter(ScheduledAppraisalTask.status == status)
        return query.order_by(ScheduledAppraisalTask.scheduled_at, ScheduledAppraisalTask.id).all()

    def get_task(self, task_id: int) -> ScheduledAppraisalTask:
        task = self._scoped(self.db.query(ScheduledAppraisalTask)).filter(ScheduledAppraisalTask.id == task_id).first()
        if not task:
            raise NotFoundError("Scheduled task", task_id)
        return task

    def requeue(self, task_id: int) -> ScheduledAppraisalTask:
        task = self.get_task(task_id)
        if task.status != ScheduledTaskStatus.failed:
            raise InvalidStateTransition(
                f"Only failed tasks can be re-queued (task is {task.status.value})",
                details={"status": task.status.value}
            )
        task.status = ScheduledTaskStatus.pending
        task.error = None
        task.executed_at = None
        self.commit()
        self.db.refresh(task)
        self.log_info(f"Scheduled task {task.id} re-queued", company_id=task.company_id)
        return task
