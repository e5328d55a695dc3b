"""
Background scheduler.

One interval job sweeps due ScheduledAppraisalTasks across all companies.
Thread-pool executor because the sweep uses synchronous SQLAlchemy sessions.
"""
import logging

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler

from appraisal.core.config import settings
from appraisal.database import session_scope

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "scheduled_appraisal_sweep"

jobstores = {
    "default": MemoryJobStore()
}

executors = {
    "default": ThreadPoolExecutor(2),
}

job_defaults = {
    "coalesce": True,  # Combine missed runs into one
    "max_instances": 1,  # Never overlap two sweeps
    "misfire_grace_time": 60,
}

scheduler = BackgroundScheduler(
    jobstores=jobstores,
    executors=executors,
    job_defaults=job_defaults,
    timezone=settings.scheduler.timezone,
)


def run_scheduled_appraisals():
    """Sweep entry point. Uses its own session; never raises into the scheduler."""
    from appraisal.services.scheduled_task_runner import ScheduledTaskRunner

    try:
        with session_scope() as db:
            summary = ScheduledTaskRunner(db).run_due()
        if summary.claimed:
            logger.info(
                f"Scheduled appraisal sweep: {summary.executed} executed, {summary.failed} failed"
            )
    except Exception as e:
        logger.error(f"Scheduled appraisal sweep failed: {e}", exc_info=True)


def start_scheduler():
    if not settings.scheduler.enabled:
        logger.info("Scheduler disabled by configuration")
        return
    if scheduler.running:
        return
    scheduler.add_job(
        run_scheduled_appraisals,
        trigger="interval",
        minutes=settings.scheduler.sweep_interval_minutes,
        id=SWEEP_JOB_ID,
        replace_existing=True,
    )
    scheduler.start()
    logger.info(
        f"Scheduler started: appraisal sweep every {settings.scheduler.sweep_interval_minutes} minutes"
    )


def shutdown_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")


def scheduler_state() -> str:
    if not settings.scheduler.enabled:
        return "disabled"
    return "running" if scheduler.running else "stopped"
