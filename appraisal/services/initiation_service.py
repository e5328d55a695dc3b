"""
Appraisal initiation.

"now" resolves group membership immediately and creates one InitiatedAppraisal
plus one Evaluation per eligible member. "as_per_calendar" stores one
ScheduledAppraisalTask per selected calendar period; the scheduled runner later
calls create_evaluations() with membership resolved at execution time.

Each batch is keyed by period_key (calendar period, else appraisal cycle, else
group). Initiating the same group and period again reuses the batch and only
adds members that have no evaluation for that period yet.
"""
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError

from appraisal.core.clock import as_utc, utcnow
from appraisal.core.exceptions import ConcurrentModification, DependencyFailure, NotFoundError, ValidationError
from appraisal.models.appraisal_cycle import AppraisalCycle
from appraisal.models.company import RecordStatus
from appraisal.models.evaluation import Evaluation
from appraisal.models.frequency_calendar import FrequencyCalendar, FrequencyCalendarDetail
from appraisal.models.initiated_appraisal import (
    AppraisalStatus, AppraisalType, InitiatedAppraisal, PublishType,
)
from appraisal.models.scheduled_task import ScheduledAppraisalTask, ScheduledTaskStatus
from appraisal.models.user import User
from appraisal.services.appraisal_group_service import AppraisalGroupService
from appraisal.services.audit import AuditService
from appraisal.services.base import BaseService
from appraisal.services.email_service import EmailService
from appraisal.services.notification import NotificationService
from appraisal.services.questionnaire_service import QuestionnaireService

TENURE_THRESHOLD = timedelta(days=365)
DOCUMENT_BASED_TYPES = {AppraisalType.kpi_based, AppraisalType.mbo_based}

# Settings shared by InitiatedAppraisal and ScheduledAppraisalTask
CONFIG_FIELDS = (
    "appraisal_group_id",
    "appraisal_type",
    "review_scope",
    "questionnaire_template_ids",
    "document_url",
    "frequency_calendar_id",
    "appraisal_cycle_id",
    "days_to_initiate",
    "days_to_close",
    "number_of_reminders",
    "exclude_tenure_less_than_year",
    "excluded_employee_ids",
    "make_public",
)


def build_period_key(group_id: int, detail_id: Optional[int] = None, cycle_id: Optional[int] = None) -> str:
    if detail_id is not None:
        return f"detail:{detail_id}"
    if cycle_id is not None:
        return f"cycle:{cycle_id}"
    return f"group:{group_id}"


def is_eligible(member: User, excluded_ids, exclude_short_tenure: bool, now) -> bool:
    """Active, not excluded, and (when requested) at least a year since joining."""
    if not member.is_active or member.id in excluded_ids:
        return False
    if exclude_short_tenure and member.date_of_joining is not None:
        return now - as_utc(member.date_of_joining) >= TENURE_THRESHOLD
    return True


@dataclass
class CreationResult:
    initiated_appraisal: Optional[InitiatedAppraisal] = None
    evaluations: List[Evaluation] = field(default_factory=list)
    emails_failed: int = 0
    reused: bool = False


@dataclass
class InitiationResult:
    publish_type: PublishType
    initiated_appraisals: List[InitiatedAppraisal] = field(default_factory=list)
    scheduled_tasks: List[ScheduledAppraisalTask] = field(default_factory=list)
    evaluations_created: int = 0
    emails_failed: int = 0


class InitiationService(BaseService):

    def __init__(self, db, company_id: Optional[int] = None, email_service: Optional[EmailService] = None):
        super().__init__(db, company_id)
        self.email_service = email_service or EmailService()
        self.groups = AppraisalGroupService(db, company_id)
        self.questionnaires = QuestionnaireService(db, company_id)

    # --- Entry point ---
    def initiate(self, actor: User, request: Dict[str, Any]) -> InitiationResult:
        group = self.groups.get_group(request["appraisal_group_id"])
        if group.status != RecordStatus.active:
            raise ValidationError("Appraisal group is inactive", details={"appraisal_group_id": "inactive"})

        self._validate_type_requirements(request)
        self.questionnaires.get_templates(request.get("questionnaire_template_ids") or [])

        cycle = self._get_cycle(request.get("appraisal_cycle_id"))
        calendar, details = self._resolve_calendar(request)
        if cycle is None and calendar is not None:
            request["appraisal_cycle_id"] = calendar.appraisal_cycle_id

        config = {name: request.get(name) for name in CONFIG_FIELDS}
        config["questionnaire_template_ids"] = list(dict.fromkeys(config["questionnaire_template_ids"] or []))
        config["excluded_employee_ids"] = list(config["excluded_employee_ids"] or [])

        if request["publish_type"] == PublishType.as_per_calendar:
            tasks = self._schedule(config, details, request.get("period_timings") or [], actor)
            return InitiationResult(publish_type=PublishType.as_per_calendar, scheduled_tasks=tasks)

        detail = details[0] if details else None
        created = self.create_evaluations(config, detail, actor.id, PublishType.now)
        return InitiationResult(
            publish_type=PublishType.now,
            initiated_appraisals=[created.initiated_appraisal],
            evaluations_created=len(created.evaluations),
            emails_failed=created.emails_failed,
        )

    # --- Validation ---
    @staticmethod
    def _validate_type_requirements(request: Dict[str, Any]):
        appraisal_type = request["appraisal_type"]
        if appraisal_type == AppraisalType.questionnaire_based and not request.get("questionnaire_template_ids"):
            raise ValidationError(
                "Questionnaire-based appraisals need at least one questionnaire template",
                details={"questionnaire_template_ids": "required"}
            )
        if appraisal_type in DOCUMENT_BASED_TYPES and not request.get("document_url"):
            raise ValidationError(
                f"{appraisal_type.value} appraisals need an uploaded document",
                details={"document_url": "required"}
            )

    def _get_cycle(self, cycle_id: Optional[int]) -> Optional[AppraisalCycle]:
        if cycle_id is None:
            return None
        cycle = self.db.query(AppraisalCycle).filter(
            AppraisalCycle.id == cycle_id,
            AppraisalCycle.company_id == self.company_id
        ).first()
        if not cycle:
            raise NotFoundError("Appraisal cycle", cycle_id)
        return cycle

    def _resolve_calendar(self, request: Dict[str, Any]):
        calendar_id = request.get("frequency_calendar_id")
        detail_ids = list(dict.fromkeys(request.get("frequency_calendar_detail_ids") or []))
        scheduled = request["publish_type"] == PublishType.as_per_calendar

        if scheduled and calendar_id is None:
            raise ValidationError(
                "Scheduling per calendar needs a frequency calendar",
                details={"frequency_calendar_id": "required"}
            )
        if scheduled and not detail_ids:
            raise ValidationError(
                "Select at least one calendar period",
                details={"frequency_calendar_detail_ids": "required"}
            )
        if not scheduled and len(detail_ids) > 1:
            raise ValidationError(
                "An immediate appraisal covers a single calendar period",
                details={"frequency_calendar_detail_ids": "at most one"}
            )
        if calendar_id is None and not detail_ids:
            return None, []

        details = []
        if detail_ids:
            details = self.db.query(FrequencyCalendarDetail).join(FrequencyCalendar).filter(
                FrequencyCalendarDetail.id.in_(detail_ids),
                FrequencyCalendar.company_id == self.company_id
            ).all()
            found = {d.id for d in details}
            missing = [d for d in detail_ids if d not in found]
            if missing:
                raise ValidationError(
                    "Unknown calendar periods",
                    details={"frequency_calendar_detail_ids": f"not found: {missing}"}
                )
            if calendar_id is None:
                calendar_id = details[0].frequency_calendar_id
                request["frequency_calendar_id"] = calendar_id
            foreign = [d.id for d in details if d.frequency_calendar_id != calendar_id]
            if foreign:
                raise ValidationError(
                    "Selected periods do not belong to the frequency calendar",
                    details={"frequency_calendar_detail_ids": f"not in calendar {calendar_id}: {foreign}"}
                )
            details.sort(key=lambda d: as_utc(d.start_date))

        calendar = self.db.query(FrequencyCalendar).filter(
            FrequencyCalendar.id == calendar_id,
            FrequencyCalendar.company_id == self.company_id
        ).first()
        if not calendar:
            raise NotFoundError("Frequency calendar", calendar_id)
        return calendar, details

    # --- Scheduled mode ---
    def _schedule(self, config: Dict[str, Any], details: List[FrequencyCalendarDetail], timings, actor: User) -> List[ScheduledAppraisalTask]:
        overrides = {}
        selected = {d.id for d in details}
        for timing in timings:
            if timing["frequency_calendar_detail_id"] not in selected:
                raise ValidationError(
                    "Period timing refers to a period that is not selected",
                    details={"period_timings": f"detail {timing['frequency_calendar_detail_id']} not selected"}
                )
            overrides[timing["frequency_calendar_detail_id"]] = timing

        tasks = []
        for detail in details:
            existing = self.db.query(ScheduledAppraisalTask).filter(
                ScheduledAppraisalTask.company_id == self.company_id,
                ScheduledAppraisalTask.appraisal_group_id == config["appraisal_group_id"],
                ScheduledAppraisalTask.frequency_calendar_detail_id == detail.id,
                ScheduledAppraisalTask.status != ScheduledTaskStatus.failed
            ).first()
            if existing:
                self.log_info(f"Period {detail.id} already scheduled as task {existing.id}")
                tasks.append(existing)
                continue

            # Each period keeps its own timing
            timing = overrides.get(detail.id, {})
            task_config = dict(config)
            if timing.get("days_to_initiate") is not None:
                task_config["days_to_initiate"] = timing["days_to_initiate"]
            if timing.get("days_to_close") is not None:
                task_config["days_to_close"] = timing["days_to_close"]

            task = ScheduledAppraisalTask(
                company_id=self.company_id,
                frequency_calendar_detail_id=detail.id,
                scheduled_at=as_utc(detail.start_date) + timedelta(days=task_config["days_to_initiate"] or 0),
                status=ScheduledTaskStatus.pending,
                created_by_id=actor.id,
                **task_config,
            )
            self.db.add(task)
            tasks.append(task)

        self.db.flush()
        AuditService(self.db, self.company_id).log_action(
            action="appraisal_scheduled",
            entity_type="appraisal_group",
            entity_id=config["appraisal_group_id"],
            user_id=actor.id,
            user_role=actor.role,
            details={"task_ids": [t.id for t in tasks]},
        )
        self.commit()
        for task in tasks:
            self.db.refresh(task)
        self.log_info(f"Scheduled {len(tasks)} appraisal tasks for group {config['appraisal_group_id']}")
        return tasks

    # --- Immediate creation (also used by the scheduled runner) ---
    def create_evaluations(
        self,
        config: Dict[str, Any],
        detail: Optional[FrequencyCalendarDetail],
        creator_id: int,
        publish_type: PublishType,
        allow_empty: bool = False,
    ) -> CreationResult:
        group_id = config["appraisal_group_id"]
        now = utcnow()
        members = self.groups.list_members(group_id)
        excluded = set(config.get("excluded_employee_ids") or [])
        eligible = [
            m for m in members
            if is_eligible(m, excluded, config.get("exclude_tenure_less_than_year"), now)
        ]
        if not eligible:
            if allow_empty:
                self.log_info(f"No eligible employees in group {group_id}; nothing to initiate")
                return CreationResult()
            raise ValidationError(
                "No eligible employees in the appraisal group",
                details={"appraisal_group_id": "no eligible members after exclusions"}
            )

        templates = self.questionnaires.get_templates(config.get("questionnaire_template_ids") or [])
        assignments = {}
        for member in eligible:
            resolved = QuestionnaireService.resolve_for_member(templates, member, config["review_scope"])
            if config["appraisal_type"] == AppraisalType.questionnaire_based and not resolved:
                raise ValidationError(
                    f"No questionnaire template applies to {member.full_name}",
                    details={"employee_id": member.id, "questionnaire_template_ids": "none applicable"}
                )
            assignments[member.id] = [t.id for t in resolved]

        detail_id = detail.id if detail else None
        period_key = build_period_key(group_id, detail_id, config.get("appraisal_cycle_id"))
        batch_args = (config, detail_id, period_key, eligible, assignments, creator_id, publish_type)

        try:
            appraisal, evaluations, pending, skipped, reused = self._persist_batch(*batch_args)
        except IntegrityError:
            # A concurrent request committed this period first; retry against its rows
            self.db.rollback()
            self.log_warning(f"Concurrent initiation of {period_key} for group {group_id}; merging into the committed batch")
            try:
                appraisal, evaluations, pending, skipped, reused = self._persist_batch(*batch_args)
            except IntegrityError:
                self.db.rollback()
                raise ConcurrentModification(
                    "This appraisal period is being initiated by another request. Reload and try again."
                )

        emails_failed = self._send_initiation_emails(appraisal, pending)
        self.log_info(
            f"Initiated appraisal {appraisal.id} ({period_key}): "
            f"{len(evaluations)} evaluations, {skipped} already covered, {emails_failed} emails failed",
            company_id=self.company_id,
        )
        return CreationResult(
            initiated_appraisal=appraisal,
            evaluations=evaluations,
            emails_failed=emails_failed,
            reused=reused,
        )

    def _persist_batch(self, config, detail_id, period_key, eligible, assignments, creator_id, publish_type):
        """
        Reuse or create the batch for (group, period_key) and add an Evaluation
        for every eligible member the period does not cover yet. Commits.
        """
        appraisal = self._open_batch(config["appraisal_group_id"], period_key)
        reused = appraisal is not None

        covered = self._covered_employee_ids(period_key, [m.id for m in eligible])
        pending = [m for m in eligible if m.id not in covered]

        if appraisal is None:
            appraisal = InitiatedAppraisal(
                company_id=self.company_id,
                frequency_calendar_detail_id=detail_id,
                period_key=period_key,
                publish_type=publish_type,
                status=AppraisalStatus.active,
                created_by_id=creator_id,
                **config,
            )
            self.db.add(appraisal)
            self.db.flush()

        evaluations = []
        for member in pending:
            evaluation = Evaluation(
                company_id=self.company_id,
                employee_id=member.id,
                manager_id=member.reporting_manager_id or creator_id,
                initiated_appraisal_id=appraisal.id,
                appraisal_cycle_id=config.get("appraisal_cycle_id"),
                frequency_calendar_detail_id=detail_id,
                period_key=period_key,
                questionnaire_template_ids=assignments[member.id],
            )
            self.db.add(evaluation)
            evaluations.append(evaluation)
            NotificationService.create_notification(
                self.db,
                user_id=member.id,
                title="Appraisal started",
                message="A new performance appraisal is waiting for your self-evaluation.",
                type="evaluation",
                link="/evaluations",
            )

        self.db.flush()
        AuditService(self.db, self.company_id).log_action(
            action="appraisal_reused" if reused else "appraisal_initiated",
            entity_type="initiated_appraisal",
            entity_id=appraisal.id,
            user_id=creator_id,
            user_role=None,
            details={"period_key": period_key, "evaluations_created": len(evaluations), "skipped": len(covered)},
        )
        self.commit()
        self.db.refresh(appraisal)
        return appraisal, evaluations, pending, len(covered), reused

    def _open_batch(self, group_id: int, period_key: str) -> Optional[InitiatedAppraisal]:
        return self.db.query(InitiatedAppraisal).filter(
            InitiatedAppraisal.company_id == self.company_id,
            InitiatedAppraisal.appraisal_group_id == group_id,
            InitiatedAppraisal.period_key == period_key,
            InitiatedAppraisal.status != AppraisalStatus.cancelled
        ).first()

    def _covered_employee_ids(self, period_key: str, employee_ids: List[int]) -> set:
        return {
            employee_id for (employee_id,) in self.db.query(Evaluation.employee_id).filter(
                Evaluation.period_key == period_key,
                Evaluation.employee_id.in_(employee_ids)
            )
        }

    def _send_initiation_emails(self, appraisal: InitiatedAppraisal, members: List[User]) -> int:
        failed = 0
        for member in members:
            try:
                self.email_service.send_initiation(member, appraisal, appraisal.due_date)
            except DependencyFailure as e:
                failed += 1
                self.log_warning(f"Initiation email to employee {member.id} failed: {e.message}")
        return failed

    # --- Lookups ---
    def get_appraisal(self, appraisal_id: int) -> InitiatedAppraisal:
        appraisal = self.db.query(InitiatedAppraisal).filter(
            InitiatedAppraisal.id == appraisal_id,
            InitiatedAppraisal.company_id == self.company_id
        ).first()
        if not appraisal:
            raise NotFoundError("Initiated appraisal", appraisal_id)
        return appraisal

    def generate_evaluations(self, appraisal_id: int, actor: User) -> CreationResult:
        """Top up an existing batch with group members added since it was initiated."""
        appraisal = self.get_appraisal(appraisal_id)
        if appraisal.status != AppraisalStatus.active:
            raise ValidationError(
                "Evaluations can only be generated for an active appraisal",
                details={"status": appraisal.status.value}
            )
        config = {name: getattr(appraisal, name) for name in CONFIG_FIELDS}
        return self.create_evaluations(
            config,
            appraisal.frequency_calendar_detail,
            actor.id,
            appraisal.publish_type,
            allow_empty=True,
        )
