from appraisal.core.exceptions import NotFoundError, ValidationError
from appraisal.models.evaluation import Evaluation, EvaluationStatus
from appraisal.models.user import User
from appraisal.services.audit import AuditService
from appraisal.services.base import BaseService
from appraisal.services.email_service import EmailService
from appraisal.services.initiation_service import InitiationService
from appraisal.services.notification import NotificationService


class ReminderService(BaseService):

    def __init__(self, db, company_id=None, email_service=None):
        super().__init__(db, company_id)
        self.email_service = email_service or EmailService()

    def send_reminder(self, employee_id: int, initiated_appraisal_id: int, actor: User) -> Evaluation:
        """
        Email a pending employee about their evaluation.
        Delivery failure propagates as DependencyFailure.
        """
        appraisal = InitiationService(self.db, self.company_id, self.email_service).get_appraisal(initiated_appraisal_id)
        evaluation = self.db.query(Evaluation).filter(
            Evaluation.initiated_appraisal_id == appraisal.id,
            Evaluation.employee_id == employee_id
        ).first()
        if not evaluation:
            employee = self.db.query(User).filter(User.id == employee_id, User.company_id == self.company_id).first()
            if not employee:
                raise NotFoundError("Employee", employee_id)
            raise ValidationError(
                "Employee is not part of this appraisal",
                details={"employee_id": employee_id, "initiated_appraisal_id": initiated_appraisal_id}
            )
        if evaluation.status == EvaluationStatus.finalized:
            raise ValidationError(
                "Employee has already completed this appraisal",
                details={"status": evaluation.status.value}
            )

        self.email_service.send_reminder(evaluation.employee, appraisal, appraisal.due_date)

        NotificationService.create_notification(
            self.db,
            user_id=employee_id,
            title="Appraisal reminder",
            message="Your performance appraisal is still pending.",
            type="reminder",
            link=f"/evaluations/{evaluation.id}",
        )
        AuditService(self.db, self.company_id).log_action(
            action="reminder_sent",
            entity_type="evaluation",
            entity_id=evaluation.id,
            user_id=actor.id,
            user_role=actor.role,
            details={"employee_id": employee_id, "initiated_appraisal_id": initiated_appraisal_id},
        )
        self.commit()
        self.log_info(f"Reminder sent to employee {employee_id} for appraisal {initiated_appraisal_id}")
        return evaluation
