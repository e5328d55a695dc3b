# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import (
    company, location, department, level, grade, user,
    questionnaire_template, appraisal_cycle, frequency_calendar,
    appraisal_group, initiated_appraisal, scheduled_task, evaluation,
    development_goal, notification, audit_log
)

# Explicit class exports for cleaner imports
from .company import Company, RecordStatus
from .location import Location
from .department import Department
from .level import Level
from .grade import Grade
from .user import User, UserRole
from .questionnaire_template import QuestionnaireTemplate, QuestionType, TemplateTargetRole
from .appraisal_cycle import AppraisalCycle
from .frequency_calendar import ReviewFrequency, FrequencyCalendar, FrequencyCalendarDetail
from .appraisal_group import AppraisalGroup, AppraisalGroupMember
from .initiated_appraisal import InitiatedAppraisal, AppraisalType, ReviewScope, PublishType, AppraisalStatus
from .scheduled_task import ScheduledAppraisalTask, ScheduledTaskStatus
from .evaluation import Evaluation, EvaluationStatus
from .development_goal import DevelopmentGoal, GoalStatus, GoalCategory
from .notification import Notification
from .audit_log import AuditLog

__all__ = [
    "Company", "RecordStatus", "Location", "Department", "Level", "Grade",
    "User", "UserRole",
    "QuestionnaireTemplate", "QuestionType", "TemplateTargetRole",
    "AppraisalCycle", "ReviewFrequency", "FrequencyCalendar", "FrequencyCalendarDetail",
    "AppraisalGroup", "AppraisalGroupMember",
    "InitiatedAppraisal", "AppraisalType", "ReviewScope", "PublishType", "AppraisalStatus",
    "ScheduledAppraisalTask", "ScheduledTaskStatus",
    "Evaluation", "EvaluationStatus",
    "DevelopmentGoal", "GoalStatus", "GoalCategory",
    "Notification", "AuditLog",
]
