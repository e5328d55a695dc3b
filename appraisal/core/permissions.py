"""
Role -> capability table.
Navigation visibility and endpoint guards both read from ROLE_CAPABILITIES,
so adding a capability to a role is a one-line change here.
"""
import enum
from typing import Dict, FrozenSet, List, Optional
from appraisal.models.user import UserRole


class Capability(str, enum.Enum):
    manage_company = "manage_company"
    manage_org_config = "manage_org_config"
    manage_templates = "manage_templates"
    manage_appraisal_groups = "manage_appraisal_groups"
    initiate_appraisals = "initiate_appraisals"
    view_progress = "view_progress"
    send_reminders = "send_reminders"
    calibrate = "calibrate"
    run_scheduled_tasks = "run_scheduled_tasks"
    review_team = "review_team"
    self_evaluate = "self_evaluate"
    manage_development_goals = "manage_development_goals"
    view_notifications = "view_notifications"


_HR = frozenset({
    Capability.manage_templates,
    Capability.manage_appraisal_groups,
    Capability.initiate_appraisals,
    Capability.view_progress,
    Capability.send_reminders,
    Capability.calibrate,
    Capability.run_scheduled_tasks,
    Capability.manage_development_goals,
    Capability.view_notifications,
    Capability.self_evaluate,
})

ROLE_CAPABILITIES: Dict[UserRole, FrozenSet[Capability]] = {
    UserRole.SUPER_ADMIN: frozenset(Capability),
    UserRole.ADMIN: _HR | {Capability.manage_org_config},
    UserRole.HR_MANAGER: _HR,
    UserRole.MANAGER: frozenset({
        Capability.review_team,
        Capability.self_evaluate,
        Capability.manage_development_goals,
        Capability.view_notifications,
    }),
    UserRole.EMPLOYEE: frozenset({
        Capability.self_evaluate,
        Capability.manage_development_goals,
        Capability.view_notifications,
    }),
}


class NavItem(str, enum.Enum):
    dashboard = "dashboard"
    company_setup = "company_setup"
    organization = "organization"
    appraisal_cycles = "appraisal_cycles"
    frequency_calendars = "frequency_calendars"
    questionnaires = "questionnaires"
    appraisal_groups = "appraisal_groups"
    initiate_appraisal = "initiate_appraisal"
    appraisal_progress = "appraisal_progress"
    scheduled_tasks = "scheduled_tasks"
    my_evaluation = "my_evaluation"
    team_reviews = "team_reviews"
    development_goals = "development_goals"
    notifications = "notifications"


# Item -> capability required to see it. None means every signed-in user.
NAV_REQUIREMENTS: Dict[NavItem, Optional[Capability]] = {
    NavItem.dashboard: None,
    NavItem.company_setup: Capability.manage_company,
    NavItem.organization: Capability.manage_org_config,
    NavItem.appraisal_cycles: Capability.manage_org_config,
    NavItem.frequency_calendars: Capability.manage_org_config,
    NavItem.questionnaires: Capability.manage_templates,
    NavItem.appraisal_groups: Capability.manage_appraisal_groups,
    NavItem.initiate_appraisal: Capability.initiate_appraisals,
    NavItem.appraisal_progress: Capability.view_progress,
    NavItem.scheduled_tasks: Capability.run_scheduled_tasks,
    NavItem.my_evaluation: Capability.self_evaluate,
    NavItem.team_reviews: Capability.review_team,
    NavItem.development_goals: Capability.manage_development_goals,
    NavItem.notifications: Capability.view_notifications,
}

NAV_LABELS: Dict[NavItem, str] = {
    NavItem.dashboard: "Dashboard",
    NavItem.company_setup: "Company Setup",
    NavItem.organization: "Organization",
    NavItem.appraisal_cycles: "Appraisal Cycles",
    NavItem.frequency_calendars: "Frequency Calendars",
    NavItem.questionnaires: "Questionnaires",
    NavItem.appraisal_groups: "Appraisal Groups",
    NavItem.initiate_appraisal: "Initiate Appraisal",
    NavItem.appraisal_progress: "Appraisal Progress",
    NavItem.scheduled_tasks: "Scheduled Appraisals",
    NavItem.my_evaluation: "My Evaluation",
    NavItem.team_reviews: "Team Reviews",
    NavItem.development_goals: "Development Goals",
    NavItem.notifications: "Notifications",
}


def has_capability(role: UserRole, capability: Capability) -> bool:
    return capability in ROLE_CAPABILITIES.get(role, frozenset())


def is_visible(item: NavItem, role: UserRole) -> bool:
    required = NAV_REQUIREMENTS[item]
    return required is None or has_capability(role, required)


def visible_items(role: UserRole) -> List[NavItem]:
    return [item for item in NavItem if is_visible(item, role)]
