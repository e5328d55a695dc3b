"""
Evaluation workflow transitions.

    not_started -> self_submitted -> manager_reviewed -> meeting_scheduled
                -> meeting_completed -> finalized

A meeting is optional: a reviewed evaluation can be finalized directly.
Calibration is not a transition; it never touches status.
"""
import enum
from typing import Dict, FrozenSet, Tuple

from appraisal.core.exceptions import InvalidStateTransition
from appraisal.models.evaluation import EvaluationStatus as S


class EvaluationEvent(str, enum.Enum):
    save_self_draft = "save_self_draft"
    submit_self = "submit_self"
    submit_manager_review = "submit_manager_review"
    schedule_meeting = "schedule_meeting"
    record_meeting = "record_meeting"
    finalize = "finalize"


class Actor(str, enum.Enum):
    employee = "employee"
    manager = "manager"


# event -> (allowed source states, target state)
TRANSITIONS: Dict[EvaluationEvent, Tuple[FrozenSet[S], S]] = {
    EvaluationEvent.save_self_draft: (frozenset({S.not_started}), S.not_started),
    EvaluationEvent.submit_self: (frozenset({S.not_started}), S.self_submitted),
    EvaluationEvent.submit_manager_review: (frozenset({S.self_submitted}), S.manager_reviewed),
    EvaluationEvent.schedule_meeting: (frozenset({S.manager_reviewed, S.meeting_scheduled}), S.meeting_scheduled),
    EvaluationEvent.record_meeting: (frozenset({S.meeting_scheduled}), S.meeting_completed),
    EvaluationEvent.finalize: (frozenset({S.manager_reviewed, S.meeting_completed}), S.finalized),
}

EVENT_ACTORS: Dict[EvaluationEvent, Actor] = {
    EvaluationEvent.save_self_draft: Actor.employee,
    EvaluationEvent.submit_self: Actor.employee,
    EvaluationEvent.submit_manager_review: Actor.manager,
    EvaluationEvent.schedule_meeting: Actor.manager,
    EvaluationEvent.record_meeting: Actor.manager,
    EvaluationEvent.finalize: Actor.manager,
}


def can_apply(current: S, event: EvaluationEvent) -> bool:
    sources, _ = TRANSITIONS[event]
    return current in sources


def next_status(current: S, event: EvaluationEvent) -> S:
    sources, target = TRANSITIONS[event]
    if current not in sources:
        raise InvalidStateTransition(
            f"Cannot {event.value.replace('_', ' ')} while the evaluation is {current.value}",
            details={
                "event": event.value,
                "current_status": current.value,
                "allowed_from": sorted(s.value for s in sources),
            }
        )
    return target


def available_events(current: S):
    return [event for event in EvaluationEvent if can_apply(current, event)]
