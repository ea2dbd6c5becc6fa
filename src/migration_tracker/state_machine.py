from __future__ import annotations

from typing import Iterable

from .errors import InvalidTransition
from .models import (
    RISK_STATUS_TRANSITIONS,
    TASK_STATUS_TRANSITIONS,
    PhaseStatus,
    RiskStatus,
    TaskStatus,
)


def assert_task_transition(task_id: str, current: TaskStatus, requested: TaskStatus) -> None:
    """Raise InvalidTransition unless ``current -> requested`` is a legal forward move."""
    if requested not in TASK_STATUS_TRANSITIONS[current]:
        raise InvalidTransition(task_id, current.value, requested.value)


def assert_reopen(task_id: str, current: TaskStatus) -> TaskStatus:
    if current != TaskStatus.COMPLETED:
        raise InvalidTransition(task_id, current.value, "reopen")
    return TaskStatus.IN_PROGRESS


def assert_risk_transition(risk_id: str, current: RiskStatus, requested: RiskStatus) -> None:
    if requested not in RISK_STATUS_TRANSITIONS[current]:
        raise InvalidTransition(risk_id, current.value, requested.value)


def derive_phase_status(statuses: Iterable[TaskStatus]) -> PhaseStatus:
    """Compute a phase status from the statuses of its live tasks.

    A phase without tasks counts as not started.
    """
    values = list(statuses)
    if all(status == TaskStatus.NOT_STARTED for status in values):
        return PhaseStatus.NOT_STARTED
    if all(status == TaskStatus.COMPLETED for status in values):
        return PhaseStatus.COMPLETED
    if TaskStatus.BLOCKED in values and TaskStatus.IN_PROGRESS not in values:
        return PhaseStatus.BLOCKED
    return PhaseStatus.IN_PROGRESS


def starts_work(current: TaskStatus, requested: TaskStatus) -> bool:
    """True when a transition starts a task and so is subject to the phase gate."""
    return current == TaskStatus.NOT_STARTED and requested == TaskStatus.IN_PROGRESS
