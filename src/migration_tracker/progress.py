from __future__ import annotations

from typing import Iterable, Sequence

from .models import TaskStatus


def phase_progress(statuses: Sequence[TaskStatus], *, decimals: int = 2) -> float:
    """Percentage of completed tasks in one phase. An empty phase is 0.0."""
    if not statuses:
        return 0.0
    completed = sum(1 for status in statuses if status == TaskStatus.COMPLETED)
    return round(completed * 100.0 / len(statuses), decimals)


def overall_progress(phases: Iterable[Sequence[TaskStatus]], *, decimals: int = 2) -> float:
    """Mean of phase progress weighted by each phase's task count.

    Weighting by task count reduces to completed tasks over all tasks; phase
    percentages are not re-averaged so rounding does not accumulate.
    """
    total = 0
    completed = 0
    for statuses in phases:
        total += len(statuses)
        completed += sum(1 for status in statuses if status == TaskStatus.COMPLETED)
    if total == 0:
        return 0.0
    return round(completed * 100.0 / total, decimals)
