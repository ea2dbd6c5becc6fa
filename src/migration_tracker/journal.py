from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from .errors import InconsistentState
from .models import (
    LogAction,
    LogEntry,
    PhaseReadiness,
    PhaseStatus,
    RiskStatus,
    SubjectKind,
    TaskStatus,
    utc_now,
)
from .state_machine import derive_phase_status

logger = logging.getLogger(__name__)

# Entries that restate the current status rather than change it.
_HISTORY_SKIPPED = frozenset({LogAction.TIME_LOGGED, LogAction.ARCHIVED})


@dataclass
class ReplayState:
    """Plan state rebuilt from the journal alone."""

    task_statuses: dict[str, TaskStatus] = field(default_factory=dict)
    task_phases: dict[str, str] = field(default_factory=dict)
    archived_tasks: set[str] = field(default_factory=set)
    phases: list[str] = field(default_factory=list)
    archived_phases: set[str] = field(default_factory=set)
    phase_readiness: dict[str, PhaseReadiness] = field(default_factory=dict)
    risk_statuses: dict[str, RiskStatus] = field(default_factory=dict)
    history: dict[str, list[str]] = field(default_factory=dict)

    def phase_statuses(self) -> dict[str, PhaseStatus]:
        members: dict[str, list[TaskStatus]] = {phase_id: [] for phase_id in self.phases}
        for task_id, phase_id in self.task_phases.items():
            if task_id in self.archived_tasks:
                continue
            members.setdefault(phase_id, []).append(self.task_statuses[task_id])
        return {phase_id: derive_phase_status(statuses) for phase_id, statuses in members.items()}


class AuditLog:
    """Append-only journal ordered by a logical clock.

    ``append`` is the only mutator. Sequence numbers start at 1 and increase by
    one per entry regardless of wall-clock time, so ordering stays stable in
    tests and across snapshots.
    """

    def __init__(self, entries: Iterable[LogEntry] = ()) -> None:
        self._entries: list[LogEntry] = []
        for entry in entries:
            expected = len(self._entries) + 1
            if entry.sequence != expected:
                raise InconsistentState(f"log sequence gap: expected {expected}, got {entry.sequence}")
            self._entries.append(entry)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def clock(self) -> int:
        return len(self._entries)

    def append(
        self,
        *,
        actor: str,
        subject_kind: SubjectKind,
        subject_id: str,
        action: LogAction,
        previous_status: str | None = None,
        new_status: str | None = None,
        phase_id: str | None = None,
        note: str | None = None,
        timestamp: datetime | None = None,
    ) -> LogEntry:
        entry = LogEntry(
            sequence=self.clock + 1,
            timestamp=timestamp or utc_now(),
            actor=actor,
            subject_kind=subject_kind,
            subject_id=subject_id,
            action=action,
            previous_status=previous_status,
            new_status=new_status,
            phase_id=phase_id,
            note=note,
        )
        self._entries.append(entry)
        logger.debug(
            "log #%d %s %s %s: %s -> %s",
            entry.sequence,
            subject_kind.value,
            subject_id,
            action.value,
            previous_status,
            new_status,
        )
        return entry

    def entries(self, subject_id: str | None = None) -> tuple[LogEntry, ...]:
        if subject_id is None:
            return tuple(self._entries)
        return tuple(entry for entry in self._entries if entry.subject_id == subject_id)

    def tail(self, limit: int) -> tuple[LogEntry, ...]:
        if limit <= 0:
            return ()
        return tuple(self._entries[-limit:])

    def replay(self) -> ReplayState:
        state = ReplayState()
        for entry in self._entries:
            if entry.new_status is not None and entry.action not in _HISTORY_SKIPPED:
                state.history.setdefault(entry.subject_id, []).append(entry.new_status)
            if entry.subject_kind == SubjectKind.TASK:
                _apply_task_entry(state, entry)
            elif entry.subject_kind == SubjectKind.PHASE:
                _apply_phase_entry(state, entry)
            elif entry.subject_kind == SubjectKind.RISK:
                if entry.new_status is not None:
                    state.risk_statuses[entry.subject_id] = RiskStatus(entry.new_status)
        return state


def _apply_task_entry(state: ReplayState, entry: LogEntry) -> None:
    if entry.action == LogAction.CREATED:
        if entry.phase_id is None:
            raise InconsistentState(f"task creation entry #{entry.sequence} has no phase_id")
        state.task_phases[entry.subject_id] = entry.phase_id
    if entry.action == LogAction.ARCHIVED:
        state.archived_tasks.add(entry.subject_id)
        return
    if entry.new_status is not None:
        state.task_statuses[entry.subject_id] = TaskStatus(entry.new_status)


def _apply_phase_entry(state: ReplayState, entry: LogEntry) -> None:
    if entry.action == LogAction.CREATED:
        state.phases.append(entry.subject_id)
    if entry.action == LogAction.ARCHIVED:
        state.archived_phases.add(entry.subject_id)
        return
    # Phase entries carry readiness; derived status is never journaled.
    if entry.new_status is not None:
        state.phase_readiness[entry.subject_id] = PhaseReadiness(entry.new_status)
