from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator

import rfc8785

from .errors import (
    InconsistentState,
    InvalidTransition,
    InvalidValue,
    PersistenceError,
    PhaseNotEligible,
    TrackerWarning,
)
from .journal import AuditLog, ReplayState
from .models import (
    LogAction,
    LogEntry,
    Phase,
    PhaseReadiness,
    PhaseStatus,
    PlanSnapshot,
    Risk,
    RiskImpact,
    RiskLikelihood,
    RiskStatus,
    SubjectKind,
    Task,
    TaskStatus,
    utc_now,
)
from .persistence import SnapshotStore
from .progress import overall_progress, phase_progress
from .settings import TrackerSettings
from .state_machine import assert_reopen, assert_risk_transition, assert_task_transition, starts_work
from .store import EntityStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Outcome of a state-changing command.

    ``warnings`` carries advisory results such as ``PhaseNotEligible``; the
    command itself was applied.
    """

    subject_id: str
    entry: LogEntry | None = None
    warnings: tuple[TrackerWarning, ...] = ()

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)


def _coerce(enum_type, value, label: str):
    try:
        return enum_type(value)
    except ValueError as exc:
        allowed = ", ".join(member.value for member in enum_type)
        raise InvalidValue(f"{label} must be one of: {allowed}; got {value!r}") from exc


def _require_hours(hours: float) -> None:
    if not math.isfinite(hours) or hours < 0:
        raise InvalidValue(f"hours must be a finite number >= 0, got: {hours}")


class MigrationTracker:
    """Handle on one plan instance.

    Every command and query runs under a single re-entrant lock, so callers
    never observe a half-applied mutation. Commands validate fully before they
    touch state, then apply, append to the audit log and (with autosave) hand
    a snapshot to the storage collaborator.
    """

    def __init__(
        self,
        plan_id: str | None = None,
        *,
        settings: TrackerSettings | None = None,
        snapshot_store: SnapshotStore | None = None,
    ) -> None:
        self.settings = settings if settings is not None else TrackerSettings()
        self.plan_id = plan_id if plan_id is not None else self.settings.plan_id
        self.snapshot_store = snapshot_store
        self._lock = threading.RLock()
        self._store = EntityStore()
        self._log = AuditLog()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _actor(self, actor: str | None) -> str:
        return actor.strip() if actor and actor.strip() else self.settings.default_actor

    def _checkpoint(self) -> None:
        if not self.settings.autosave or self.snapshot_store is None:
            return
        self._persist()

    def _persist(self) -> None:
        try:
            self.snapshot_store.save(self._snapshot())
        except (OSError, ValueError, rfc8785.CanonicalizationError) as exc:
            logger.error("Failed to persist plan %s: %s", self.plan_id, exc)
            raise PersistenceError(f"failed to persist plan {self.plan_id}: {exc}") from exc

    def _refresh_phase_timestamps(self, phase_id: str) -> None:
        phase = self._store.phase_record(phase_id)
        status = self._store.phase_status(phase_id)
        if status != PhaseStatus.NOT_STARTED and phase.started_at is None:
            phase.started_at = utc_now()
        if status == PhaseStatus.COMPLETED:
            if phase.completed_at is None:
                phase.completed_at = utc_now()
                logger.info("Phase %s completed", phase_id)
        else:
            phase.completed_at = None

    def _set_readiness(self, phase: Phase, readiness: PhaseReadiness, *, actor: str, note: str | None = None) -> LogEntry:
        previous = phase.readiness
        phase.readiness = readiness
        return self._log.append(
            actor=actor,
            subject_kind=SubjectKind.PHASE,
            subject_id=phase.phase_id,
            action=LogAction.READINESS_CHANGED,
            previous_status=previous.value,
            new_status=readiness.value,
            note=note,
        )

    def _after_task_change(self, phase_id: str, actor: str) -> None:
        """Refresh phase timestamps and revoke readiness downstream of a phase that is no longer complete."""
        self._refresh_phase_timestamps(phase_id)
        if self._store.phase_status(phase_id) == PhaseStatus.COMPLETED:
            return
        for successor_id in self._store.graph.successors(phase_id):
            successor = self._store.phase_record(successor_id)
            if successor.readiness != PhaseReadiness.ELIGIBLE:
                continue
            self._set_readiness(
                successor,
                PhaseReadiness.PENDING,
                actor=actor,
                note=f"readiness revoked: {phase_id} is not completed",
            )
            logger.info("Phase %s readiness revoked: %s is no longer completed", successor_id, phase_id)

    def _check_phase_gate(self, task: Task, actor: str) -> PhaseNotEligible | None:
        """Gate a task start on live predecessor status.

        Returns the advisory when predecessors are still open. When they are
        all complete a pending phase is flagged eligible.
        """
        phase = self._store.phase_record(task.phase_id)
        pending = self._store.pending_predecessors(phase.phase_id)
        if pending:
            return PhaseNotEligible(phase.phase_id, pending)
        if phase.readiness == PhaseReadiness.PENDING:
            self._set_readiness(phase, PhaseReadiness.ELIGIBLE, actor=actor, note="predecessors completed")
            logger.info("Phase %s is eligible to start", phase.phase_id)
        return None

    def _live_task(self, task_id: str) -> Task:
        task = self._store.task_record(task_id)
        if task.archived:
            raise InvalidTransition(task_id, "archived", "update")
        return task

    # ------------------------------------------------------------------
    # Commands: phases
    # ------------------------------------------------------------------

    def create_phase(
        self,
        phase_id: str,
        name: str,
        *,
        depends_on: list[str] | None = None,
        target_at: datetime | None = None,
        actor: str | None = None,
    ) -> Phase:
        """Create a phase. It starts eligible only when every predecessor is already completed.

        Args:
            phase_id: Unique phase identifier.
            name: Display name.
            depends_on: Predecessor phase identifiers; each must already exist.
            target_at: Optional target completion time.
            actor: Recorded on the log entry.

        Returns:
            A copy of the created phase.

        Raises:
            DuplicateEntity: If ``phase_id`` is already registered.
            UnknownPhase: If a predecessor is not registered.
            CyclicDependency: If the phase lists itself.
            InvalidValue: If an identifier or the name is empty.
        """
        with self._lock:
            self._store.create_phase(phase_id, name, depends_on=depends_on, target_at=target_at)
            phase = self._store.phase_record(phase_id.strip())
            phase.readiness = self._store.evaluate_readiness(phase.phase_id)
            self._log.append(
                actor=self._actor(actor),
                subject_kind=SubjectKind.PHASE,
                subject_id=phase.phase_id,
                action=LogAction.CREATED,
                new_status=phase.readiness.value,
                note=f"depends on: {', '.join(phase.depends_on)}" if phase.depends_on else None,
            )
            self._checkpoint()
            return phase.model_copy(deep=True)

    def add_dependency_edge(self, phase_id: str, depends_on: str, *, actor: str | None = None) -> CommandResult:
        """Make ``phase_id`` depend on ``depends_on``. Re-adding an existing edge is a no-op.

        Raises:
            UnknownPhase: If either phase is not registered.
            CyclicDependency: If the edge would close a cycle; the graph is left unchanged.
        """
        with self._lock:
            phase = self._store.phase_record(phase_id)
            self._store.graph.check_edge(phase_id, depends_on)
            if not self._store.graph.add_edge(phase_id, depends_on):
                return CommandResult(subject_id=phase_id)
            phase.depends_on.append(depends_on)
            actor_name = self._actor(actor)
            entry = self._log.append(
                actor=actor_name,
                subject_kind=SubjectKind.PHASE,
                subject_id=phase_id,
                action=LogAction.DEPENDENCY_ADDED,
                note=f"depends on: {depends_on}",
            )
            if phase.readiness == PhaseReadiness.ELIGIBLE and self._store.phase_status(depends_on) != PhaseStatus.COMPLETED:
                entry = self._set_readiness(
                    phase,
                    PhaseReadiness.PENDING,
                    actor=actor_name,
                    note=f"readiness revoked: {depends_on} is not completed",
                )
                logger.info("Phase %s readiness revoked by new dependency on %s", phase_id, depends_on)
            self._checkpoint()
            return CommandResult(subject_id=phase_id, entry=entry)

    def advance_phase(self, phase_id: str, *, actor: str | None = None) -> CommandResult:
        """Re-evaluate a phase's readiness flag against its predecessors.

        Returns a result carrying ``PhaseNotEligible`` when predecessors are
        still open; raises it instead when ``strict_phase_gate`` is set.
        """
        with self._lock:
            phase = self._store.phase_record(phase_id)
            if phase.readiness == PhaseReadiness.ELIGIBLE:
                return CommandResult(subject_id=phase_id)
            pending = self._store.pending_predecessors(phase_id)
            if pending:
                warning = PhaseNotEligible(phase_id, pending)
                if self.settings.strict_phase_gate:
                    raise warning
                logger.warning("%s", warning)
                return CommandResult(subject_id=phase_id, warnings=(warning,))
            entry = self._set_readiness(phase, PhaseReadiness.ELIGIBLE, actor=self._actor(actor))
            logger.info("Phase %s is eligible to start", phase_id)
            self._checkpoint()
            return CommandResult(subject_id=phase_id, entry=entry)

    def archive_phase(self, phase_id: str, *, actor: str | None = None, note: str | None = None) -> CommandResult:
        with self._lock:
            phase = self._store.phase_record(phase_id)
            if phase.archived:
                raise InvalidTransition(phase_id, "archived", "archived")
            phase.archived = True
            entry = self._log.append(
                actor=self._actor(actor),
                subject_kind=SubjectKind.PHASE,
                subject_id=phase_id,
                action=LogAction.ARCHIVED,
                previous_status=phase.readiness.value,
                note=note,
            )
            self._checkpoint()
            return CommandResult(subject_id=phase_id, entry=entry)

    # ------------------------------------------------------------------
    # Commands: tasks
    # ------------------------------------------------------------------

    def create_task(
        self,
        task_id: str,
        phase_id: str,
        description: str,
        *,
        owner: str | None = None,
        notes: str = "",
        actor: str | None = None,
    ) -> Task:
        """Add a ``not_started`` task to a phase.

        A new task reopens a completed phase, so any successor flagged
        eligible falls back to pending.

        Raises:
            UnknownPhase: If ``phase_id`` is not registered.
            DuplicateEntity: If ``task_id`` is already used.
            InvalidValue: If an identifier or the description is empty.
        """
        with self._lock:
            task = self._store.create_task(task_id, phase_id, description, owner=owner, notes=notes)
            actor_name = self._actor(actor)
            self._log.append(
                actor=actor_name,
                subject_kind=SubjectKind.TASK,
                subject_id=task.task_id,
                action=LogAction.CREATED,
                new_status=task.status.value,
                phase_id=task.phase_id,
            )
            self._after_task_change(task.phase_id, actor_name)
            self._checkpoint()
            return task

    def set_task_status(
        self,
        task_id: str,
        status: TaskStatus | str,
        *,
        actor: str | None = None,
        note: str | None = None,
    ) -> CommandResult:
        """Move a task along its state machine.

        Starting a task (``not_started`` to ``in_progress``) in a phase whose
        predecessors are not all completed is advisory: the move is applied and
        the result carries ``PhaseNotEligible``.

        Args:
            task_id: Task to update.
            status: Requested status, as a ``TaskStatus`` or its string value.
            actor: Recorded on the log entry; defaults to ``settings.default_actor``.
            note: Free text stored on the log entry.

        Returns:
            CommandResult with the status-change entry and any advisories.

        Raises:
            UnknownTask: If ``task_id`` is not registered.
            InvalidValue: If ``status`` is not a task status.
            InvalidTransition: If the move is not allowed, or the task is archived.
            PhaseNotEligible: Only with ``strict_phase_gate``, instead of the advisory.
            PersistenceError: If autosave fails after the move was applied.
        """
        with self._lock:
            task = self._live_task(task_id)
            requested = _coerce(TaskStatus, status, "status")
            assert_task_transition(task_id, task.status, requested)
            actor_name = self._actor(actor)

            warnings: tuple[TrackerWarning, ...] = ()
            if starts_work(task.status, requested):
                warning = self._check_phase_gate(task, actor_name)
                if warning is not None:
                    if self.settings.strict_phase_gate:
                        raise warning
                    logger.warning("Task %s started out of order: %s", task_id, warning)
                    warnings = (warning,)
                    note = f"{note}; {warning}" if note else str(warning)

            previous = task.status
            task.status = requested
            entry = self._log.append(
                actor=actor_name,
                subject_kind=SubjectKind.TASK,
                subject_id=task_id,
                action=LogAction.STATUS_CHANGED,
                previous_status=previous.value,
                new_status=requested.value,
                phase_id=task.phase_id,
                note=note,
            )
            self._after_task_change(task.phase_id, actor_name)
            self._checkpoint()
            return CommandResult(subject_id=task_id, entry=entry, warnings=warnings)

    def reopen_task(self, task_id: str, *, actor: str | None = None, note: str | None = None) -> CommandResult:
        """Move a completed task back to ``in_progress``.

        Raises:
            UnknownTask: If ``task_id`` is not registered.
            InvalidTransition: If the task is not completed, or is archived.
        """
        with self._lock:
            task = self._live_task(task_id)
            reopened = assert_reopen(task_id, task.status)
            actor_name = self._actor(actor)
            previous = task.status
            task.status = reopened
            entry = self._log.append(
                actor=actor_name,
                subject_kind=SubjectKind.TASK,
                subject_id=task_id,
                action=LogAction.REOPENED,
                previous_status=previous.value,
                new_status=reopened.value,
                phase_id=task.phase_id,
                note=note,
            )
            logger.info("Task %s reopened", task_id)
            self._after_task_change(task.phase_id, actor_name)
            self._checkpoint()
            return CommandResult(subject_id=task_id, entry=entry)

    def archive_task(self, task_id: str, *, actor: str | None = None, note: str | None = None) -> CommandResult:
        with self._lock:
            task = self._live_task(task_id)
            actor_name = self._actor(actor)
            task.archived = True
            entry = self._log.append(
                actor=actor_name,
                subject_kind=SubjectKind.TASK,
                subject_id=task_id,
                action=LogAction.ARCHIVED,
                previous_status=task.status.value,
                phase_id=task.phase_id,
                note=note,
            )
            self._after_task_change(task.phase_id, actor_name)
            self._checkpoint()
            return CommandResult(subject_id=task_id, entry=entry)

    def log_time(self, task_id: str, hours: float, *, actor: str | None = None) -> CommandResult:
        """Add ``hours`` to a task's time spent.

        Raises:
            InvalidValue: If ``hours`` is negative or not a finite number.
        """
        _require_hours(hours)
        with self._lock:
            task = self._live_task(task_id)
            return self._record_time(task, task.time_spent + hours, actor=actor, note=None)

    def correct_time(self, task_id: str, hours: float, *, reason: str, actor: str | None = None) -> CommandResult:
        """Overwrite time spent. The only path that may lower it, and always journaled.

        Raises:
            InvalidValue: If ``hours`` is negative or not finite, or ``reason`` is blank.
        """
        _require_hours(hours)
        if not reason.strip():
            raise InvalidValue("a time correction requires a reason")
        with self._lock:
            task = self._live_task(task_id)
            return self._record_time(task, float(hours), actor=actor, note=f"correction: {reason.strip()}")

    def _record_time(self, task: Task, new_total: float, *, actor: str | None, note: str | None) -> CommandResult:
        previous_total = task.time_spent
        task.time_spent = new_total
        detail = f"time_spent {previous_total:g}h -> {new_total:g}h"
        entry = self._log.append(
            actor=self._actor(actor),
            subject_kind=SubjectKind.TASK,
            subject_id=task.task_id,
            action=LogAction.TIME_LOGGED,
            previous_status=task.status.value,
            new_status=task.status.value,
            phase_id=task.phase_id,
            note=f"{note}; {detail}" if note else detail,
        )
        self._checkpoint()
        return CommandResult(subject_id=task.task_id, entry=entry)

    def update_task_notes(self, task_id: str, notes: str) -> Task:
        with self._lock:
            task = self._live_task(task_id)
            task.notes = notes
            self._checkpoint()
            return task.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Commands: risks
    # ------------------------------------------------------------------

    def open_risk(
        self,
        risk_id: str,
        description: str,
        *,
        likelihood: RiskLikelihood | str,
        impact: RiskImpact | str,
        mitigation: str = "",
        phase_id: str | None = None,
        actor: str | None = None,
    ) -> Risk:
        """Register an open risk.

        Raises:
            DuplicateEntity: If ``risk_id`` is already registered.
            UnknownPhase: If ``phase_id`` is given but not registered.
            InvalidValue: If likelihood or impact is not a known level.
        """
        with self._lock:
            risk = self._store.create_risk(
                risk_id,
                description,
                likelihood=_coerce(RiskLikelihood, likelihood, "likelihood"),
                impact=_coerce(RiskImpact, impact, "impact"),
                mitigation=mitigation,
                phase_id=phase_id,
            )
            self._log.append(
                actor=self._actor(actor),
                subject_kind=SubjectKind.RISK,
                subject_id=risk.risk_id,
                action=LogAction.CREATED,
                new_status=risk.status.value,
                phase_id=risk.phase_id,
            )
            self._checkpoint()
            return risk

    def mitigate_risk(
        self,
        risk_id: str,
        *,
        mitigation: str | None = None,
        actor: str | None = None,
        note: str | None = None,
    ) -> CommandResult:
        return self._transition_risk(risk_id, RiskStatus.MITIGATED, mitigation=mitigation, actor=actor, note=note)

    def close_risk(self, risk_id: str, *, actor: str | None = None, note: str | None = None) -> CommandResult:
        return self._transition_risk(risk_id, RiskStatus.CLOSED, mitigation=None, actor=actor, note=note)

    def _transition_risk(
        self,
        risk_id: str,
        requested: RiskStatus,
        *,
        mitigation: str | None,
        actor: str | None,
        note: str | None,
    ) -> CommandResult:
        with self._lock:
            risk = self._store.risk_record(risk_id)
            assert_risk_transition(risk_id, risk.status, requested)
            previous = risk.status
            risk.status = requested
            if mitigation is not None:
                risk.mitigation = mitigation
            entry = self._log.append(
                actor=self._actor(actor),
                subject_kind=SubjectKind.RISK,
                subject_id=risk_id,
                action=LogAction.STATUS_CHANGED,
                previous_status=previous.value,
                new_status=requested.value,
                phase_id=risk.phase_id,
                note=note,
            )
            logger.info("Risk %s %s -> %s", risk_id, previous.value, requested.value)
            self._checkpoint()
            return CommandResult(subject_id=risk_id, entry=entry)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_phase(self, phase_id: str) -> Phase:
        with self._lock:
            return self._store.get_phase(phase_id)

    def get_task(self, task_id: str) -> Task:
        with self._lock:
            return self._store.get_task(task_id)

    def get_risk(self, risk_id: str) -> Risk:
        with self._lock:
            return self._store.get_risk(risk_id)

    def get_phase_status(self, phase_id: str) -> PhaseStatus:
        with self._lock:
            return self._store.phase_status(phase_id)

    def get_task_status(self, task_id: str) -> TaskStatus:
        with self._lock:
            return self._store.task_record(task_id).status

    def list_phases(self, *, include_archived: bool = False) -> list[Phase]:
        with self._lock:
            return self._store.list_phases(include_archived=include_archived)

    def list_tasks_by_phase(self, phase_id: str, *, include_archived: bool = False) -> list[Task]:
        with self._lock:
            return self._store.list_tasks_by_phase(phase_id, include_archived=include_archived)

    def list_risks(
        self,
        *,
        phase_id: str | None = None,
        status: RiskStatus | str | None = None,
        triage: bool = False,
    ) -> list[Risk]:
        wanted = _coerce(RiskStatus, status, "status") if status is not None else None
        with self._lock:
            return self._store.list_risks(phase_id=phase_id, status=wanted, triage=triage)

    def is_eligible(self, phase_id: str) -> bool:
        with self._lock:
            self._store.phase_record(phase_id)
            return not self._store.pending_predecessors(phase_id)

    def phase_progress(self, phase_id: str) -> float:
        with self._lock:
            statuses = self._store.live_task_statuses(phase_id)
            return phase_progress(statuses, decimals=self.settings.progress_decimals)

    def overall_progress(self) -> float:
        with self._lock:
            per_phase = [
                self._store.live_task_statuses(phase_id)
                for phase_id in self._store.iter_phase_ids()
                if not self._store.phase_record(phase_id).archived
            ]
            return overall_progress(per_phase, decimals=self.settings.progress_decimals)

    def topological_order(self) -> Iterator[str]:
        """Phase identifiers in dependency order, for display only."""
        with self._lock:
            ordered = list(self._store.graph.topological_order())
        return iter(ordered)

    def log_entries(self, subject_id: str | None = None) -> tuple[LogEntry, ...]:
        with self._lock:
            return self._log.entries(subject_id)

    def recent_log_entries(self, limit: int | None = None) -> tuple[LogEntry, ...]:
        with self._lock:
            return self._log.tail(self.settings.recent_log_limit if limit is None else limit)

    def replay_log(self) -> ReplayState:
        with self._lock:
            return self._log.replay()

    def verify_consistency(self) -> None:
        """Raise InconsistentState unless replaying the log reproduces the live cache."""
        with self._lock:
            replayed = self._log.replay()
            mismatches: list[str] = []
            for task_id in self._store.iter_task_ids():
                task = self._store.task_record(task_id)
                if replayed.task_statuses.get(task_id) != task.status:
                    mismatches.append(f"task {task_id}: live={task.status.value} replay={replayed.task_statuses.get(task_id)}")
                if replayed.task_phases.get(task_id) != task.phase_id:
                    mismatches.append(f"task {task_id}: phase membership differs")
                if (task_id in replayed.archived_tasks) != task.archived:
                    mismatches.append(f"task {task_id}: archived flag differs")
            replayed_phase_status = replayed.phase_statuses()
            for phase_id in self._store.iter_phase_ids():
                phase = self._store.phase_record(phase_id)
                live_status = self._store.phase_status(phase_id)
                if replayed_phase_status.get(phase_id) != live_status:
                    mismatches.append(f"phase {phase_id}: live={live_status.value} replay={replayed_phase_status.get(phase_id)}")
                if replayed.phase_readiness.get(phase_id) != phase.readiness:
                    mismatches.append(f"phase {phase_id}: readiness differs")
                if (phase_id in replayed.archived_phases) != phase.archived:
                    mismatches.append(f"phase {phase_id}: archived flag differs")
            for risk_id in self._store.iter_risk_ids():
                risk = self._store.risk_record(risk_id)
                if replayed.risk_statuses.get(risk_id) != risk.status:
                    mismatches.append(f"risk {risk_id}: live={risk.status.value} replay={replayed.risk_statuses.get(risk_id)}")
            extra = set(replayed.task_statuses) - set(self._store.iter_task_ids())
            if extra:
                mismatches.append(f"log mentions unknown tasks: {', '.join(sorted(extra))}")
            if mismatches:
                raise InconsistentState("; ".join(mismatches))

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _snapshot(self) -> PlanSnapshot:
        return PlanSnapshot(
            plan_id=self.plan_id,
            phases=self._store.list_phases(include_archived=True),
            tasks=[self._store.get_task(task_id) for task_id in self._store.iter_task_ids()],
            risks=self._store.list_risks(),
            edges=self._store.graph.edges(),
            log=list(self._log.entries()),
        )

    def snapshot(self) -> PlanSnapshot:
        with self._lock:
            return self._snapshot()

    def save(self) -> None:
        with self._lock:
            if self.snapshot_store is None:
                raise PersistenceError(f"plan {self.plan_id} has no snapshot store configured")
            self._persist()

    @classmethod
    def from_snapshot(
        cls,
        snapshot: PlanSnapshot,
        *,
        settings: TrackerSettings | None = None,
        snapshot_store: SnapshotStore | None = None,
    ) -> "MigrationTracker":
        tracker = cls(snapshot.plan_id, settings=settings, snapshot_store=snapshot_store)
        tracker._store = EntityStore.restore(
            phases=snapshot.phases,
            tasks=snapshot.tasks,
            risks=snapshot.risks,
            edges=snapshot.edges,
        )
        tracker._log = AuditLog(snapshot.log)
        tracker.verify_consistency()
        logger.info(
            "Rehydrated plan %s: %d phases, %d tasks, %d log entries",
            snapshot.plan_id,
            len(snapshot.phases),
            len(snapshot.tasks),
            len(snapshot.log),
        )
        return tracker

    @classmethod
    def load(cls, snapshot_store: SnapshotStore, *, settings: TrackerSettings | None = None) -> "MigrationTracker":
        try:
            snapshot = snapshot_store.load()
        except OSError as exc:
            raise PersistenceError(f"failed to load plan snapshot: {exc}") from exc
        except ValueError as exc:
            raise InconsistentState(str(exc)) from exc
        return cls.from_snapshot(snapshot, settings=settings, snapshot_store=snapshot_store)
