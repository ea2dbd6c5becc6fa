from __future__ import annotations

import logging
from datetime import datetime

from .errors import (
    CyclicDependency,
    DuplicateEntity,
    InconsistentState,
    InvalidValue,
    UnknownPhase,
    UnknownRisk,
    UnknownTask,
)
from .graph import DependencyGraph
from .models import (
    DependencyEdge,
    Phase,
    PhaseReadiness,
    PhaseStatus,
    Risk,
    RiskImpact,
    RiskLikelihood,
    RiskStatus,
    Task,
    TaskStatus,
)
from .state_machine import derive_phase_status

logger = logging.getLogger(__name__)


def _clean_identifier(value: str, label: str) -> str:
    cleaned = value.strip() if isinstance(value, str) else ""
    if not cleaned:
        raise InvalidValue(f"{label} must be non-empty")
    return cleaned


class EntityStore:
    """Exclusive owner of phases, tasks and risks.

    Public getters hand out deep copies. ``*_record`` accessors return the live
    objects and exist for the owning ``MigrationTracker`` only; they must not
    escape it.
    """

    def __init__(self) -> None:
        self._phases: dict[str, Phase] = {}
        self._tasks: dict[str, Task] = {}
        self._risks: dict[str, Risk] = {}
        self.graph = DependencyGraph()

    # ------------------------------------------------------------------
    # Live records
    # ------------------------------------------------------------------

    def phase_record(self, phase_id: str) -> Phase:
        try:
            return self._phases[phase_id]
        except KeyError:
            raise UnknownPhase(phase_id) from None

    def task_record(self, task_id: str) -> Task:
        try:
            return self._tasks[task_id]
        except KeyError:
            raise UnknownTask(task_id) from None

    def risk_record(self, risk_id: str) -> Risk:
        try:
            return self._risks[risk_id]
        except KeyError:
            raise UnknownRisk(risk_id) from None

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_phase(
        self,
        phase_id: str,
        name: str,
        *,
        depends_on: list[str] | None = None,
        target_at: datetime | None = None,
    ) -> Phase:
        """Register a phase and its incoming edges.

        Raises:
            InvalidValue: If ``phase_id`` or ``name`` is empty.
            DuplicateEntity: If ``phase_id`` is already registered.
            CyclicDependency: If the phase lists itself as a predecessor.
            UnknownPhase: If a predecessor is not registered.
        """
        phase_id = _clean_identifier(phase_id, "phase_id")
        if phase_id in self._phases:
            raise DuplicateEntity("phase", phase_id)
        predecessors = list(dict.fromkeys(depends_on or []))
        # A brand-new node has no incoming edges, so the only possible cycle is a self-reference.
        if phase_id in predecessors:
            raise CyclicDependency(phase_id, phase_id)
        for dep in predecessors:
            if dep not in self._phases:
                raise UnknownPhase(dep)

        phase = Phase(
            phase_id=phase_id,
            name=name.strip() or phase_id,
            depends_on=predecessors,
            target_at=target_at,
        )
        self.graph.add_node(phase_id)
        for dep in predecessors:
            self.graph.add_edge(phase_id, dep)
        self._phases[phase_id] = phase
        logger.info("Created phase %s (depends on: %s)", phase_id, ", ".join(predecessors) or "-")
        return phase.model_copy(deep=True)

    def create_task(
        self,
        task_id: str,
        phase_id: str,
        description: str,
        *,
        owner: str | None = None,
        notes: str = "",
    ) -> Task:
        """Raises UnknownPhase, DuplicateEntity or InvalidValue before anything is stored."""
        task_id = _clean_identifier(task_id, "task_id")
        phase = self.phase_record(phase_id)
        if task_id in self._tasks:
            raise DuplicateEntity("task", task_id)
        task = Task(task_id=task_id, phase_id=phase.phase_id, description=description, owner=owner, notes=notes)
        self._tasks[task_id] = task
        phase.task_ids.append(task_id)
        logger.info("Created task %s in phase %s", task_id, phase.phase_id)
        return task.model_copy(deep=True)

    def create_risk(
        self,
        risk_id: str,
        description: str,
        *,
        likelihood: RiskLikelihood,
        impact: RiskImpact,
        mitigation: str = "",
        phase_id: str | None = None,
    ) -> Risk:
        risk_id = _clean_identifier(risk_id, "risk_id")
        if risk_id in self._risks:
            raise DuplicateEntity("risk", risk_id)
        if phase_id is not None:
            self.phase_record(phase_id)
        risk = Risk(
            risk_id=risk_id,
            description=description,
            likelihood=RiskLikelihood(likelihood),
            impact=RiskImpact(impact),
            mitigation=mitigation,
            phase_id=phase_id,
        )
        self._risks[risk_id] = risk
        logger.info("Opened risk %s (impact=%s, likelihood=%s)", risk_id, risk.impact.value, risk.likelihood.value)
        return risk.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_phase(self, phase_id: str) -> Phase:
        return self.phase_record(phase_id).model_copy(deep=True)

    def get_task(self, task_id: str) -> Task:
        return self.task_record(task_id).model_copy(deep=True)

    def get_risk(self, risk_id: str) -> Risk:
        return self.risk_record(risk_id).model_copy(deep=True)

    def list_phases(self, *, include_archived: bool = False) -> list[Phase]:
        return [
            phase.model_copy(deep=True)
            for phase in self._phases.values()
            if include_archived or not phase.archived
        ]

    def list_tasks_by_phase(self, phase_id: str, *, include_archived: bool = False) -> list[Task]:
        phase = self.phase_record(phase_id)
        return [
            self._tasks[task_id].model_copy(deep=True)
            for task_id in phase.task_ids
            if include_archived or not self._tasks[task_id].archived
        ]

    def list_risks(
        self,
        *,
        phase_id: str | None = None,
        status: RiskStatus | None = None,
        triage: bool = False,
    ) -> list[Risk]:
        if phase_id is not None:
            self.phase_record(phase_id)
        risks = [
            risk
            for risk in self._risks.values()
            if (phase_id is None or risk.phase_id == phase_id) and (status is None or risk.status == status)
        ]
        if triage:
            # Stable sort keeps registration order among equally ranked risks.
            risks.sort(key=lambda risk: risk.triage_key, reverse=True)
        return [risk.model_copy(deep=True) for risk in risks]

    def live_task_statuses(self, phase_id: str) -> list[TaskStatus]:
        phase = self.phase_record(phase_id)
        return [self._tasks[task_id].status for task_id in phase.task_ids if not self._tasks[task_id].archived]

    def phase_status(self, phase_id: str) -> PhaseStatus:
        return derive_phase_status(self.live_task_statuses(phase_id))

    def pending_predecessors(self, phase_id: str) -> list[str]:
        return self.graph.pending_predecessors(phase_id, self.phase_status)

    def evaluate_readiness(self, phase_id: str) -> PhaseReadiness:
        self.phase_record(phase_id)
        if self.graph.is_eligible(phase_id, self.phase_status):
            return PhaseReadiness.ELIGIBLE
        return PhaseReadiness.PENDING

    def iter_phase_ids(self) -> list[str]:
        return list(self._phases)

    def iter_task_ids(self) -> list[str]:
        return list(self._tasks)

    def iter_risk_ids(self) -> list[str]:
        return list(self._risks)

    @classmethod
    def restore(
        cls,
        *,
        phases: list[Phase],
        tasks: list[Task],
        risks: list[Risk],
        edges: list[DependencyEdge],
    ) -> "EntityStore":
        """Rebuild a store from snapshot contents, re-checking every structural invariant."""
        store = cls()
        for phase in phases:
            if phase.phase_id in store._phases:
                raise DuplicateEntity("phase", phase.phase_id)
            store._phases[phase.phase_id] = phase.model_copy(deep=True)
            store.graph.add_node(phase.phase_id)
        for edge in edges:
            store.graph.add_edge(edge.phase_id, edge.depends_on)
        for phase in store._phases.values():
            if set(phase.depends_on) != set(store.graph.predecessors(phase.phase_id)):
                raise InconsistentState(f"phase {phase.phase_id} dependencies disagree with edge list")
        for task in tasks:
            if task.task_id in store._tasks:
                raise DuplicateEntity("task", task.task_id)
            phase = store.phase_record(task.phase_id)
            if task.task_id not in phase.task_ids:
                raise InconsistentState(f"task {task.task_id} is not listed by phase {task.phase_id}")
            store._tasks[task.task_id] = task.model_copy(deep=True)
        for phase in store._phases.values():
            missing = [task_id for task_id in phase.task_ids if task_id not in store._tasks]
            if missing:
                raise InconsistentState(f"phase {phase.phase_id} lists unknown tasks: {', '.join(missing)}")
        for risk in risks:
            if risk.risk_id in store._risks:
                raise DuplicateEntity("risk", risk.risk_id)
            if risk.phase_id is not None:
                store.phase_record(risk.phase_id)
            store._risks[risk.risk_id] = risk.model_copy(deep=True)
        return store
