"""Error and warning types raised by the tracking engine.

Every error is local to the command that raised it: commands validate fully
before applying, so a raised error never leaves a partially mutated plan.
"""

from __future__ import annotations


class TrackerError(Exception):
    """Base class for all tracking-engine errors."""


class UnknownPhase(TrackerError, LookupError):
    def __init__(self, phase_id: str) -> None:
        super().__init__(f"Unknown phase: {phase_id}")
        self.phase_id = phase_id


class UnknownTask(TrackerError, LookupError):
    def __init__(self, task_id: str) -> None:
        super().__init__(f"Unknown task: {task_id}")
        self.task_id = task_id


class UnknownRisk(TrackerError, LookupError):
    def __init__(self, risk_id: str) -> None:
        super().__init__(f"Unknown risk: {risk_id}")
        self.risk_id = risk_id


class DuplicateEntity(TrackerError):
    def __init__(self, kind: str, entity_id: str) -> None:
        super().__init__(f"{kind} already exists: {entity_id}")
        self.kind = kind
        self.entity_id = entity_id


class CyclicDependency(TrackerError):
    def __init__(self, phase_id: str, depends_on: str) -> None:
        super().__init__(f"Dependency {phase_id} -> {depends_on} would create a cycle")
        self.phase_id = phase_id
        self.depends_on = depends_on


class InvalidTransition(TrackerError):
    def __init__(self, subject_id: str, current: str, requested: str) -> None:
        super().__init__(f"Illegal status transition for {subject_id}: {current} -> {requested}")
        self.subject_id = subject_id
        self.current = current
        self.requested = requested


class InvalidValue(TrackerError, ValueError):
    """A command argument failed validation (empty identifier, negative time)."""


class InconsistentState(TrackerError):
    """Log replay disagrees with the cached live state."""


class PersistenceError(TrackerError):
    """The storage collaborator failed. In-memory state is unaffected."""


class TrackerWarning(UserWarning):
    """Advisory result: surfaced to the caller, never fatal."""


class PhaseNotEligible(TrackerWarning):
    def __init__(self, phase_id: str, pending: list[str]) -> None:
        super().__init__(f"Phase {phase_id} is not eligible to start (waiting on: {', '.join(pending)})")
        self.phase_id = phase_id
        self.pending = list(pending)
