from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TaskStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    COMPLETED = "completed"


class PhaseStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    COMPLETED = "completed"


class PhaseReadiness(str, Enum):
    PENDING = "pending"
    ELIGIBLE = "eligible"


class RiskStatus(str, Enum):
    OPEN = "open"
    MITIGATED = "mitigated"
    CLOSED = "closed"


class RiskLikelihood(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _LIKELIHOOD_RANK[self]


class RiskImpact(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    SEVERE = "severe"

    @property
    def rank(self) -> int:
        return _IMPACT_RANK[self]


_LIKELIHOOD_RANK = {RiskLikelihood.LOW: 1, RiskLikelihood.MEDIUM: 2, RiskLikelihood.HIGH: 3}
_IMPACT_RANK = {RiskImpact.LOW: 1, RiskImpact.MEDIUM: 2, RiskImpact.HIGH: 3, RiskImpact.SEVERE: 4}


class SubjectKind(str, Enum):
    PHASE = "phase"
    TASK = "task"
    RISK = "risk"


class LogAction(str, Enum):
    CREATED = "created"
    STATUS_CHANGED = "status_changed"
    REOPENED = "reopened"
    READINESS_CHANGED = "readiness_changed"
    DEPENDENCY_ADDED = "dependency_added"
    ARCHIVED = "archived"
    TIME_LOGGED = "time_logged"


# Forward edges only. Leaving COMPLETED goes through reopen, never through this table.
TASK_STATUS_TRANSITIONS: dict[TaskStatus, set[TaskStatus]] = {
    TaskStatus.NOT_STARTED: {TaskStatus.IN_PROGRESS},
    TaskStatus.IN_PROGRESS: {TaskStatus.COMPLETED, TaskStatus.BLOCKED},
    TaskStatus.BLOCKED: {TaskStatus.IN_PROGRESS},
    TaskStatus.COMPLETED: set(),
}

RISK_STATUS_TRANSITIONS: dict[RiskStatus, set[RiskStatus]] = {
    RiskStatus.OPEN: {RiskStatus.MITIGATED, RiskStatus.CLOSED},
    RiskStatus.MITIGATED: {RiskStatus.CLOSED},
    RiskStatus.CLOSED: set(),
}


def utc_now() -> datetime:
    return datetime.now(UTC)


def _require_identifier(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("identifier must be non-empty")
    return value


class Phase(BaseModel):
    """An ordered unit of work. Its status is derived from its tasks, never stored."""

    phase_id: str
    name: str
    task_ids: list[str] = Field(default_factory=list)
    depends_on: list[str] = Field(default_factory=list)
    readiness: PhaseReadiness = PhaseReadiness.PENDING
    started_at: datetime | None = None
    target_at: datetime | None = None
    completed_at: datetime | None = None
    archived: bool = False

    @field_validator("phase_id")
    @classmethod
    def _check_id(cls, value: str) -> str:
        return _require_identifier(value)


class Task(BaseModel):
    task_id: str
    phase_id: str
    description: str
    owner: str | None = None
    status: TaskStatus = TaskStatus.NOT_STARTED
    time_spent: float = Field(default=0.0, ge=0.0, allow_inf_nan=False)
    notes: str = ""
    archived: bool = False

    @field_validator("task_id", "phase_id")
    @classmethod
    def _check_ids(cls, value: str) -> str:
        return _require_identifier(value)


class Risk(BaseModel):
    risk_id: str
    description: str
    likelihood: RiskLikelihood
    impact: RiskImpact
    mitigation: str = ""
    phase_id: str | None = None
    status: RiskStatus = RiskStatus.OPEN

    @field_validator("risk_id")
    @classmethod
    def _check_id(cls, value: str) -> str:
        return _require_identifier(value)

    @property
    def triage_key(self) -> tuple[int, int]:
        return (self.impact.rank, self.likelihood.rank)


class LogEntry(BaseModel):
    """Immutable journal record. ``sequence`` is the logical clock; ``timestamp`` is informational."""

    model_config = ConfigDict(frozen=True)

    sequence: int = Field(ge=1)
    timestamp: datetime
    actor: str
    subject_kind: SubjectKind
    subject_id: str
    action: LogAction
    previous_status: str | None = None
    new_status: str | None = None
    phase_id: str | None = None
    note: str | None = None


class DependencyEdge(BaseModel):
    model_config = ConfigDict(frozen=True)

    phase_id: str
    depends_on: str


class PlanSnapshot(BaseModel):
    """Serializable hand-off to a persistence collaborator."""

    plan_id: str
    phases: list[Phase]
    tasks: list[Task]
    risks: list[Risk]
    edges: list[DependencyEdge]
    log: list[LogEntry]
    saved_at: datetime = Field(default_factory=utc_now)
    fingerprint: str | None = None
