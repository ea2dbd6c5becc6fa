from importlib.metadata import version

from .errors import (
    CyclicDependency,
    DuplicateEntity,
    InconsistentState,
    InvalidTransition,
    InvalidValue,
    PersistenceError,
    PhaseNotEligible,
    TrackerError,
    TrackerWarning,
    UnknownPhase,
    UnknownRisk,
    UnknownTask,
)
from .graph import DependencyGraph
from .journal import AuditLog, ReplayState
from .models import (
    DependencyEdge,
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
)
from .persistence import InMemorySnapshotStore, JsonFileSnapshotStore, SnapshotStore
from .settings import TrackerSettings
from .store import EntityStore
from .templates import SEVEN_PHASE_MIGRATION, PhaseTemplate, build_tracker_from_template
from .tracker import CommandResult, MigrationTracker
from .utils import render_dashboard_markdown, slugify_name


def get_version() -> str:
    try:
        return version("migration-tracker")
    except Exception:
        return "0.0.0"


__all__ = [
    "AuditLog",
    "CommandResult",
    "CyclicDependency",
    "DependencyEdge",
    "DependencyGraph",
    "DuplicateEntity",
    "EntityStore",
    "InMemorySnapshotStore",
    "InconsistentState",
    "InvalidTransition",
    "InvalidValue",
    "JsonFileSnapshotStore",
    "LogAction",
    "LogEntry",
    "MigrationTracker",
    "PersistenceError",
    "Phase",
    "PhaseNotEligible",
    "PhaseReadiness",
    "PhaseStatus",
    "PhaseTemplate",
    "PlanSnapshot",
    "ReplayState",
    "Risk",
    "RiskImpact",
    "RiskLikelihood",
    "RiskStatus",
    "SEVEN_PHASE_MIGRATION",
    "SnapshotStore",
    "SubjectKind",
    "Task",
    "TaskStatus",
    "TrackerError",
    "TrackerSettings",
    "TrackerWarning",
    "UnknownPhase",
    "UnknownRisk",
    "UnknownTask",
    "build_tracker_from_template",
    "get_version",
    "render_dashboard_markdown",
    "slugify_name",
]
