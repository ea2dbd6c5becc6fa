from __future__ import annotations

from dataclasses import dataclass, field

from .persistence import SnapshotStore
from .settings import TrackerSettings
from .tracker import MigrationTracker
from .utils import dedupe_slug, slugify_name


@dataclass(frozen=True)
class PhaseTemplate:
    name: str
    tasks: list[str] = field(default_factory=list)


# Strictly sequential: each phase depends on the one before it.
SEVEN_PHASE_MIGRATION: list[PhaseTemplate] = [
    PhaseTemplate(
        "Assessment",
        [
            "Inventory source modules and third-party dependencies",
            "Map framework features to target ecosystem equivalents",
            "Estimate effort and record migration risks",
        ],
    ),
    PhaseTemplate(
        "Planning",
        [
            "Define module migration order",
            "Agree coding standards for the target codebase",
            "Set milestones and owners",
        ],
    ),
    PhaseTemplate(
        "Environment Setup",
        [
            "Provision build tooling and package feeds",
            "Configure CI pipeline for the target codebase",
            "Prepare development and staging environments",
        ],
    ),
    PhaseTemplate(
        "Code Migration",
        [
            "Translate domain models",
            "Translate data access layer",
            "Translate service and API layer",
        ],
    ),
    PhaseTemplate(
        "Testing",
        [
            "Port unit tests",
            "Run integration and regression suites",
            "Compare performance against the legacy system",
        ],
    ),
    PhaseTemplate(
        "Deployment",
        [
            "Write deployment scripts",
            "Run staged rollout",
            "Prepare rollback plan",
        ],
    ),
    PhaseTemplate(
        "Post-Migration",
        [
            "Monitor production metrics",
            "Decommission legacy system",
            "Hold retrospective and update documentation",
        ],
    ),
]


def build_tracker_from_template(
    template: list[PhaseTemplate] | None = None,
    *,
    plan_id: str | None = None,
    settings: TrackerSettings | None = None,
    snapshot_store: SnapshotStore | None = None,
    actor: str | None = None,
) -> MigrationTracker:
    """Create a tracker with one phase per template entry, chained in order.

    Phase identifiers are slugs of the phase names; task identifiers are
    ``<phase-slug>-<n>`` numbered from 1.
    """
    phases = SEVEN_PHASE_MIGRATION if template is None else template
    tracker = MigrationTracker(plan_id, settings=settings, snapshot_store=snapshot_store)
    used: set[str] = set()
    previous: str | None = None
    for phase_template in phases:
        phase_id = dedupe_slug(slugify_name(phase_template.name), used)
        tracker.create_phase(
            phase_id,
            phase_template.name,
            depends_on=[previous] if previous is not None else None,
            actor=actor,
        )
        for index, description in enumerate(phase_template.tasks, start=1):
            tracker.create_task(f"{phase_id}-{index}", phase_id, description, actor=actor)
        previous = phase_id
    return tracker
