"""Entry point for `python -m migration_tracker` and the `migration-tracker` CLI script."""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
from pathlib import Path
from typing import Sequence

from migration_tracker import (
    CommandResult,
    JsonFileSnapshotStore,
    MigrationTracker,
    RiskImpact,
    RiskLikelihood,
    TaskStatus,
    TrackerError,
    TrackerWarning,
    build_tracker_from_template,
    render_dashboard_markdown,
)
from migration_tracker.settings import TrackerSettings


TEMPLATE_CHOICES = ["seven-phase", "empty"]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Track a multi-phase migration plan")
    parser.add_argument("--state-root", type=Path, default=None, help="Snapshot store root (default: TRACKER_STATE_STORE_ROOT)")
    parser.add_argument("--plan-id", default=None, help="Plan identifier (default: TRACKER_PLAN_ID)")
    parser.add_argument("--actor", default=None, help="Actor recorded on log entries (default: TRACKER_DEFAULT_ACTOR)")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    init = sub.add_parser("init", help="Create a new plan")
    init.add_argument("--template", default="seven-phase", choices=TEMPLATE_CHOICES)
    init.add_argument("--force", action="store_true", help="Overwrite an existing plan")

    add_phase = sub.add_parser("add-phase", help="Add a phase")
    add_phase.add_argument("phase_id")
    add_phase.add_argument("name")
    add_phase.add_argument("--depends-on", action="append", default=[], help="Predecessor phase (repeatable)")

    add_task = sub.add_parser("add-task", help="Add a task to a phase")
    add_task.add_argument("phase_id")
    add_task.add_argument("task_id")
    add_task.add_argument("description")
    add_task.add_argument("--owner", default=None)

    set_status = sub.add_parser("set-status", help="Move a task to a new status")
    set_status.add_argument("task_id")
    set_status.add_argument("status", choices=[status.value for status in TaskStatus])
    set_status.add_argument("--note", default=None)

    reopen = sub.add_parser("reopen", help="Reopen a completed task")
    reopen.add_argument("task_id")
    reopen.add_argument("--note", default=None)

    advance = sub.add_parser("advance", help="Mark a phase eligible once its predecessors are complete")
    advance.add_argument("phase_id")

    depend = sub.add_parser("add-dependency", help="Make a phase depend on another")
    depend.add_argument("phase_id")
    depend.add_argument("depends_on")

    open_risk = sub.add_parser("open-risk", help="Register a risk")
    open_risk.add_argument("risk_id")
    open_risk.add_argument("description")
    open_risk.add_argument("--likelihood", required=True, choices=[value.value for value in RiskLikelihood])
    open_risk.add_argument("--impact", required=True, choices=[value.value for value in RiskImpact])
    open_risk.add_argument("--mitigation", default="")
    open_risk.add_argument("--phase", dest="phase_id", default=None)

    mitigate = sub.add_parser("mitigate-risk", help="Record a mitigation for a risk")
    mitigate.add_argument("risk_id")
    mitigate.add_argument("--mitigation", default=None)
    mitigate.add_argument("--note", default=None)

    close = sub.add_parser("close-risk", help="Close a risk")
    close.add_argument("risk_id")
    close.add_argument("--note", default=None)

    sub.add_parser("status", help="Print the markdown dashboard")

    log = sub.add_parser("log", help="Print journal entries as JSON lines")
    log.add_argument("--subject", default=None, help="Only entries for this phase, task or risk id")
    return parser


def _report(result: CommandResult) -> None:
    for warning in result.warnings:
        print(f"warning: {warning}")
    if result.entry is not None:
        entry = result.entry
        print(f"#{entry.sequence} {entry.subject_id}: {entry.previous_status or '-'} -> {entry.new_status or '-'}")


def _init_plan(args: argparse.Namespace, settings: TrackerSettings, store: JsonFileSnapshotStore) -> int:
    if store.exists() and not args.force:
        logging.error("Plan %s already exists at %s (use --force to overwrite)", store.plan_id, store.snapshot_path)
        return 1
    if args.template == "seven-phase":
        tracker = build_tracker_from_template(plan_id=store.plan_id, settings=settings, snapshot_store=store, actor=args.actor)
    else:
        tracker = MigrationTracker(store.plan_id, settings=settings, snapshot_store=store)
    tracker.save()
    print(f"initialized plan {store.plan_id} with {len(tracker.list_phases())} phases at {store.snapshot_path}")
    return 0


def _run_command(args: argparse.Namespace, tracker: MigrationTracker) -> bool:
    """Apply one command. Returns True when the plan was mutated."""
    actor = args.actor
    if args.command == "add-phase":
        phase = tracker.create_phase(args.phase_id, args.name, depends_on=args.depends_on, actor=actor)
        print(f"added phase {phase.phase_id} ({phase.readiness.value})")
    elif args.command == "add-task":
        task = tracker.create_task(args.task_id, args.phase_id, args.description, owner=args.owner, actor=actor)
        print(f"added task {task.task_id} to {task.phase_id}")
    elif args.command == "set-status":
        _report(tracker.set_task_status(args.task_id, args.status, actor=actor, note=args.note))
    elif args.command == "reopen":
        _report(tracker.reopen_task(args.task_id, actor=actor, note=args.note))
    elif args.command == "advance":
        _report(tracker.advance_phase(args.phase_id, actor=actor))
        print(f"{args.phase_id} eligible={tracker.is_eligible(args.phase_id)}")
    elif args.command == "add-dependency":
        _report(tracker.add_dependency_edge(args.phase_id, args.depends_on, actor=actor))
    elif args.command == "open-risk":
        risk = tracker.open_risk(
            args.risk_id,
            args.description,
            likelihood=args.likelihood,
            impact=args.impact,
            mitigation=args.mitigation,
            phase_id=args.phase_id,
            actor=actor,
        )
        print(f"opened risk {risk.risk_id}")
    elif args.command == "mitigate-risk":
        _report(tracker.mitigate_risk(args.risk_id, mitigation=args.mitigation, actor=actor, note=args.note))
    elif args.command == "close-risk":
        _report(tracker.close_risk(args.risk_id, actor=actor, note=args.note))
    elif args.command == "status":
        print(render_dashboard_markdown(tracker), end="")
        return False
    elif args.command == "log":
        for entry in tracker.log_entries(args.subject):
            print(json.dumps(entry.model_dump(mode="json"), sort_keys=True))
        return False
    else:
        raise ValueError(f"unsupported command: {args.command}")
    return True


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = TrackerSettings.from_env()
        if args.state_root is not None:
            settings = dataclasses.replace(settings, state_store_root=str(args.state_root))
        if args.plan_id is not None:
            settings = dataclasses.replace(settings, plan_id=args.plan_id)
        # One explicit save per invocation instead of one per mutation.
        settings = dataclasses.replace(settings, autosave=False).normalized()
    except ValueError as exc:
        logging.error("Invalid configuration: %s", exc)
        return 1

    store = JsonFileSnapshotStore(settings.state_store_path(Path.cwd()), plan_id=settings.plan_id)
    try:
        if args.command == "init":
            return _init_plan(args, settings, store)
        tracker = MigrationTracker.load(store, settings=settings)
        if _run_command(args, tracker):
            tracker.save()
    except (TrackerError, TrackerWarning, ValueError, OSError) as exc:
        logging.error("%s failed: %s", args.command, exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
