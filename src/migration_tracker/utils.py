from __future__ import annotations

import re
from typing import TYPE_CHECKING

from .models import RiskStatus

if TYPE_CHECKING:
    from .tracker import MigrationTracker


_STATUS_LABELS = {
    "not_started": "Not started",
    "in_progress": "In progress",
    "blocked": "Blocked",
    "completed": "Completed",
}


def slugify_name(name: str, *, max_length: int = 32) -> str:
    slug = re.sub(r"[^a-zA-Z0-9]+", "-", name.lower()).strip("-")
    slug = re.sub(r"-{2,}", "-", slug)
    return slug[:max_length].rstrip("-")


def dedupe_slug(base_slug: str, used: set[str], *, max_length: int = 32) -> str:
    if not base_slug:
        raise ValueError("cannot derive an identifier from an empty name")
    if base_slug not in used:
        used.add(base_slug)
        return base_slug

    counter = 2
    while True:
        suffix = f"-{counter}"
        candidate = f"{base_slug[: max_length - len(suffix)]}{suffix}".rstrip("-")
        if candidate not in used:
            used.add(candidate)
            return candidate
        counter += 1


def _cell(value: object) -> str:
    return str(value).replace("|", "\\|").replace("\n", " ")


def render_dashboard_markdown(tracker: "MigrationTracker", *, recent: int | None = None) -> str:
    """Render the plan as a markdown status dashboard.

    Phases are listed in dependency order, risks in triage order (most severe
    first) and the journal tail newest last.
    """
    lines = [f"# Migration Tracking: {tracker.plan_id}", ""]
    lines.append(f"**Overall progress:** {tracker.overall_progress():g}%")
    lines.append("")
    lines.extend(
        [
            "## Phases",
            "",
            "| Phase | Status | Progress | Readiness | Tasks |",
            "|---|---|---|---|---|",
        ]
    )
    for phase_id in tracker.topological_order():
        phase = tracker.get_phase(phase_id)
        if phase.archived:
            continue
        status = tracker.get_phase_status(phase_id)
        tasks = tracker.list_tasks_by_phase(phase_id)
        lines.append(
            f"| {_cell(phase.name)} | {_STATUS_LABELS[status.value]} | {tracker.phase_progress(phase_id):g}% "
            f"| {phase.readiness.value} | {len(tasks)} |"
        )

    open_risks = [risk for risk in tracker.list_risks(triage=True) if risk.status != RiskStatus.CLOSED]
    lines.extend(["", "## Open Risks", ""])
    if open_risks:
        lines.extend(["| Risk | Impact | Likelihood | Status | Mitigation |", "|---|---|---|---|---|"])
        for risk in open_risks:
            lines.append(
                f"| {_cell(risk.description)} | {risk.impact.value} | {risk.likelihood.value} "
                f"| {risk.status.value} | {_cell(risk.mitigation or '-')} |"
            )
    else:
        lines.append("None.")

    entries = tracker.recent_log_entries(recent)
    lines.extend(["", "## Recent Activity", ""])
    if entries:
        for entry in entries:
            change = f"{entry.previous_status or '-'} -> {entry.new_status or '-'}"
            suffix = f" ({entry.note})" if entry.note else ""
            lines.append(
                f"- #{entry.sequence} {entry.timestamp:%Y-%m-%d %H:%M} {entry.actor}: "
                f"{entry.subject_kind.value} {entry.subject_id} {entry.action.value} {change}{suffix}"
            )
    else:
        lines.append("No activity recorded.")
    return "\n".join(lines) + "\n"
