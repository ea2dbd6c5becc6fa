from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


@dataclass(frozen=True)
class TrackerSettings:
    """Tracker settings loaded from environment with fail-fast validation."""

    state_store_root: str = "state_store"
    plan_id: str = "PLAN-001"
    default_actor: str = "system"
    strict_phase_gate: bool = False
    autosave: bool = True
    progress_decimals: int = 2
    recent_log_limit: int = 10

    @classmethod
    def from_env(cls) -> "TrackerSettings":
        return cls(
            state_store_root=os.getenv("TRACKER_STATE_STORE_ROOT", "state_store"),
            plan_id=os.getenv("TRACKER_PLAN_ID", "PLAN-001"),
            default_actor=os.getenv("TRACKER_DEFAULT_ACTOR", "system"),
            strict_phase_gate=_get_env_bool("TRACKER_STRICT_PHASE_GATE", default=False),
            autosave=_get_env_bool("TRACKER_AUTOSAVE", default=True),
            progress_decimals=_get_env_int("TRACKER_PROGRESS_DECIMALS", default=2, minimum=0, maximum=6),
            recent_log_limit=_get_env_int("TRACKER_RECENT_LOG_LIMIT", default=10, minimum=0, maximum=1_000),
        ).normalized()

    def normalized(self) -> "TrackerSettings":
        """Validate and normalize all fields. Raises ValueError on invalid configuration."""
        state_store_root = self.state_store_root.strip()
        if not state_store_root:
            raise ValueError("TRACKER_STATE_STORE_ROOT must be non-empty")
        plan_id = self.plan_id.strip()
        if not plan_id:
            raise ValueError("TRACKER_PLAN_ID must be non-empty")
        default_actor = self.default_actor.strip()
        if not default_actor:
            raise ValueError("TRACKER_DEFAULT_ACTOR must be non-empty")
        if not 0 <= self.progress_decimals <= 6:
            raise ValueError(f"TRACKER_PROGRESS_DECIMALS must be within 0..6, got: {self.progress_decimals}")
        if self.recent_log_limit < 0:
            raise ValueError(f"TRACKER_RECENT_LOG_LIMIT must be >= 0, got: {self.recent_log_limit}")
        return TrackerSettings(
            state_store_root=state_store_root,
            plan_id=plan_id,
            default_actor=default_actor,
            strict_phase_gate=self.strict_phase_gate,
            autosave=self.autosave,
            progress_decimals=self.progress_decimals,
            recent_log_limit=self.recent_log_limit,
        )

    def state_store_path(self, repo_root: Path) -> Path:
        path = Path(self.state_store_root)
        return path if path.is_absolute() else repo_root / path


def _get_env_int(name: str, default: int, minimum: int, maximum: int = 10_000_000) -> int:
    """Parse an integer from an environment variable with bounds checking.

    Raises:
        ValueError: If the value is not an integer or is outside bounds.
    """
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        parsed = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got: {raw!r}") from exc
    if parsed < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got: {parsed}")
    if parsed > maximum:
        raise ValueError(f"{name} must be <= {maximum}, got: {parsed}")
    return parsed


def _get_env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean (true/false), got: {raw!r}")
