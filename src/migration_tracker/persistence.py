from __future__ import annotations

import fcntl
import logging
import os
import re
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Protocol, runtime_checkable

from pydantic import ValidationError

from .canonical import snapshot_fingerprint
from .models import PlanSnapshot

logger = logging.getLogger(__name__)

_LOCK_SUFFIX = ".lock"


@runtime_checkable
class SnapshotStore(Protocol):
    """Storage collaborator that receives and returns whole-plan snapshots."""

    def save(self, snapshot: PlanSnapshot) -> None: ...

    def load(self) -> PlanSnapshot: ...

    def exists(self) -> bool: ...


# ---------------------------------------------------------------------------
# File helpers
# ---------------------------------------------------------------------------


@contextmanager
def _locked_file(path: Path) -> Iterator[None]:
    """Hold an exclusive lock on a ``.lock`` sidecar next to *path*.

    The sidecar keeps the lock handle stable while the data file itself is
    swapped out by ``os.replace``.
    """
    lock_path = path.with_suffix(path.suffix + _LOCK_SUFFIX)
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    with lock_path.open("a+", encoding="utf-8") as lock_handle:
        fcntl.flock(lock_handle.fileno(), fcntl.LOCK_EX)
        try:
            yield
        finally:
            fcntl.flock(lock_handle.fileno(), fcntl.LOCK_UN)


def _atomic_write_text(path: Path, content: str) -> None:
    """Write to a temp file in the same directory, fsync, then rename into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as tmp_handle:
            tmp_handle.write(content)
            tmp_handle.flush()
            os.fsync(tmp_handle.fileno())
        os.replace(tmp_path, str(path))
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def _safe_read_text(path: Path, label: str) -> str:
    if not path.is_file():
        raise FileNotFoundError(f"{label} not found: {path}")
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise ValueError(f"{label} at {path} contains invalid UTF-8 data") from exc
    if not text.strip():
        raise ValueError(f"{label} at {path} is empty")
    return text


def sanitize_plan_id(plan_id: str) -> str:
    """Make a plan ID safe for use as a single path component (max 128 chars)."""
    value = plan_id.strip()
    if not value:
        raise ValueError("plan_id must be non-empty")
    value = re.sub(r"[^A-Za-z0-9._-]+", "-", value).strip("-")
    if not value:
        raise ValueError("plan_id contains no filesystem-safe characters")
    return value[:128]


def plan_scoped_root(root: Path, plan_id: str) -> Path:
    slug = sanitize_plan_id(plan_id)
    if root.name == slug and root.parent.name == "plans":
        return root
    return root / "plans" / slug


def seal_snapshot(snapshot: PlanSnapshot) -> PlanSnapshot:
    return snapshot.model_copy(update={"fingerprint": snapshot_fingerprint(snapshot)})


def verify_snapshot(snapshot: PlanSnapshot, *, source: str) -> PlanSnapshot:
    if snapshot.fingerprint is None:
        logger.warning("Snapshot from %s carries no fingerprint; skipping integrity check", source)
        return snapshot
    expected = snapshot_fingerprint(snapshot)
    if snapshot.fingerprint != expected:
        raise ValueError(f"snapshot at {source} failed fingerprint check")
    return snapshot


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


class JsonFileSnapshotStore:
    """One JSON document per plan under ``<root>/plans/<plan_id>/snapshot.json``."""

    def __init__(self, root: Path, *, plan_id: str) -> None:
        self.base_root = root
        self.plan_id = plan_id
        self.root = plan_scoped_root(root, plan_id)

    @property
    def snapshot_path(self) -> Path:
        return self.root / "snapshot.json"

    def exists(self) -> bool:
        return self.snapshot_path.is_file()

    def save(self, snapshot: PlanSnapshot) -> None:
        sealed = seal_snapshot(snapshot)
        with _locked_file(self.snapshot_path):
            _atomic_write_text(self.snapshot_path, sealed.model_dump_json(indent=2))
        logger.debug("Saved plan %s snapshot (%d log entries) to %s", sealed.plan_id, len(sealed.log), self.snapshot_path)

    def load(self) -> PlanSnapshot:
        """Read and validate the persisted snapshot.

        Raises:
            FileNotFoundError: If no snapshot has been saved for this plan.
            ValueError: If the file is corrupt, fails validation, or fails its fingerprint check.
        """
        with _locked_file(self.snapshot_path):
            text = _safe_read_text(self.snapshot_path, "plan snapshot")
        try:
            snapshot = PlanSnapshot.model_validate_json(text)
        except ValidationError as exc:
            raise ValueError(f"plan snapshot at {self.snapshot_path} failed validation: {exc}") from exc
        return verify_snapshot(snapshot, source=str(self.snapshot_path))


class InMemorySnapshotStore:
    """Keeps the last saved snapshot as JSON text, exercising the same serialization path."""

    def __init__(self) -> None:
        self._payload: str | None = None
        self.saves = 0

    def exists(self) -> bool:
        return self._payload is not None

    def save(self, snapshot: PlanSnapshot) -> None:
        self._payload = seal_snapshot(snapshot).model_dump_json()
        self.saves += 1

    def load(self) -> PlanSnapshot:
        if self._payload is None:
            raise FileNotFoundError("no snapshot saved")
        return verify_snapshot(PlanSnapshot.model_validate_json(self._payload), source="memory")
