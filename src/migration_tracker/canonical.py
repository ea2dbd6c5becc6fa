from __future__ import annotations

import hashlib
from datetime import datetime
from enum import Enum
from typing import Any

import rfc8785
from pydantic import BaseModel

from .models import PlanSnapshot

# Fields that describe the hand-off itself rather than plan content.
_UNFINGERPRINTED_FIELDS = frozenset({"fingerprint", "saved_at"})


def _normalize(value: Any) -> Any:
    """Reduce pydantic models and enums to the JSON primitives rfc8785 accepts."""
    if isinstance(value, BaseModel):
        return _normalize(value.model_dump(mode="json"))
    if isinstance(value, dict):
        return {str(key): _normalize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize(item) for item in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        # JCS renders 1.0 as 1; normalize up front so reloaded floats hash identically.
        return int(value)
    return value


def to_canonical_json(value: Any) -> str:
    """Serialize a value to byte-for-byte reproducible JSON per RFC 8785."""
    return rfc8785.dumps(_normalize(value)).decode("utf-8")


def snapshot_fingerprint(snapshot: PlanSnapshot) -> str:
    payload = snapshot.model_dump(mode="json", exclude=set(_UNFINGERPRINTED_FIELDS))
    return hashlib.sha256(to_canonical_json(payload).encode("utf-8")).hexdigest()
