"""Ownership fields (id, created_at, updated_at) stamped onto records."""

from __future__ import annotations

import time
import uuid
from datetime import datetime, timezone
from typing import Any, Mapping

from .tables import sanitize

OWNED_FIELDS = ("id", "created_at", "updated_at")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_record_id() -> str:
    """Collision-resistant id for records created by this layer."""
    return f"local_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def is_iso_timestamp(value: Any) -> bool:
    if not isinstance(value, str) or not value:
        return False
    try:
        datetime.fromisoformat(value)
    except ValueError:
        return False
    return True


def _normalize_id(value: Any) -> str | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str) and value.strip():
        return value
    return None


def prepare_new_record(table: str, data: Mapping[str, Any]) -> dict[str, Any]:
    """Sanitize ``data`` and stamp it as a brand new record.

    A caller id (non-empty string or int) and a parseable created_at are kept;
    updated_at always reflects this moment.
    """
    record = sanitize(table, data)
    now = utc_now_iso()
    record["id"] = _normalize_id(data.get("id")) or new_record_id()
    created_at = data.get("created_at")
    record["created_at"] = created_at if is_iso_timestamp(created_at) else now
    record["updated_at"] = now
    return record


def prepare_changes(table: str, data: Mapping[str, Any]) -> dict[str, Any]:
    """Sanitize an update payload; id and created_at are never changed by updates."""
    changes = sanitize(table, data)
    changes.pop("id", None)
    changes.pop("created_at", None)
    changes["updated_at"] = utc_now_iso()
    return changes
