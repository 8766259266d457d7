"""Local persistent cache used when the remote store is unavailable.

Each table is kept as one JSON array under a key of the same name in a
key-value store. Every mutation reads the whole array, changes it and writes
it back.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Iterable, Mapping, Protocol

from .errors import RecordNotFoundError
from .query import Query, apply_query, matches
from .records import prepare_changes, prepare_new_record

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Durable string storage keyed by name."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryStore:
    """In-process store; contents are lost when the process exits."""

    def __init__(self, initial: Mapping[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class JsonFileStore:
    """Store each key as ``<directory>/<key>.json``.

    Writes go to a temporary file first and are then renamed over the target,
    so a crash mid-write leaves the previous contents in place.
    """

    def __init__(self, directory: Path | str):
        self.directory = Path(directory).expanduser()
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key.startswith("."):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.directory / f"{key}.json"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(value, encoding="utf-8")
        os.replace(tmp, path)

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class LocalCache:
    """CRUD over per-table JSON arrays in a KeyValueStore."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def ensure_tables(self, tables: Iterable[str]) -> None:
        """Make sure every table has at least an empty array stored."""
        for table in tables:
            if self.store.get(table) is None:
                self.store.set(table, "[]")

    def load(self, table: str) -> list[dict[str, Any]]:
        raw = self.store.get(table)
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Local cache for %s is corrupt, treating as empty: %s", table, e)
            return []
        if not isinstance(data, list):
            logger.warning("Local cache for %s is not a list, treating as empty", table)
            return []
        return [item for item in data if isinstance(item, dict)]

    def save(self, table: str, records: list[dict[str, Any]]) -> None:
        self.store.set(table, json.dumps(records, default=str))

    def clear(self, table: str) -> None:
        self.store.set(table, "[]")

    def count(self, table: str) -> int:
        return len(self.load(table))

    def create(self, table: str, data: Mapping[str, Any]) -> dict[str, Any]:
        records = self.load(table)
        record = prepare_new_record(table, data)
        records.append(record)
        self.save(table, records)
        logger.debug("Saved %s/%s to local storage", table, record["id"])
        return dict(record)

    def read(self, table: str, query: Query | None = None) -> list[dict[str, Any]]:
        # load() parses fresh objects on every call, so callers never share state
        return apply_query(self.load(table), query or Query())

    def update(self, table: str, record_id: str, data: Mapping[str, Any]) -> dict[str, Any]:
        records = self.load(table)
        for index, record in enumerate(records):
            if record.get("id") == record_id:
                break
        else:
            raise RecordNotFoundError(table, record_id)

        updated = {**records[index], **prepare_changes(table, data)}
        records[index] = updated
        self.save(table, records)
        return dict(updated)

    def delete(self, table: str, record_id: str) -> bool:
        records = self.load(table)
        remaining = [record for record in records if record.get("id") != record_id]
        if len(remaining) != len(records):
            self.save(table, remaining)
        return True

    def delete_matching(self, table: str, query: Query) -> int:
        """Remove every record matching ``query``; returns how many were removed."""
        records = self.load(table)
        remaining = [record for record in records if not matches(record, query)]
        removed = len(records) - len(remaining)
        if removed:
            self.save(table, remaining)
        return removed
