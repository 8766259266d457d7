"""Whole-dataset backup and restore.

A backup document is a JSON object mapping each table name to the list of its
records. Restoring is destructive: current records of every table present in
the document are deleted first.
"""

from __future__ import annotations

import json
import logging
from datetime import date
from pathlib import Path
from typing import TYPE_CHECKING, Any, Mapping

from .errors import BackupFormatError
from .tables import TABLE_NAMES

if TYPE_CHECKING:
    from .layer import DataLayer

logger = logging.getLogger(__name__)

BACKUP_PREFIX = "business_manager_backup"


def default_backup_filename(day: date | None = None) -> str:
    return f"{BACKUP_PREFIX}_{(day or date.today()).isoformat()}.json"


async def create_backup(layer: DataLayer) -> dict[str, list[dict[str, Any]]]:
    document = {}
    for name in TABLE_NAMES:
        document[name] = await layer.read(name)
    logger.info(
        "Backup created: %d records across %d tables",
        sum(len(rows) for rows in document.values()), len(document),
    )
    return document


def validate_backup(document: Any) -> dict[str, list[dict[str, Any]]]:
    """Return the registry tables of ``document``; unknown keys are ignored."""
    if not isinstance(document, Mapping):
        raise BackupFormatError("Backup must be an object mapping table names to records")

    tables = {}
    for name, rows in document.items():
        if name not in TABLE_NAMES:
            logger.debug("Ignoring unknown table %r in backup", name)
            continue
        if not isinstance(rows, list) or not all(isinstance(r, Mapping) for r in rows):
            raise BackupFormatError(f"Backup entry for {name} must be a list of records")
        tables[name] = rows
    return tables


async def restore_backup(layer: DataLayer, document: Mapping[str, Any]) -> dict[str, int]:
    """Replace each table in ``document`` with its records; returns counts restored."""
    tables = validate_backup(document)
    restored = {}
    for name, rows in tables.items():
        logger.info("Restoring %d records to %s", len(rows), name)
        for existing in await layer.read(name):
            if existing.get("id") is not None:
                await layer.delete(name, existing["id"])
        created = await layer.bulk_create(name, rows)
        restored[name] = len(created)
    return restored


def write_backup(document: Mapping[str, Any], path: Path | str) -> Path:
    path = Path(path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(document, indent=2, default=str), encoding="utf-8")
    return path


def read_backup(path: Path | str) -> dict[str, Any]:
    path = Path(path).expanduser()
    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise BackupFormatError(f"Backup file {path} is not valid JSON: {e}") from e
    if not isinstance(document, dict):
        raise BackupFormatError(f"Backup file {path} does not contain an object")
    return document
