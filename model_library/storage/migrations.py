"""
Schema migrations for model.json records.

Each migration upgrades a decoded record (the raw JSON mapping) from schema
version ``v`` to ``v + 1``. Migrations must not drop data: new collections are
initialised to empty, legacy shapes are converted in place.

To change the schema:
1. Bump ``CURRENT_SCHEMA_VERSION`` in domain/models.py.
2. Add ``migrate_<v>_to_<v+1>`` below and register it in ``MIGRATIONS``.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Callable, Dict

from model_library.domain.models import CURRENT_SCHEMA_VERSION
from model_library.domain.ticks import parse_iso_to_ticks

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
Migration = Callable[[Record], Record]


class MigrationError(Exception):
    """Raised when a record cannot be upgraded to the current schema."""


_LIST_KEYS = (
    "payloadRelativePaths",
    "materials",
    "textures",
    "assetGuids",
    "imageRelativePaths",
    "notes",
    "dependencies",
    "dependenciesDetailed",
    "changelog",
)

_MAPPING_KEYS = ("extra", "modelImporters", "identity")


def migrate_0_to_1(record: Record) -> Record:
    """
    Records written before ``schemaVersion`` existed may omit collections or
    carry nulls for them.
    """
    for key in _LIST_KEYS:
        if record.get(key) is None:
            record[key] = []
    for key in _MAPPING_KEYS:
        if record.get(key) is None:
            record[key] = {}
    if record.get("tags") is None:
        record["tags"] = {"values": []}
    return record


def migrate_1_to_2(record: Record) -> Record:
    """
    Normalise legacy value shapes:
    - ``tags`` stored as a bare list becomes ``{"values": [...]}``
    - changelog timestamps stored as ISO-8601 strings become ticks
    - non-string ``extra`` values are stringified
    """
    tags = record.get("tags")
    if isinstance(tags, list):
        record["tags"] = {"values": [str(t) for t in tags if t is not None]}

    for entry in record.get("changelog") or []:
        if not isinstance(entry, dict):
            continue
        timestamp = entry.get("timestamp")
        if isinstance(timestamp, str):
            ticks = parse_iso_to_ticks(timestamp)
            if ticks is None:
                if not timestamp.strip().isdigit():
                    raise MigrationError(f"Unrecognised changelog timestamp: {timestamp!r}")
                ticks = int(timestamp.strip())
            entry["timestamp"] = ticks

    extra = record.get("extra")
    if isinstance(extra, dict):
        record["extra"] = {
            str(k): v if isinstance(v, str) else ("" if v is None else str(v))
            for k, v in extra.items()
        }
    return record


MIGRATIONS: Dict[int, Migration] = {
    0: migrate_0_to_1,
    1: migrate_1_to_2,
}


def read_schema_version(record: Record) -> int:
    """
    Schema version a record declares. Missing means 0 (pre-versioning data).
    """
    value = record.get("schemaVersion", 0)
    if isinstance(value, bool):
        raise MigrationError(f"Invalid schemaVersion: {value!r}")
    if isinstance(value, float) and (not math.isfinite(value) or not value.is_integer()):
        raise MigrationError(f"Invalid schemaVersion: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError) as e:
        raise MigrationError(f"Invalid schemaVersion: {value!r}") from e


def migrate_to_current(record: Record, migrations: Dict[int, Migration] = MIGRATIONS) -> Record:
    """
    Apply every registered migration from the record's schema version up to
    ``CURRENT_SCHEMA_VERSION`` and stamp the result.

    Raises MigrationError if a step is missing or fails; the caller decides
    how to recover.
    """
    start = read_schema_version(record)
    if start >= CURRENT_SCHEMA_VERSION:
        return record

    for version in range(max(start, 0), CURRENT_SCHEMA_VERSION):
        step = migrations.get(version)
        if step is None:
            raise MigrationError(f"No migration registered from schema {version} to {version + 1}")
        try:
            record = step(record)
        except MigrationError:
            raise
        except Exception as e:
            raise MigrationError(f"Migration {version} -> {version + 1} failed: {e}") from e
        if not isinstance(record, dict):
            raise MigrationError(f"Migration {version} -> {version + 1} did not return a record")

    record["schemaVersion"] = CURRENT_SCHEMA_VERSION
    logger.info(f"Migrated model record from schema {start} to {CURRENT_SCHEMA_VERSION}")
    return record
