"""
Versioned JSON serialization for catalog artifacts.

Loading model.json never fails. In order of preference:

1. Empty input yields an empty, current-schema ModelMeta.
2. Direct decode of the JSON object, migrated to the current schema when it
   was written with an older one. Values that do not validate (a negative
   count, a note of the wrong shape) are dropped one by one and fall back to
   their defaults; the rest of the record is kept.
3. Fallback extraction: when the text cannot be decoded or migrated, scalar
   fields are recovered from the raw text and every collection is left
   empty. This is logged as a degraded load.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Sequence, Tuple, Union

from pydantic import ValidationError

from model_library.domain.models import (
    CURRENT_SCHEMA_VERSION,
    ModelIndex,
    ModelIndexEntry,
    ModelMeta,
)
from model_library.storage.migrations import MigrationError, migrate_to_current, read_schema_version

logger = logging.getLogger(__name__)

RawText = Union[str, bytes, None]

# Ticks and counts are 64-bit integers in existing catalogs
INT64_MAX = 2**63 - 1

# Upper bound on single-value repairs before a record counts as unrecoverable
MAX_REPAIRS = 256


class MetaDecodeResult(NamedTuple):
    meta: ModelMeta
    degraded: bool = False
    migrated_from: Optional[int] = None
    dropped: Tuple[str, ...] = ()


def _to_text(raw: RawText) -> Optional[str]:
    if raw is None:
        return None
    if isinstance(raw, bytes):
        return raw.decode("utf-8-sig", errors="replace")
    return raw.lstrip("\ufeff")


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def encode_meta(meta: ModelMeta) -> str:
    return meta.model_dump_json(by_alias=True, indent=2)


def encode_index(index: ModelIndex) -> str:
    return index.model_dump_json(by_alias=True, indent=2)


# ---------------------------------------------------------------------------
# Fallback field extraction
# ---------------------------------------------------------------------------


def _string_pattern(field: str) -> re.Pattern:
    return re.compile(r'"' + re.escape(field) + r'"\s*:\s*"((?:[^"\\]|\\.)*)"')


def _int_pattern(field: str) -> re.Pattern:
    return re.compile(r'"' + re.escape(field) + r'"\s*:\s*(\d{1,19})(?!\d)')


def extract_string(text: str, field: str) -> Optional[str]:
    """First `"field": "value"` occurrence in the text, JSON escapes resolved."""
    match = _string_pattern(field).search(text)
    if not match:
        return None
    value = match.group(1)
    try:
        return json.loads(f'"{value}"')
    except ValueError:
        return value


def extract_int(text: str, field: str) -> Optional[int]:
    """
    First `"field": 123` occurrence in the text. Values that do not fit a
    64-bit integer are skipped.
    """
    match = _int_pattern(field).search(text)
    if not match:
        return None
    value = int(match.group(1))
    return value if value <= INT64_MAX else None


_STRING_FIELDS: Dict[str, str] = {
    "version": "version",
    "description": "description",
    "author": "author",
    "installPath": "install_path",
    "relativePath": "relative_path",
    "previewImagePath": "preview_image_path",
}

_INT_FIELDS: Dict[str, str] = {
    "createdTimeTicks": "created_time",
    "updatedTimeTicks": "updated_time",
    "uploadTimeTicks": "upload_time",
    "vertexCount": "vertex_count",
    "triangleCount": "triangle_count",
}


def extract_meta_fields(text: str) -> ModelMeta:
    """
    Build a fresh ModelMeta from whatever scalar fields can be found in the
    text, regardless of whether the text is valid JSON.
    """
    meta = ModelMeta()

    for wire_name, attr in _STRING_FIELDS.items():
        value = extract_string(text, wire_name)
        if value is not None:
            setattr(meta, attr, value)

    for wire_name, attr in _INT_FIELDS.items():
        value = extract_int(text, wire_name)
        if value is not None:
            setattr(meta, attr, value)

    # identity is the first object written, so the first id/name belong to it
    model_id = extract_string(text, "id")
    if model_id is not None:
        meta.identity.id = model_id
    name = extract_string(text, "name")
    if name is not None:
        meta.identity.name = name

    return meta


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def _decode_record(text: str) -> Dict[str, Any]:
    record = json.loads(text)
    if not isinstance(record, dict):
        raise ValueError(f"Expected a JSON object, got {type(record).__name__}")
    return record


def _drop_value(record: Dict[str, Any], loc: Sequence[Union[str, int]]) -> Optional[str]:
    """
    Remove the value an error location points at, so the field falls back to
    its default. When the location cannot be followed to the end, the
    deepest container reached is removed instead. Returns the dotted path of
    what was removed, or None when nothing could be removed.
    """
    container: Any = record
    path: List[str] = []
    parent: Any = None
    parent_key: Any = None
    for step in loc:
        if isinstance(container, dict) and step in container:
            pass
        elif isinstance(container, list) and isinstance(step, int) and 0 <= step < len(container):
            pass
        else:
            break
        parent, parent_key = container, step
        path.append(str(step))
        container = container[step]
        if not isinstance(container, (dict, list)):
            break
    if parent is None:
        return None
    del parent[parent_key]
    return ".".join(path)


def _validate_meta_leniently(record: Dict[str, Any]) -> Tuple[ModelMeta, Tuple[str, ...]]:
    """
    Validate a decoded record, dropping each invalid value until the rest
    validates. Raises the last ValidationError when a value cannot be dropped
    or there are too many of them.
    """
    dropped: List[str] = []
    while True:
        try:
            return ModelMeta.model_validate(record), tuple(dropped)
        except ValidationError as e:
            if len(dropped) >= MAX_REPAIRS:
                raise
            removed = _drop_value(record, e.errors()[0]["loc"])
            if removed is None:
                raise
            dropped.append(removed)


def decode_meta_detailed(
    raw: RawText,
    source: str = "<memory>",
    migrate: Callable[[Dict[str, Any]], Dict[str, Any]] = migrate_to_current,
) -> MetaDecodeResult:
    """
    Decode model.json content into a current-schema ModelMeta.

    Never raises for malformed content. ``degraded`` is set when fallback
    extraction was used; ``dropped`` lists values that did not validate and
    were reset to their defaults.
    """
    text = _to_text(raw)
    if text is None or not text.strip():
        return MetaDecodeResult(ModelMeta())

    migrated_from: Optional[int] = None
    try:
        record = _decode_record(text)
        schema = read_schema_version(record)
        if schema < CURRENT_SCHEMA_VERSION:
            record = migrate(record)
            migrated_from = schema
        elif schema > CURRENT_SCHEMA_VERSION:
            logger.warning(
                f"{source}: written with schema {schema}, newer than {CURRENT_SCHEMA_VERSION}; "
                f"unknown fields are ignored"
            )
        meta, dropped = _validate_meta_leniently(record)
        if dropped:
            logger.warning(f"{source}: reset invalid values to defaults: {', '.join(dropped)}")
        return MetaDecodeResult(meta, migrated_from=migrated_from, dropped=dropped)
    except (ValueError, RecursionError, MigrationError) as e:
        # json.JSONDecodeError and pydantic's ValidationError are ValueErrors;
        # RecursionError comes from pathologically nested documents
        reason = e.__class__.__name__
        if isinstance(e, ValidationError):
            reason = f"{e.error_count()} validation error(s)"
        logger.warning(f"Degraded load of {source}: structured decode failed ({reason}); recovering scalar fields only")

    return MetaDecodeResult(extract_meta_fields(text), degraded=True)


def decode_meta(raw: RawText, source: str = "<memory>") -> ModelMeta:
    return decode_meta_detailed(raw, source=source).meta


def decode_index(raw: RawText, source: str = "<memory>") -> ModelIndex:
    """
    Decode models_index.json content.

    Empty input is an empty index. When the document does not validate as a
    whole, every entry that still validates is kept.
    """
    text = _to_text(raw)
    if text is None or not text.strip():
        return ModelIndex()

    try:
        record = _decode_record(text)
    except (ValueError, RecursionError) as e:
        logger.warning(f"Degraded load of {source}: {e.__class__.__name__}; using an empty index")
        return ModelIndex()

    try:
        return ModelIndex.model_validate(record)
    except ValidationError:
        pass

    raw_entries = record.get("entries")
    if not isinstance(raw_entries, list):
        logger.warning(f"Degraded load of {source}: 'entries' is not a list; using an empty index")
        return ModelIndex()

    entries: List[ModelIndexEntry] = []
    for position, raw_entry in enumerate(raw_entries):
        try:
            entries.append(ModelIndexEntry.model_validate(raw_entry))
        except ValidationError as e:
            logger.warning(f"Degraded load of {source}: dropping entry #{position} ({e.error_count()} validation error(s))")
    return ModelIndex(entries=entries)
