from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from model_library.domain.models import (
    CURRENT_SCHEMA_VERSION,
    ModelIndex,
    ModelIndexEntry,
    ModelMeta,
)


def test_index_get_returns_entry_or_none() -> None:
    index = ModelIndex(entries=[ModelIndexEntry(id="a", name="A"), ModelIndexEntry(id="b", name="B")])

    assert index.get("b").name == "B"
    assert index.get("missing") is None
    assert ModelIndex().get("a") is None


def test_index_upsert_replaces_in_place() -> None:
    index = ModelIndex(entries=[ModelIndexEntry(id="a"), ModelIndexEntry(id="b")])

    index.upsert(ModelIndexEntry(id="a", name="renamed"))
    index.upsert(ModelIndexEntry(id="c"))

    assert [e.id for e in index.entries] == ["a", "b", "c"]
    assert index.get("a").name == "renamed"


def test_index_remove() -> None:
    index = ModelIndex(entries=[ModelIndexEntry(id="a")])

    assert index.remove("a") is True
    assert index.remove("a") is False
    assert index.entries == []


def test_index_entry_uses_wire_names() -> None:
    entry = ModelIndexEntry(id="a", latest_version="1.0.0", updated_time=5, release_time=6)
    dumped = json.loads(entry.model_dump_json(by_alias=True))

    assert dumped["latestVersion"] == "1.0.0"
    assert dumped["updatedTimeTicks"] == 5
    assert dumped["releaseTimeTicks"] == 6


def test_index_entry_accepts_wire_and_attribute_names() -> None:
    by_wire = ModelIndexEntry.model_validate({"id": "a", "latestVersion": "1.2.3"})
    by_attr = ModelIndexEntry.model_validate({"id": "a", "latest_version": "1.2.3"})

    assert by_wire.latest_version == by_attr.latest_version == "1.2.3"


def test_meta_defaults_are_fully_populated() -> None:
    meta = ModelMeta()

    assert meta.schema_version == CURRENT_SCHEMA_VERSION
    assert meta.identity.id is None
    assert meta.tags.values == []
    assert meta.payload_paths == []
    assert meta.per_file_import_settings == {}
    assert meta.changelog == []


def test_meta_nulls_become_empty_collections() -> None:
    meta = ModelMeta.model_validate(
        {"identity": None, "tags": None, "notes": None, "extra": None, "modelImporters": None, "materials": None}
    )

    assert meta.identity.id is None
    assert meta.tags.values == []
    assert meta.notes == []
    assert meta.extra == {}
    assert meta.per_file_import_settings == {}
    assert meta.materials == []


def test_meta_schema_version_is_written_first() -> None:
    dumped = json.loads(ModelMeta().model_dump_json(by_alias=True))

    assert next(iter(dumped)) == "schemaVersion"


def test_meta_rejects_negative_counts() -> None:
    with pytest.raises(ValidationError):
        ModelMeta(vertex_count=-1)


def test_meta_model_id_follows_identity() -> None:
    meta = ModelMeta.model_validate({"identity": {"id": "crate", "name": "Crate"}})

    assert meta.model_id == "crate"
