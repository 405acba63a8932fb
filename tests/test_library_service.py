from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from conftest import make_meta, write_release_folder
from model_library.domain.models import ModelMeta
from model_library.domain.semver import SemVer
from model_library.services.library_service import ModelLibraryService, ensure_changelog_entry
from model_library.storage.errors import DegradedMetadataError, ModelNotFoundError


@pytest.fixture
def local_release(tmp_path: Path) -> Path:
    return write_release_folder(
        tmp_path / "local" / "crate",
        {
            "crate.fbx": b"mesh",
            "textures/crate.png": b"png",
            "model.json": b"{\"ignored\": true}",
        },
    )


@pytest.fixture
def service(repository, tmp_path: Path) -> ModelLibraryService:
    return ModelLibraryService(repository, cache_root=tmp_path / "cache", default_author="builder")


def test_submit_new_version(service: ModelLibraryService, local_release: Path, repo_dir: Path) -> None:
    meta = make_meta("crate", "1.0.0")

    release_root = asyncio.run(service.submit_new_version(meta, local_release, "First release."))

    assert release_root == "crate/1.0.0"
    assert (repo_dir / "crate" / "1.0.0" / "crate.fbx").read_bytes() == b"mesh"
    assert (repo_dir / "crate" / "1.0.0" / "textures" / "crate.png").read_bytes() == b"png"
    stored = json.loads((repo_dir / "crate" / "1.0.0" / "model.json").read_text(encoding="utf-8"))
    assert "ignored" not in stored

    loaded = asyncio.run(service.get_meta("crate", "1.0.0"))
    assert loaded.author == "builder"
    assert loaded.created_time > 0
    assert loaded.updated_time == loaded.upload_time == loaded.created_time
    assert [(c.version, c.summary, c.author) for c in loaded.changelog] == [("1.0.0", "First release.", "builder")]

    entry = asyncio.run(service.index_service.refresh_index()).get("crate")
    assert entry.latest_version == "1.0.0"


def test_submit_assigns_an_id(service: ModelLibraryService, local_release: Path) -> None:
    meta = ModelMeta(version="1.0.0")

    asyncio.run(service.submit_new_version(meta, local_release))

    assert meta.identity.id and len(meta.identity.id) == 32
    assert meta.changelog[0].summary == "Initial submission"


def test_submit_requires_a_version(service: ModelLibraryService, local_release: Path) -> None:
    with pytest.raises(ValueError):
        asyncio.run(service.submit_new_version(make_meta("crate", ""), local_release))


def test_submit_requires_a_local_folder(service: ModelLibraryService, tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        asyncio.run(service.submit_new_version(make_meta(), tmp_path / "missing"))


def test_publish_metadata_update_bumps_and_clones(service: ModelLibraryService, local_release: Path, repo_dir: Path) -> None:
    asyncio.run(service.submit_new_version(make_meta("crate", "1.0.0"), local_release))
    meta = asyncio.run(service.get_meta("crate", "1.0.0"))
    meta.description = "Now with a lid"

    updated = asyncio.run(service.publish_metadata_update(meta, change_summary="Added a lid.", author="carol"))

    assert updated.version == "1.0.1"
    assert (repo_dir / "crate" / "1.0.1" / "crate.fbx").read_bytes() == b"mesh"
    assert (repo_dir / "crate" / "1.0.1" / "textures" / "crate.png").read_bytes() == b"png"
    assert (repo_dir / "crate" / "1.0.0" / "model.json").is_file()

    stored = asyncio.run(service.get_meta("crate", "1.0.1"))
    assert stored.description == "Now with a lid"
    assert stored.author == "builder"
    assert stored.changelog[-1].version == "1.0.1"
    assert stored.changelog[-1].author == "carol"
    assert asyncio.run(service.index_service.get_entry("crate")).latest_version == "1.0.1"


def test_publish_with_custom_bump(service: ModelLibraryService, local_release: Path) -> None:
    asyncio.run(service.submit_new_version(make_meta("crate", "1.4.2"), local_release))
    meta = asyncio.run(service.get_meta("crate", "1.4.2"))

    updated = asyncio.run(service.publish_metadata_update(meta, base_version="1.4.2", bump=SemVer.bump_minor))

    assert updated.version == "1.5.0"
    assert updated.changelog[-1].summary == "Metadata updated"


@pytest.mark.parametrize("base_version", ["", "not-a-version"])
def test_publish_rejects_bad_base_versions(service: ModelLibraryService, base_version: str) -> None:
    meta = make_meta("crate", None)

    with pytest.raises(ValueError):
        asyncio.run(service.publish_metadata_update(meta, base_version=base_version))


def test_publish_requires_a_model_id(service: ModelLibraryService) -> None:
    with pytest.raises(ValueError):
        asyncio.run(service.publish_metadata_update(ModelMeta(version="1.0.0")))


def test_add_note_updates_release_and_index(service: ModelLibraryService, local_release: Path) -> None:
    asyncio.run(service.submit_new_version(make_meta("crate", "1.0.0"), local_release))

    note = asyncio.run(service.add_note("crate", "1.0.0", "  Hinge is flipped. ", tag="bugfix"))

    assert note.author == "builder"
    assert note.message == "Hinge is flipped."
    stored = asyncio.run(service.get_meta("crate", "1.0.0"))
    assert [n.message for n in stored.notes] == ["Hinge is flipped."]
    assert stored.notes[0].tag == "bugfix"


def test_add_note_keeps_data_around_an_invalid_value(service: ModelLibraryService, repo_dir: Path) -> None:
    release = repo_dir / "crate" / "1.0.0"
    release.mkdir(parents=True)
    (release / "model.json").write_text(
        json.dumps(
            {
                "schemaVersion": 2,
                "identity": {"id": "crate", "name": "Crate"},
                "version": "1.0.0",
                "vertexCount": -1,
                "payloadRelativePaths": ["crate.fbx"],
                "notes": [{"author": "alice", "message": "old note"}],
                "changelog": [{"version": "1.0.0", "summary": "Initial submission"}],
            }
        ),
        encoding="utf-8",
    )

    asyncio.run(service.add_note("crate", "1.0.0", "new note"))

    stored = json.loads((release / "model.json").read_text(encoding="utf-8"))
    assert stored["payloadRelativePaths"] == ["crate.fbx"]
    assert [n["message"] for n in stored["notes"]] == ["old note", "new note"]
    assert stored["changelog"][0]["summary"] == "Initial submission"
    assert stored["vertexCount"] == 0


def test_partially_recovered_metadata_is_not_overwritten(service: ModelLibraryService, repo_dir: Path) -> None:
    release = repo_dir / "crate" / "1.0.0"
    release.mkdir(parents=True)
    damaged = '{"identity": {"id": "crate"}, "version": "1.0.0", "payloadRelativePaths": ["crate.fbx"], "notes": [ {oops} ]'
    (release / "model.json").write_text(damaged, encoding="utf-8")

    with pytest.raises(DegradedMetadataError):
        asyncio.run(service.add_note("crate", "1.0.0", "new note"))
    with pytest.raises(DegradedMetadataError):
        asyncio.run(service.update_meta_in_place(make_meta("crate", "1.0.0")))

    assert (release / "model.json").read_text(encoding="utf-8") == damaged


def test_add_note_to_missing_release(service: ModelLibraryService) -> None:
    with pytest.raises(ModelNotFoundError):
        asyncio.run(service.add_note("ghost", "1.0.0", "Hello there."))


def test_add_note_requires_a_message(service: ModelLibraryService) -> None:
    with pytest.raises(ValueError):
        asyncio.run(service.add_note("crate", "1.0.0", "   "))


def test_update_meta_in_place_propagates_latest_only(service: ModelLibraryService, local_release: Path) -> None:
    asyncio.run(service.submit_new_version(make_meta("crate", "1.0.0", description="v1"), local_release))
    asyncio.run(service.submit_new_version(make_meta("crate", "1.1.0", description="v11"), local_release))

    old = asyncio.run(service.get_meta("crate", "1.0.0"))
    old.description = "edited old"
    asyncio.run(service.update_meta_in_place(old))

    assert asyncio.run(service.get_meta("crate", "1.0.0")).description == "edited old"
    assert asyncio.run(service.index_service.refresh_index()).get("crate").description == "v11"

    latest = asyncio.run(service.get_meta("crate", "1.1.0"))
    latest.description = "edited latest"
    asyncio.run(service.update_meta_in_place(latest))

    assert asyncio.run(service.index_service.refresh_index()).get("crate").description == "edited latest"


def test_update_meta_in_place_requires_existing_release(service: ModelLibraryService) -> None:
    with pytest.raises(ModelNotFoundError):
        asyncio.run(service.update_meta_in_place(make_meta("crate", "3.0.0")))


def test_download_version(service: ModelLibraryService, local_release: Path, tmp_path: Path) -> None:
    asyncio.run(service.submit_new_version(make_meta("crate", "1.0.0"), local_release))

    local_root, meta = asyncio.run(service.download_version("crate", "1.0.0"))

    assert local_root == tmp_path / "cache" / "crate" / "1.0.0"
    assert (local_root / "crate.fbx").read_bytes() == b"mesh"
    assert (local_root / "textures" / "crate.png").read_bytes() == b"png"
    assert json.loads((local_root / "model.json").read_text(encoding="utf-8"))["version"] == "1.0.0"
    assert meta.identity.id == "crate"


def test_download_missing_release(service: ModelLibraryService) -> None:
    with pytest.raises(ModelNotFoundError):
        asyncio.run(service.download_version("ghost", "1.0.0"))


def test_delete_version_reconciles_index(service: ModelLibraryService, local_release: Path) -> None:
    asyncio.run(service.submit_new_version(make_meta("crate", "1.0.0"), local_release))
    asyncio.run(service.submit_new_version(make_meta("crate", "1.1.0"), local_release))

    assert asyncio.run(service.delete_version("crate", "1.1.0")) is True
    assert asyncio.run(service.index_service.get_entry("crate")).latest_version == "1.0.0"

    assert asyncio.run(service.delete_version("crate", "1.0.0")) is True
    assert asyncio.run(service.index_service.get_entry("crate")) is None

    assert asyncio.run(service.delete_version("crate", "1.0.0")) is False


def test_changelog_entry_for_same_version_is_replaced() -> None:
    meta = make_meta("crate", "1.0.0")
    ensure_changelog_entry(meta, "First.", "a", "1.0.0", 1)
    ensure_changelog_entry(meta, "  Second.  ", " ", "1.0.0", 0)

    assert len(meta.changelog) == 1
    assert meta.changelog[0].summary == "Second."
    assert meta.changelog[0].author == "unknown"
    assert meta.changelog[0].timestamp > 1
