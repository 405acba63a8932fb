from __future__ import annotations

import json
from pathlib import Path

import pytest

from model_library.core import dependencies
from model_library.domain.models import LibrarySettings
from model_library.services.library_service import ModelLibraryService
from model_library.storage.filesystem_repository import FileSystemRepository
from model_library.storage.http_repository import HttpRepository


def test_data_dir_comes_from_the_environment(tmp_path: Path) -> None:
    assert dependencies.get_data_dir() == tmp_path / "data"
    assert (tmp_path / "data").is_dir()


def test_settings_file_is_created_with_defaults(tmp_path: Path) -> None:
    settings = dependencies.get_settings()

    written = json.loads((tmp_path / "data" / dependencies.SETTINGS_FILE).read_text(encoding="utf-8"))
    assert written == LibrarySettings().model_dump()
    assert settings.http_timeout_seconds == 30.0


def test_settings_file_is_merged_with_defaults(tmp_path: Path) -> None:
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    (data_dir / dependencies.SETTINGS_FILE).write_text(json.dumps({"default_author": "studio"}), encoding="utf-8")

    settings = dependencies.get_settings()

    assert settings.default_author == "studio"
    written = json.loads((data_dir / dependencies.SETTINGS_FILE).read_text(encoding="utf-8"))
    assert written["log_level"] == "INFO"


def test_invalid_settings_fall_back_to_defaults(tmp_path: Path) -> None:
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    (data_dir / dependencies.SETTINGS_FILE).write_text(json.dumps({"http_timeout_seconds": -1}), encoding="utf-8")

    assert dependencies.get_settings() == LibrarySettings()


def test_default_repository_is_a_folder_in_the_data_dir(tmp_path: Path) -> None:
    repository = dependencies.get_repository()

    assert isinstance(repository, FileSystemRepository)
    assert repository.root == str(tmp_path / "data" / "repository")
    assert dependencies.get_repository() is repository


def test_environment_overrides_repository_root(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv(dependencies.REPOSITORY_ENV_VAR, str(tmp_path / "shared"))

    assert dependencies.get_repository().root == str(tmp_path / "shared")


@pytest.mark.parametrize("root", ["http://host/library", "HTTPS://host/library"])
def test_http_roots_create_http_repositories(root: str) -> None:
    repository = dependencies.create_repository(root, LibrarySettings(http_timeout_seconds=5))

    assert isinstance(repository, HttpRepository)


def test_empty_root_is_rejected() -> None:
    with pytest.raises(ValueError):
        dependencies.create_repository("")


def test_services_share_the_repository(tmp_path: Path) -> None:
    library = dependencies.get_library_service()

    assert isinstance(library, ModelLibraryService)
    assert library.repository is dependencies.get_repository()
    assert library.index_service is dependencies.get_index_service()


def test_reset_rereads_configuration(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    first = dependencies.get_repository()
    monkeypatch.setenv(dependencies.REPOSITORY_ENV_VAR, str(tmp_path / "other"))

    assert dependencies.get_repository() is first
    dependencies.reset()
    assert dependencies.get_repository().root == str(tmp_path / "other")
