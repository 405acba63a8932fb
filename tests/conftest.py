"""Pytest configuration helpers for model_library tests."""

from __future__ import annotations

import asyncio
from pathlib import Path

import httpx
import pytest

from model_library.core import dependencies
from model_library.domain.models import ModelIdentity, ModelMeta, ModelTags
from model_library.storage.filesystem_repository import FileSystemRepository
from model_library.storage.http_repository import HttpRepository

TEST_BASE_URL = "http://testserver"


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Keep configuration singletons and the data directory per test."""

    monkeypatch.setenv(dependencies.DATA_ROOT_ENV_VAR, str(tmp_path / "data"))
    monkeypatch.delenv(dependencies.REPOSITORY_ENV_VAR, raising=False)
    dependencies.reset()
    yield
    dependencies.reset()


@pytest.fixture
def repo_dir(tmp_path: Path) -> Path:
    return tmp_path / "repo"


@pytest.fixture
def fs_repository(repo_dir: Path) -> FileSystemRepository:
    return FileSystemRepository(repo_dir)


@pytest.fixture
def http_repository(fs_repository: FileSystemRepository):
    """HttpRepository talking to the FastAPI app in-process, serving ``fs_repository``."""

    from model_library.main import app

    app.dependency_overrides[dependencies.get_filesystem_repository] = lambda: fs_repository
    client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url=TEST_BASE_URL)
    try:
        yield HttpRepository(TEST_BASE_URL, client=client)
    finally:
        app.dependency_overrides.clear()
        asyncio.run(client.aclose())


@pytest.fixture(params=["filesystem", "http"])
def repository(request: pytest.FixtureRequest):
    """Each repository implementation in turn."""

    if request.param == "filesystem":
        return request.getfixturevalue("fs_repository")
    return request.getfixturevalue("http_repository")


def make_meta(model_id: str = "crate", version: str = "1.0.0", **kwargs) -> ModelMeta:
    name = kwargs.pop("name", model_id.title())
    meta = ModelMeta(
        identity=ModelIdentity(id=model_id, name=name),
        version=version,
        **kwargs,
    )
    if "tags" not in kwargs:
        meta.tags = ModelTags(values=["props"])
    return meta


def write_release_folder(root: Path, files: dict) -> Path:
    """Create a local release folder with the given relative path -> bytes mapping."""

    root.mkdir(parents=True, exist_ok=True)
    for relative, content in files.items():
        target = root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
    return root
