from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Union

from model_library.domain.models import MODEL_JSON, ModelIndex, ModelMeta
from model_library.storage.serialization import MetaDecodeResult

LocalPath = Union[str, Path]


def normalize_relative(path: str) -> str:
    """
    Normalise a repository-relative path: forward slashes, no leading or
    trailing separators, no empty or "." segments.

    Raises ValueError for paths that would leave the repository root.
    """
    parts = []
    for part in (path or "").replace("\\", "/").split("/"):
        if part in ("", "."):
            continue
        if part == "..":
            raise ValueError(f"Path escapes the repository root: {path!r}")
        parts.append(part)
    return "/".join(parts)


def join_relative(*segments: str) -> str:
    return normalize_relative("/".join(segments))


def version_root(model_id: str, version: str) -> str:
    """Repository-relative folder of a release: <model_id>/<version>."""
    for segment in (model_id, version):
        if not segment or segment in (".", "..") or "/" in segment or "\\" in segment:
            raise ValueError(f"Invalid model id or version: {segment!r}")
    return join_relative(model_id, version)


def meta_path(model_id: str, version: str) -> str:
    return join_relative(version_root(model_id, version), MODEL_JSON)


class ModelRepository(ABC):
    """
    Storage-agnostic repository of models.

    Implementations point at a local/shared folder or an HTTP endpoint.
    Every operation is a coroutine; none is atomic across a caller's
    load-modify-save sequence (last write wins).
    """

    @property
    @abstractmethod
    def root(self) -> str:
        """Repository root (absolute folder path or base URL)."""

    @abstractmethod
    async def load_index(self) -> ModelIndex:
        """Load the global index. Returns an empty index if none was written yet."""

    @abstractmethod
    async def save_index(self, index: ModelIndex) -> None:
        """Overwrite the global index, creating the root if needed."""

    @abstractmethod
    async def load_meta_detailed(self, model_id: str, version: str) -> MetaDecodeResult:
        """
        Load one release's metadata, migrated to the current schema, along with
        how it was decoded. Raises ModelNotFoundError if the release does not
        exist.
        """

    async def load_meta(self, model_id: str, version: str) -> ModelMeta:
        """
        Load one release's metadata, migrated to the current schema.
        Raises ModelNotFoundError if the release does not exist.
        """
        return (await self.load_meta_detailed(model_id, version)).meta

    @abstractmethod
    async def save_meta(self, model_id: str, version: str, meta: ModelMeta) -> None:
        """Write one release's metadata, creating its folder if needed."""

    @abstractmethod
    async def directory_exists(self, relative_path: str) -> bool:
        """Check whether a directory exists at a repository-relative path."""

    @abstractmethod
    async def ensure_directory(self, relative_path: str) -> None:
        """Create a directory (and parents) at a repository-relative path."""

    @abstractmethod
    async def list_files(self, relative_dir: str) -> List[str]:
        """
        List files recursively under a repository-relative directory.

        Returned paths are relative to the repository root, use forward
        slashes and are sorted. A missing directory yields an empty list.
        """

    @abstractmethod
    async def upload_file(self, relative_path: str, local_source: LocalPath) -> None:
        """Copy a local file into the repository, overwriting any existing file."""

    @abstractmethod
    async def download_file(self, relative_path: str, local_destination: LocalPath) -> None:
        """
        Copy a repository file to a local path, creating local folders.
        Raises ModelNotFoundError if the repository file does not exist.
        """

    @abstractmethod
    async def delete_version(self, model_id: str, version: str) -> bool:
        """Remove a release's whole folder. Returns False if it never existed."""
