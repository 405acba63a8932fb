from __future__ import annotations

import asyncio
import logging
import shutil
import uuid
from pathlib import Path
from typing import List

import aiofiles
import aiofiles.os

from model_library.domain.models import INDEX_JSON, ModelIndex, ModelMeta
from model_library.storage.errors import ModelNotFoundError, RepositoryBackendError
from model_library.storage.repository import (
    LocalPath,
    ModelRepository,
    meta_path,
    normalize_relative,
    version_root,
)
from model_library.storage.serialization import (
    MetaDecodeResult,
    decode_index,
    decode_meta_detailed,
    encode_index,
    encode_meta,
)

logger = logging.getLogger(__name__)

COPY_CHUNK_SIZE = 1024 * 1024


class FileSystemRepository(ModelRepository):
    """
    Repository backed by a local or network-shared directory.

    Layout:
        <root>/models_index.json
        <root>/<model_id>/<version>/model.json
        <root>/<model_id>/<version>/<payload and image files>
    """

    def __init__(self, root: LocalPath):
        self._root = Path(root).expanduser()

    @property
    def root(self) -> str:
        return str(self._root)

    def resolve_path(self, relative_path: str) -> Path:
        """
        Absolute path for a repository-relative path.
        Raises ValueError if the path would leave the root.
        """
        relative = normalize_relative(relative_path)
        return self._root.joinpath(*relative.split("/")) if relative else self._root

    def _relative(self, path: Path) -> str:
        return path.relative_to(self._root).as_posix()

    async def _read_bytes(self, path: Path) -> bytes:
        # Bytes are decoded by the serialization layer
        try:
            async with aiofiles.open(path, "rb") as f:
                return await f.read()
        except FileNotFoundError:
            raise ModelNotFoundError(str(path))
        except OSError as e:
            raise RepositoryBackendError(f"Failed to read {path}: {e}") from e

    async def _write_text(self, path: Path, text: str) -> None:
        # Write to a sibling temp file first so readers never see a partial document.
        tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
        try:
            await aiofiles.os.makedirs(path.parent, exist_ok=True)
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(text)
            await aiofiles.os.replace(tmp_path, path)
        except OSError as e:
            if await aiofiles.os.path.exists(tmp_path):
                await aiofiles.os.remove(tmp_path)
            raise RepositoryBackendError(f"Failed to write {path}: {e}") from e

    async def _copy(self, src: Path, dst: Path) -> None:
        # Temp file then replace, as in _write_text
        tmp_path = dst.with_name(f".{dst.name}.{uuid.uuid4().hex}.tmp")
        try:
            await aiofiles.os.makedirs(dst.parent, exist_ok=True)
            async with aiofiles.open(src, "rb") as fin, aiofiles.open(tmp_path, "wb") as fout:
                while True:
                    chunk = await fin.read(COPY_CHUNK_SIZE)
                    if not chunk:
                        break
                    await fout.write(chunk)
            await aiofiles.os.replace(tmp_path, dst)
        except FileNotFoundError:
            raise ModelNotFoundError(str(src))
        except OSError as e:
            raise RepositoryBackendError(f"Failed to copy {src} to {dst}: {e}") from e
        finally:
            if await aiofiles.os.path.exists(tmp_path):
                await aiofiles.os.remove(tmp_path)

    # ------------------------------------------------------------------
    # Index / metadata
    # ------------------------------------------------------------------

    async def load_index(self) -> ModelIndex:
        path = self.resolve_path(INDEX_JSON)
        logger.debug(f"Loading index from {path}")
        if not await aiofiles.os.path.isfile(path):
            return ModelIndex()
        try:
            content = await self._read_bytes(path)
        except ModelNotFoundError:
            return ModelIndex()
        return decode_index(content, source=str(path))

    async def save_index(self, index: ModelIndex) -> None:
        path = self.resolve_path(INDEX_JSON)
        logger.debug(f"Saving index with {len(index.entries)} entries to {path}")
        await self._write_text(path, encode_index(index))

    async def load_meta_detailed(self, model_id: str, version: str) -> MetaDecodeResult:
        path = self.resolve_path(meta_path(model_id, version))
        if not await aiofiles.os.path.isfile(path):
            raise ModelNotFoundError(str(path))
        content = await self._read_bytes(path)
        return decode_meta_detailed(content, source=str(path))

    async def save_meta(self, model_id: str, version: str, meta: ModelMeta) -> None:
        path = self.resolve_path(meta_path(model_id, version))
        logger.debug(f"Saving metadata for {model_id} {version} to {path}")
        await self._write_text(path, encode_meta(meta))

    # ------------------------------------------------------------------
    # Directories and files
    # ------------------------------------------------------------------

    async def directory_exists(self, relative_path: str) -> bool:
        return await aiofiles.os.path.isdir(self.resolve_path(relative_path))

    async def ensure_directory(self, relative_path: str) -> None:
        path = self.resolve_path(relative_path)
        try:
            await aiofiles.os.makedirs(path, exist_ok=True)
        except OSError as e:
            raise RepositoryBackendError(f"Failed to create {path}: {e}") from e

    async def list_files(self, relative_dir: str) -> List[str]:
        base = self.resolve_path(relative_dir)
        if not await aiofiles.os.path.isdir(base):
            return []

        def _walk() -> List[str]:
            return sorted(self._relative(p) for p in base.rglob("*") if p.is_file())

        try:
            return await asyncio.to_thread(_walk)
        except OSError as e:
            raise RepositoryBackendError(f"Failed to list {base}: {e}") from e

    async def upload_file(self, relative_path: str, local_source: LocalPath) -> None:
        dst = self.resolve_path(relative_path)
        if not normalize_relative(relative_path):
            raise ValueError("Cannot upload to the repository root")
        src = Path(local_source)
        if not src.is_file():
            raise FileNotFoundError(f"Local file not found: {src}")
        await self._copy(src, dst)

    async def download_file(self, relative_path: str, local_destination: LocalPath) -> None:
        src = self.resolve_path(relative_path)
        if not await aiofiles.os.path.isfile(src):
            raise ModelNotFoundError(str(src))
        await self._copy(src, Path(local_destination))

    async def delete_version(self, model_id: str, version: str) -> bool:
        path = self.resolve_path(version_root(model_id, version))
        if not await aiofiles.os.path.isdir(path):
            return False
        try:
            await asyncio.to_thread(shutil.rmtree, path)
        except OSError as e:
            raise RepositoryBackendError(f"Failed to delete {path}: {e}") from e
        logger.info(f"Deleted version {version} of model {model_id}")
        return True
