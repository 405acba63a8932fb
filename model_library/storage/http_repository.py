from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional
from urllib.parse import quote

import aiofiles
import aiofiles.os
import httpx

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

JSON_CONTENT_TYPE = "application/json; charset=utf-8"


class HttpRepository(ModelRepository):
    """
    Repository reached through the HTTP endpoints exposed by
    ``model_library.api.repository_api``:

        GET/PUT   /files/{path}
        GET/PUT   /directories?path=...
        GET       /listing?path=...
        DELETE    /models/{model_id}/versions/{version}

    A shared ``httpx.AsyncClient`` may be injected; otherwise a short-lived
    client is opened per call.
    """

    def __init__(self, base_url: str, client: Optional[httpx.AsyncClient] = None, timeout: float = 30.0):
        self._base_url = base_url.rstrip("/")
        self._client = client
        self._timeout = timeout

    @property
    def root(self) -> str:
        return self._base_url

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(follow_redirects=True, timeout=self._timeout) as client:
            yield client

    def _file_url(self, relative_path: str) -> str:
        return f"{self._base_url}/files/{quote(normalize_relative(relative_path), safe='/')}"

    def _url(self, endpoint: str) -> str:
        return f"{self._base_url}/{endpoint}"

    @staticmethod
    def _check(response: httpx.Response, location: str) -> None:
        if response.status_code == 404:
            raise ModelNotFoundError(location)
        if response.is_error:
            raise RepositoryBackendError(f"{response.request.method} {location} failed with HTTP {response.status_code}")

    @staticmethod
    def _json(response: httpx.Response, location: str) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError as e:
            raise RepositoryBackendError(f"{location} returned a body that is not JSON") from e
        if not isinstance(body, dict):
            raise RepositoryBackendError(f"{location} returned {type(body).__name__}, expected an object")
        return body

    async def _get_bytes(self, relative_path: str) -> bytes:
        url = self._file_url(relative_path)
        try:
            async with self._session() as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            raise RepositoryBackendError(f"GET {url} failed: {e}") from e
        self._check(response, url)
        return response.content

    async def _put_content(self, relative_path: str, content: bytes, content_type: str) -> None:
        url = self._file_url(relative_path)
        try:
            async with self._session() as client:
                response = await client.put(url, content=content, headers={"Content-Type": content_type})
        except httpx.HTTPError as e:
            raise RepositoryBackendError(f"PUT {url} failed: {e}") from e
        self._check(response, url)

    # ------------------------------------------------------------------
    # Index / metadata
    # ------------------------------------------------------------------

    async def load_index(self) -> ModelIndex:
        try:
            content = await self._get_bytes(INDEX_JSON)
        except ModelNotFoundError:
            logger.debug(f"No index at {self._base_url} yet")
            return ModelIndex()
        return decode_index(content, source=self._file_url(INDEX_JSON))

    async def save_index(self, index: ModelIndex) -> None:
        logger.debug(f"Uploading index with {len(index.entries)} entries to {self._base_url}")
        await self._put_content(INDEX_JSON, encode_index(index).encode("utf-8"), JSON_CONTENT_TYPE)

    async def load_meta_detailed(self, model_id: str, version: str) -> MetaDecodeResult:
        relative = meta_path(model_id, version)
        content = await self._get_bytes(relative)
        return decode_meta_detailed(content, source=self._file_url(relative))

    async def save_meta(self, model_id: str, version: str, meta: ModelMeta) -> None:
        await self._put_content(meta_path(model_id, version), encode_meta(meta).encode("utf-8"), JSON_CONTENT_TYPE)

    # ------------------------------------------------------------------
    # Directories and files
    # ------------------------------------------------------------------

    async def directory_exists(self, relative_path: str) -> bool:
        url = self._url("directories")
        try:
            async with self._session() as client:
                response = await client.get(url, params={"path": normalize_relative(relative_path)})
        except httpx.HTTPError as e:
            raise RepositoryBackendError(f"GET {url} failed: {e}") from e
        if response.status_code == 404:
            return False
        self._check(response, url)
        return bool(self._json(response, url).get("exists", False))

    async def ensure_directory(self, relative_path: str) -> None:
        url = self._url("directories")
        try:
            async with self._session() as client:
                response = await client.put(url, params={"path": normalize_relative(relative_path)})
        except httpx.HTTPError as e:
            raise RepositoryBackendError(f"PUT {url} failed: {e}") from e
        self._check(response, url)

    async def list_files(self, relative_dir: str) -> List[str]:
        url = self._url("listing")
        try:
            async with self._session() as client:
                response = await client.get(url, params={"path": normalize_relative(relative_dir)})
        except httpx.HTTPError as e:
            raise RepositoryBackendError(f"GET {url} failed: {e}") from e
        if response.status_code == 404:
            return []
        self._check(response, url)
        files = self._json(response, url).get("files") or []
        if not isinstance(files, list):
            raise RepositoryBackendError(f"{url} returned a listing that is not a list")
        return sorted(str(f) for f in files)

    async def upload_file(self, relative_path: str, local_source: LocalPath) -> None:
        if not normalize_relative(relative_path):
            raise ValueError("Cannot upload to the repository root")
        src = Path(local_source)
        if not src.is_file():
            raise FileNotFoundError(f"Local file not found: {src}")
        async with aiofiles.open(src, "rb") as f:
            content = await f.read()
        logger.debug(f"Uploading {src} ({len(content)} bytes) to {relative_path}")
        await self._put_content(relative_path, content, "application/octet-stream")

    async def download_file(self, relative_path: str, local_destination: LocalPath) -> None:
        url = self._file_url(relative_path)
        target = Path(local_destination)
        tmp_path = target.with_name(f".{target.name}.{uuid.uuid4().hex}.tmp")
        await aiofiles.os.makedirs(target.parent, exist_ok=True)
        try:
            async with self._session() as client:
                async with client.stream("GET", url) as response:
                    self._check(response, url)
                    async with aiofiles.open(tmp_path, "wb") as f:
                        async for chunk in response.aiter_bytes():
                            await f.write(chunk)
            await aiofiles.os.replace(tmp_path, target)
        except httpx.HTTPError as e:
            raise RepositoryBackendError(f"GET {url} failed: {e}") from e
        except OSError as e:
            if isinstance(e, ModelNotFoundError):
                raise
            raise RepositoryBackendError(f"Failed to write {target}: {e}") from e
        finally:
            if await aiofiles.os.path.exists(tmp_path):
                await aiofiles.os.remove(tmp_path)

    async def delete_version(self, model_id: str, version: str) -> bool:
        relative = version_root(model_id, version)
        model_segment, version_segment = relative.split("/")
        url = self._url(f"models/{quote(model_segment, safe='')}/versions/{quote(version_segment, safe='')}")
        try:
            async with self._session() as client:
                response = await client.delete(url)
        except httpx.HTTPError as e:
            raise RepositoryBackendError(f"DELETE {url} failed: {e}") from e
        if response.status_code == 404:
            return False
        self._check(response, url)
        return bool(self._json(response, url).get("deleted", False))
