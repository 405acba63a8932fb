"""
HTTP endpoints exposing a folder-backed repository.

These are the endpoints ``HttpRepository`` talks to, so a team can share one
repository folder over HTTP instead of a network share. All paths are
relative to the repository root; paths that would leave the root are rejected
with 400.
"""

from __future__ import annotations

import logging
import uuid
from pathlib import Path

import aiofiles
import aiofiles.os
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import FileResponse

from model_library.core.dependencies import get_filesystem_repository
from model_library.storage.errors import RepositoryBackendError
from model_library.storage.filesystem_repository import FileSystemRepository
from model_library.storage.repository import normalize_relative

logger = logging.getLogger(__name__)

router = APIRouter()


def _resolve(repo: FileSystemRepository, relative_path: str) -> Path:
    try:
        return repo.resolve_path(relative_path)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/files/{file_path:path}")
async def get_file(
    file_path: str,
    repo: FileSystemRepository = Depends(get_filesystem_repository),
) -> FileResponse:
    """Return the bytes of a repository file."""
    path = _resolve(repo, file_path)
    if not await aiofiles.os.path.isfile(path):
        raise HTTPException(status_code=404, detail=f"File not found: {file_path}")
    return FileResponse(path)


@router.put("/files/{file_path:path}")
async def put_file(
    file_path: str,
    request: Request,
    repo: FileSystemRepository = Depends(get_filesystem_repository),
) -> dict:
    """
    Write the request body to a repository file, creating parent folders.
    The file is replaced atomically once the whole body was received.
    """
    path = _resolve(repo, file_path)
    if not normalize_relative(file_path):
        raise HTTPException(status_code=400, detail="A file path is required")
    if await aiofiles.os.path.isdir(path):
        raise HTTPException(status_code=400, detail=f"Path is a directory: {file_path}")

    tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
    size = 0
    try:
        await aiofiles.os.makedirs(path.parent, exist_ok=True)
        async with aiofiles.open(tmp_path, "wb") as f:
            async for chunk in request.stream():
                await f.write(chunk)
                size += len(chunk)
        await aiofiles.os.replace(tmp_path, path)
    except OSError as e:
        logger.error(f"Failed to store {file_path}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to store {file_path}")
    finally:
        if await aiofiles.os.path.exists(tmp_path):
            await aiofiles.os.remove(tmp_path)

    logger.debug(f"Stored {file_path} ({size} bytes)")
    return {"path": normalize_relative(file_path), "size": size}


@router.get("/directories")
async def directory_exists(
    path: str = Query(default=""),
    repo: FileSystemRepository = Depends(get_filesystem_repository),
) -> dict:
    _resolve(repo, path)
    return {"exists": await repo.directory_exists(path)}


@router.put("/directories")
async def ensure_directory(
    path: str = Query(default=""),
    repo: FileSystemRepository = Depends(get_filesystem_repository),
) -> dict:
    _resolve(repo, path)
    try:
        await repo.ensure_directory(path)
    except RepositoryBackendError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"exists": True}


@router.get("/listing")
async def list_files(
    path: str = Query(default=""),
    repo: FileSystemRepository = Depends(get_filesystem_repository),
) -> dict:
    """Recursive, sorted listing of the files under a folder (root-relative paths)."""
    _resolve(repo, path)
    try:
        files = await repo.list_files(path)
    except RepositoryBackendError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"files": files}


@router.delete("/models/{model_id}/versions/{version}")
async def delete_version(
    model_id: str,
    version: str,
    repo: FileSystemRepository = Depends(get_filesystem_repository),
) -> dict:
    try:
        deleted = await repo.delete_version(model_id, version)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RepositoryBackendError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"deleted": deleted}
