from __future__ import annotations

import asyncio
import logging
import tempfile
import uuid
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import aiofiles
import aiofiles.os

from model_library.domain.models import MODEL_JSON, ModelChangelogEntry, ModelMeta, ModelNote
from model_library.domain.semver import SemVer
from model_library.domain.ticks import now_ticks
from model_library.services.index_service import ModelIndexService
from model_library.storage.errors import DegradedMetadataError
from model_library.storage.repository import LocalPath, ModelRepository, join_relative, version_root
from model_library.storage.serialization import encode_meta

logger = logging.getLogger(__name__)

BumpStrategy = Callable[[SemVer], SemVer]

DEFAULT_AUTHOR = "unknown"
INITIAL_SUBMISSION_SUMMARY = "Initial submission"
METADATA_UPDATE_SUMMARY = "Metadata updated"


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def ensure_changelog_entry(meta: ModelMeta, summary: Optional[str], author: Optional[str], version: str, timestamp: int) -> ModelChangelogEntry:
    """
    Record ``summary`` as the changelog entry of ``version``.

    The last existing entry for the same version (case-insensitive) is
    overwritten instead of adding a duplicate.
    """
    summary = "Updated" if _blank(summary) else summary.strip()
    author = DEFAULT_AUTHOR if _blank(author) else author.strip()
    timestamp = timestamp if timestamp > 0 else now_ticks()

    for entry in reversed(meta.changelog):
        if (entry.version or "").casefold() == version.casefold():
            entry.summary = summary
            entry.author = author
            entry.timestamp = timestamp
            return entry

    entry = ModelChangelogEntry(version=version, summary=summary, author=author, timestamp=timestamp)
    meta.changelog.append(entry)
    return entry


def _files_under(root: Path) -> List[Path]:
    return sorted(p for p in root.rglob("*") if p.is_file())


class ModelLibraryService:
    """
    Publishing and consumption workflows for model releases.

    Every write goes through the repository first and then updates the index,
    so an interrupted call can leave a release folder without an index entry
    but never an index entry without its metadata.
    """

    def __init__(
        self,
        repository: ModelRepository,
        index_service: Optional[ModelIndexService] = None,
        cache_root: Optional[LocalPath] = None,
        default_author: str = DEFAULT_AUTHOR,
    ):
        self._repository = repository
        self._index_service = index_service or ModelIndexService(repository)
        self._cache_root = Path(cache_root) if cache_root else None
        self._default_author = default_author or DEFAULT_AUTHOR

    @property
    def repository(self) -> ModelRepository:
        return self._repository

    @property
    def index_service(self) -> ModelIndexService:
        return self._index_service

    def _author(self, author: Optional[str]) -> str:
        return self._default_author if _blank(author) else author.strip()

    async def get_meta(self, model_id: str, version: str) -> ModelMeta:
        return await self._repository.load_meta(model_id, version)

    async def _load_for_rewrite(self, model_id: str, version: str) -> ModelMeta:
        result = await self._repository.load_meta_detailed(model_id, version)
        if result.degraded:
            logger.warning(f"Not rewriting {model_id} {version}: stored metadata was only partially recovered")
            raise DegradedMetadataError(f"{model_id} {version}")
        return result.meta

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    async def submit_new_version(
        self,
        meta: ModelMeta,
        local_version_root: LocalPath,
        change_summary: Optional[str] = None,
    ) -> str:
        """
        Upload a release from a local folder.

        Every file under ``local_version_root`` except a top-level model.json
        is uploaded, then the metadata is saved and the index updated. A model
        without an id gets a fresh one. Returns the release's
        repository-relative folder.
        """
        if _blank(meta.version):
            raise ValueError("A version is required to submit a release")
        local_root = Path(local_version_root)
        if not local_root.is_dir():
            raise FileNotFoundError(f"Local release folder not found: {local_root}")

        if _blank(meta.identity.id):
            meta.identity.id = uuid.uuid4().hex
            logger.info(f"Assigned new model id {meta.identity.id}")

        model_id = meta.identity.id
        release_root = version_root(model_id, meta.version)

        now = now_ticks()
        if meta.created_time <= 0:
            meta.created_time = now
        meta.updated_time = now
        meta.upload_time = now
        meta.author = self._author(meta.author)
        ensure_changelog_entry(
            meta,
            INITIAL_SUBMISSION_SUMMARY if _blank(change_summary) else change_summary,
            meta.author,
            meta.version,
            now,
        )

        await self._repository.ensure_directory(release_root)
        uploaded = 0
        for file in await asyncio.to_thread(_files_under, local_root):
            relative = file.relative_to(local_root).as_posix()
            if relative.casefold() == MODEL_JSON.casefold():
                continue
            await self._repository.upload_file(join_relative(release_root, relative), file)
            uploaded += 1

        await self._repository.save_meta(model_id, meta.version, meta)
        await self._index_service.update_index_with_meta(meta)
        logger.info(f"Submitted {model_id} {meta.version} ({uploaded} files)")
        return release_root

    async def publish_metadata_update(
        self,
        meta: ModelMeta,
        base_version: Optional[str] = None,
        change_summary: Optional[str] = None,
        author: Optional[str] = None,
        bump: Optional[BumpStrategy] = None,
    ) -> ModelMeta:
        """
        Publish edited metadata as a new release.

        The new version is ``bump(base_version)`` (patch bump by default); the
        payload files of the base release are copied to the new release folder.
        ``meta`` is updated in place and returned.
        """
        if _blank(meta.identity.id):
            raise ValueError("A model id is required for a metadata update")
        source_version = meta.version if _blank(base_version) else base_version
        if _blank(source_version):
            raise ValueError("A base version is required for a metadata update")
        parsed = SemVer.try_parse(source_version)
        if parsed is None:
            raise ValueError(f"Invalid base version '{source_version}'")

        new_version = str((bump or SemVer.bump_patch)(parsed))
        model_id = meta.identity.id

        now = now_ticks()
        if meta.created_time <= 0:
            meta.created_time = now
        meta.updated_time = now
        meta.version = new_version
        resolved_author = self._author(author)
        if _blank(meta.author):
            meta.author = resolved_author
        ensure_changelog_entry(
            meta,
            METADATA_UPDATE_SUMMARY if _blank(change_summary) else change_summary,
            resolved_author,
            new_version,
            now,
        )

        await self._clone_version_files(model_id, source_version, new_version)
        await self._repository.save_meta(model_id, new_version, meta)
        await self._index_service.update_index_with_meta(meta)
        logger.info(f"Published metadata update of {model_id}: {source_version} -> {new_version}")
        return meta

    async def _clone_version_files(self, model_id: str, source_version: str, target_version: str) -> None:
        if source_version.casefold() == target_version.casefold():
            return

        source_root = version_root(model_id, source_version)
        target_root = version_root(model_id, target_version)
        await self._repository.ensure_directory(target_root)

        prefix = source_root + "/"
        files = await self._repository.list_files(source_root)
        with tempfile.TemporaryDirectory() as tmpdirname:
            for repo_path in files:
                if not repo_path.casefold().startswith(prefix.casefold()):
                    continue
                relative = repo_path[len(prefix):]
                if relative.casefold() == MODEL_JSON.casefold():
                    continue
                local_path = Path(tmpdirname).joinpath(*relative.split("/"))
                await self._repository.download_file(repo_path, local_path)
                await self._repository.upload_file(join_relative(target_root, relative), local_path)
        logger.debug(f"Cloned {len(files)} files from {source_root} to {target_root}")

    async def update_meta_in_place(self, meta: ModelMeta) -> ModelMeta:
        """
        Overwrite the metadata of an existing release without a new version.

        Used for note, description and tag edits. The index is refreshed when
        the release is the model's latest. Raises ModelNotFoundError if the
        release does not exist, and DegradedMetadataError if the stored record
        could only be partially recovered.
        """
        model_id = meta.identity.id
        if _blank(model_id) or _blank(meta.version):
            raise ValueError("Model id and version are required to update metadata")

        await self._load_for_rewrite(model_id, meta.version)

        meta.updated_time = now_ticks()
        await self._repository.save_meta(model_id, meta.version, meta)

        entry = await self._index_service.get_entry(model_id)
        if entry is None or (entry.latest_version or "").casefold() == meta.version.casefold():
            await self._index_service.update_index_with_meta(meta)
        return meta

    async def add_note(
        self,
        model_id: str,
        version: str,
        message: str,
        author: Optional[str] = None,
        context: Optional[str] = None,
        tag: Optional[str] = None,
    ) -> ModelNote:
        if _blank(message):
            raise ValueError("A note needs a message")
        meta = await self._load_for_rewrite(model_id, version)
        note = ModelNote(
            author=self._author(author),
            message=message.strip(),
            created_time=now_ticks(),
            context=context,
            tag=tag,
        )
        meta.notes.append(note)
        await self.update_meta_in_place(meta)
        return note

    # ------------------------------------------------------------------
    # Consumption
    # ------------------------------------------------------------------

    async def download_version(
        self,
        model_id: str,
        version: str,
        cache_root: Optional[LocalPath] = None,
    ) -> Tuple[Path, ModelMeta]:
        """
        Download a release into ``<cache_root>/<model_id>/<version>``.

        Writes the (migrated) metadata as model.json and pulls every other
        file of the release folder. Returns the local folder and metadata.
        """
        root = Path(cache_root) if cache_root else self._cache_root
        if root is None:
            raise ValueError("No cache folder configured for downloads")

        meta = await self._repository.load_meta(model_id, version)
        release_root = version_root(model_id, version)
        local_root = root.joinpath(*release_root.split("/"))
        await aiofiles.os.makedirs(local_root, exist_ok=True)

        async with aiofiles.open(local_root / MODEL_JSON, "w", encoding="utf-8") as f:
            await f.write(encode_meta(meta))

        prefix = release_root + "/"
        count = 0
        for repo_path in await self._repository.list_files(release_root):
            if not repo_path.startswith(prefix):
                continue
            relative = repo_path[len(prefix):]
            if relative.casefold() == MODEL_JSON.casefold():
                continue
            await self._repository.download_file(repo_path, local_root.joinpath(*relative.split("/")))
            count += 1

        logger.info(f"Downloaded {model_id} {version} to {local_root} ({count} files)")
        return local_root, meta

    async def delete_version(self, model_id: str, version: str) -> bool:
        """
        Delete a release folder and reconcile the index. Returns False when
        the release did not exist.
        """
        entry = await self._index_service.get_entry(model_id)
        if entry is not None and entry.latest_version == version:
            logger.warning(f"Deleting the latest version {version} of model {model_id}")

        deleted = await self._repository.delete_version(model_id, version)
        if deleted:
            await self._index_service.remove_version(model_id, version)
        return deleted
