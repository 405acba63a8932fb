from __future__ import annotations

import logging
from typing import Dict, List, Optional

from model_library.domain.models import ModelIndex, ModelIndexEntry, ModelMeta
from model_library.domain.semver import SemVer, sort_versions_descending
from model_library.domain.ticks import now_ticks
from model_library.storage.errors import ModelNotFoundError
from model_library.storage.repository import ModelRepository, normalize_relative

logger = logging.getLogger(__name__)


def _advances(incoming: Optional[str], current: Optional[str]) -> bool:
    """
    True if ``incoming`` may replace ``current`` as the latest version.

    A parseable version is never replaced by an older or unparseable one; an
    unparseable current version is always replaced.
    """
    current_parsed = SemVer.try_parse(current)
    if current_parsed is None:
        return True
    incoming_parsed = SemVer.try_parse(incoming)
    if incoming_parsed is None:
        return False
    return incoming_parsed >= current_parsed


class ModelIndexService:
    """
    Cached access to the repository index plus the write paths that keep it
    consistent with published releases.
    """

    def __init__(self, repository: ModelRepository):
        self._repository = repository
        self._index_cache: Optional[ModelIndex] = None

    @property
    def repository(self) -> ModelRepository:
        return self._repository

    async def get_index(self) -> ModelIndex:
        if self._index_cache is None:
            self._index_cache = await self._repository.load_index()
        return self._index_cache

    async def refresh_index(self) -> ModelIndex:
        self._index_cache = await self._repository.load_index()
        return self._index_cache

    def invalidate_cache(self) -> None:
        self._index_cache = None

    async def get_entry(self, model_id: str) -> Optional[ModelIndexEntry]:
        index = await self.get_index()
        return index.get(model_id)

    async def _list_release_versions(self, model_id: str) -> List[str]:
        """Version folders found in the repository for a model, deduplicated case-insensitively."""
        prefix = normalize_relative(model_id) + "/"
        found: Dict[str, str] = {}
        for path in await self._repository.list_files(model_id):
            if not path.casefold().startswith(prefix.casefold()):
                continue
            remainder = path[len(prefix):]
            version, sep, _ = remainder.partition("/")
            version = version.strip()
            if sep and version:
                found.setdefault(version.casefold(), version)
        return list(found.values())

    async def get_available_versions(self, model_id: str) -> List[str]:
        """
        All known versions of a model, newest first.

        Combines the version folders present in the repository with the
        index's latest version.
        """
        versions = {v.casefold(): v for v in await self._list_release_versions(model_id)}
        entry = await self.get_entry(model_id)
        if entry is not None and entry.latest_version:
            versions.setdefault(entry.latest_version.casefold(), entry.latest_version)
        return sort_versions_descending(list(versions.values()))

    async def update_index_with_meta(self, meta: ModelMeta) -> ModelIndexEntry:
        """
        Create or update the index entry for a release and save the index.

        The entry's latest version only moves forward. Descriptive fields
        (name, description, tags) follow the release that is the latest.
        """
        model_id = (meta.identity.id or "").strip()
        if not model_id:
            raise ValueError("Cannot update the index: metadata has no model id")

        # Re-read so entries written by others since our last read are kept.
        index = await self.refresh_index()

        timestamp = meta.updated_time if meta.updated_time > 0 else now_ticks()
        release_time = meta.upload_time if meta.upload_time > 0 else timestamp
        tags = list(meta.tags.values)

        entry = index.get(model_id)
        if entry is None:
            entry = ModelIndexEntry(
                id=model_id,
                name=meta.identity.name,
                latest_version=meta.version,
                description=meta.description,
                tags=tags,
                updated_time=timestamp,
                release_time=release_time,
            )
            index.entries.append(entry)
            logger.info(f"Added model {model_id} ({meta.version}) to the index")
        elif _advances(meta.version, entry.latest_version):
            if entry.latest_version != meta.version:
                logger.info(f"Index latest version of {model_id}: {entry.latest_version} -> {meta.version}")
            entry.latest_version = meta.version
            entry.release_time = max(entry.release_time, release_time)
            entry.name = meta.identity.name
            entry.description = meta.description
            entry.tags = tags
            entry.updated_time = max(entry.updated_time, timestamp)
        else:
            logger.debug(f"Not moving index of {model_id} back from {entry.latest_version} to {meta.version}")

        await self._repository.save_index(index)
        return entry

    async def remove_version(self, model_id: str, version: str) -> Optional[ModelIndexEntry]:
        """
        Reconcile the index after a release was deleted.

        Drops the entry when no release remains. When the deleted release was
        the latest, the entry is re-pointed at the highest remaining version.
        Returns the surviving entry, or None if it was removed.
        """
        index = await self.refresh_index()
        entry = index.get(model_id)
        if entry is None:
            return None

        remaining = [v for v in await self._list_release_versions(model_id) if v.casefold() != version.casefold()]
        if not remaining:
            index.remove(model_id)
            await self._repository.save_index(index)
            logger.info(f"Removed model {model_id} from the index: no releases left")
            return None

        if (entry.latest_version or "").casefold() == version.casefold():
            new_latest = sort_versions_descending(remaining)[0]
            entry.latest_version = new_latest
            try:
                meta = await self._repository.load_meta(model_id, new_latest)
            except ModelNotFoundError:
                logger.warning(f"Release {model_id} {new_latest} has no metadata; keeping index fields")
            else:
                entry.name = meta.identity.name or entry.name
                entry.description = meta.description
                entry.tags = list(meta.tags.values)
                if meta.upload_time > 0:
                    entry.release_time = meta.upload_time
            logger.info(f"Index latest version of {model_id} fell back to {new_latest}")
            await self._repository.save_index(index)

        return entry
