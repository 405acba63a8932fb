from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from model_library.domain.models import ModelIndexEntry
from model_library.domain.semver import describe_update, needs_upgrade
from model_library.services.index_service import ModelIndexService
from model_library.storage.errors import RepositoryError

logger = logging.getLogger(__name__)


class ModelUpdateInfo(BaseModel):
    """Update status of one installed model."""

    model_config = ConfigDict(protected_namespaces=())

    model_id: str
    model_name: Optional[str] = None
    local_version: str
    remote_version: Optional[str] = None
    has_update: bool = False
    last_checked: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    update_description: str = ""


class ModelUpdateDetector:
    """
    Compares installed versions against the index.

    Installed models are passed as ``{model_id: local_version}``; models not
    in the index and models whose local version is unknown are skipped.
    """

    def __init__(self, index_service: ModelIndexService):
        self._index_service = index_service

    async def _describe(self, entry: ModelIndexEntry, local_version: str) -> str:
        remote_version = entry.latest_version or ""
        try:
            meta = await self._index_service.repository.load_meta(entry.id, remote_version)
        except (RepositoryError, ValueError) as e:
            logger.warning(f"Could not load changelog of {entry.id} {remote_version}: {e}")
        else:
            if meta.changelog:
                latest = max(meta.changelog, key=lambda c: c.timestamp)
                if latest.summary:
                    return latest.summary
        return describe_update(local_version, remote_version)

    async def check_updates(self, installed: Mapping[str, str]) -> List[ModelUpdateInfo]:
        """Update status of every installed model known to the index."""
        index = await self._index_service.get_index()
        results: List[ModelUpdateInfo] = []
        for entry in index.entries:
            local_version = installed.get(entry.id)
            if not local_version:
                continue
            has_update = needs_upgrade(local_version, entry.latest_version)
            results.append(
                ModelUpdateInfo(
                    model_id=entry.id,
                    model_name=entry.name,
                    local_version=local_version,
                    remote_version=entry.latest_version,
                    has_update=has_update,
                    update_description=await self._describe(entry, local_version) if has_update else "",
                )
            )
        logger.debug(f"Checked {len(results)} installed models, {sum(r.has_update for r in results)} have updates")
        return results

    async def get_available_updates(self, installed: Mapping[str, str]) -> List[ModelUpdateInfo]:
        return [info for info in await self.check_updates(installed) if info.has_update]

    async def get_update_info(self, model_id: str, local_version: str) -> Optional[ModelUpdateInfo]:
        for info in await self.check_updates({model_id: local_version}):
            return info
        return None

    async def has_update(self, model_id: str, local_version: str) -> bool:
        info = await self.get_update_info(model_id, local_version)
        return info is not None and info.has_update

    async def get_update_count(self, installed: Mapping[str, str]) -> int:
        return len(await self.get_available_updates(installed))
