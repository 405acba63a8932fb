"""
Per-user preferences: favorite models and read-state of notes and updates.

State lives behind the ``PreferenceStore`` key/value port so it can be kept in
memory (tests, short-lived tools) or in a JSON file in the data directory.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, Optional

logger = logging.getLogger(__name__)

FAVORITES_KEY = "ModelLibrary.Favorites"
NOTES_READ_KEY = "ModelLibrary.NotesRead"
UPDATES_READ_KEY = "ModelLibrary.UpdatesRead"


class PreferenceStore(ABC):
    """String key/value storage."""

    @abstractmethod
    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...


class InMemoryPreferenceStore(PreferenceStore):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._values: Dict[str, str] = dict(initial or {})

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self._values.get(key, default)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def delete(self, key: str) -> None:
        self._values.pop(key, None)


class JsonFilePreferenceStore(PreferenceStore):
    """
    Preferences persisted as a flat JSON object.

    The file is read once and rewritten on every change. An unreadable file
    is treated as empty and replaced on the next write.
    """

    def __init__(self, path: Path):
        self._path = Path(path)
        self._values: Dict[str, str] = self._load()

    def _load(self) -> Dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable preferences file {self._path}: {e}")
            return {}
        if not isinstance(raw, dict):
            logger.warning(f"Ignoring preferences file {self._path}: expected a JSON object")
            return {}
        return {str(k): str(v) for k, v in raw.items()}

    def _save(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        tmp_path.write_text(json.dumps(self._values, indent=2, sort_keys=True), encoding="utf-8")
        tmp_path.replace(self._path)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self._values.get(key, default)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value
        self._save()

    def delete(self, key: str) -> None:
        if self._values.pop(key, None) is not None:
            self._save()


class FlagSet:
    """
    Case-insensitive set of strings stored as a JSON list under one key.

    The original spelling of each member is kept for display.
    """

    def __init__(self, store: PreferenceStore, key: str):
        self._store = store
        self._key = key
        self._members: Dict[str, str] = {}
        self.load()

    def load(self) -> None:
        self._members.clear()
        raw = self._store.get(self._key, "[]")
        try:
            values = json.loads(raw or "[]")
        except ValueError:
            logger.warning(f"Preference {self._key} is not valid JSON; starting empty")
            values = []
        if not isinstance(values, list):
            values = []
        for value in values:
            if isinstance(value, str) and value:
                self._members.setdefault(value.casefold(), value)

    def save(self) -> None:
        self._store.set(self._key, json.dumps(sorted(self._members.values())))

    @property
    def members(self) -> FrozenSet[str]:
        return frozenset(self._members.values())

    def __contains__(self, item: object) -> bool:
        return isinstance(item, str) and item.casefold() in self._members

    def __len__(self) -> int:
        return len(self._members)

    def add(self, value: str) -> bool:
        """Add a member. Returns False if it was already present or empty."""
        if not value or value in self:
            return False
        self._members[value.casefold()] = value
        self.save()
        return True

    def discard(self, value: str) -> bool:
        """Remove a member. Returns False if it was not present."""
        if not value or value not in self:
            return False
        del self._members[value.casefold()]
        self.save()
        return True

    def discard_where(self, predicate) -> int:
        removed = [k for k, v in self._members.items() if predicate(v)]
        for k in removed:
            del self._members[k]
        if removed:
            self.save()
        return len(removed)


class FavoritesManager:
    """Favorite model ids of the current user."""

    def __init__(self, store: PreferenceStore, key: str = FAVORITES_KEY):
        self._flags = FlagSet(store, key)

    @property
    def favorites(self) -> FrozenSet[str]:
        return self._flags.members

    def is_favorite(self, model_id: str) -> bool:
        return model_id in self._flags

    def toggle_favorite(self, model_id: str) -> bool:
        """Flip the favorite state. Returns the new state; empty ids are never favorites."""
        if not model_id:
            return False
        if self._flags.discard(model_id):
            return False
        return self._flags.add(model_id)

    def set_favorites(self, model_ids: Iterable[str]) -> None:
        for model_id in list(self._flags.members):
            self._flags.discard(model_id)
        for model_id in model_ids:
            self._flags.add(model_id)


class ReadStateManager:
    """
    Tracks which release notes and update notifications the user has seen.

    Notes are tracked per ``model_id@version``, updates per model.
    """

    def __init__(self, store: PreferenceStore):
        self._notes = FlagSet(store, NOTES_READ_KEY)
        self._updates = FlagSet(store, UPDATES_READ_KEY)

    @staticmethod
    def _notes_key(model_id: str, version: str) -> str:
        return f"{model_id}@{version}"

    def mark_notes_read(self, model_id: str, version: str) -> None:
        if model_id and version:
            self._notes.add(self._notes_key(model_id, version))

    def are_notes_read(self, model_id: str, version: str) -> bool:
        if not model_id or not version:
            return False
        return self._notes_key(model_id, version) in self._notes

    def mark_update_read(self, model_id: str) -> None:
        if model_id:
            self._updates.add(model_id)

    def is_update_read(self, model_id: str) -> bool:
        return bool(model_id) and model_id in self._updates

    def clear_read_state(self, model_id: str, version: Optional[str] = None) -> None:
        """
        Forget read-state. Without a version, the update flag and the notes of
        every version of the model are cleared.
        """
        if not model_id:
            return
        if version:
            self._notes.discard(self._notes_key(model_id, version))
            return
        self._updates.discard(model_id)
        prefix = f"{model_id}@".casefold()
        self._notes.discard_where(lambda key: key.casefold().startswith(prefix))
