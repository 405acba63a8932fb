import json
import logging
import os
from pathlib import Path
from typing import Optional

from model_library.domain.models import LibrarySettings
from model_library.services.index_service import ModelIndexService
from model_library.services.library_service import ModelLibraryService
from model_library.storage.filesystem_repository import FileSystemRepository
from model_library.storage.http_repository import HttpRepository
from model_library.storage.repository import ModelRepository

logger = logging.getLogger(__name__)

DATA_ROOT_ENV_VAR = "MODEL_LIBRARY_DATA_DIR"
REPOSITORY_ENV_VAR = "MODEL_LIBRARY_REPOSITORY"
SETTINGS_FILE = "library_settings.json"

# Project root, not the Python package root
_PROJECT_ROOT = Path(__file__).resolve().parents[2]
_DEFAULT_DATA_DIR = _PROJECT_ROOT / "data"

_settings: Optional[LibrarySettings] = None
_repository: Optional[ModelRepository] = None
_index_service: Optional[ModelIndexService] = None
_library_service: Optional[ModelLibraryService] = None


def get_data_dir() -> Path:
    """
    Determine the data directory path.

    Priority:
    1. Environment variable MODEL_LIBRARY_DATA_DIR
    2. '<project root>/data'
    """
    env_path = os.environ.get(DATA_ROOT_ENV_VAR)
    if env_path:
        d = Path(env_path).expanduser()
    else:
        d = _DEFAULT_DATA_DIR
    d.mkdir(parents=True, exist_ok=True)
    return d


def _settings_path() -> Path:
    return get_data_dir() / SETTINGS_FILE


def load_settings() -> LibrarySettings:
    """
    Load library_settings.json, merging with defaults for any missing fields,
    and write it back so any new fields are persisted.
    """
    path = _settings_path()
    if path.exists():
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            settings = LibrarySettings(**raw)
        except (OSError, ValueError, TypeError) as e:
            # ValidationError is a ValueError
            logger.warning(f"Invalid settings file {path}, using defaults: {e}")
            settings = LibrarySettings()
    else:
        settings = LibrarySettings()

    path.write_text(settings.model_dump_json(indent=2), encoding="utf-8")

    env_root = os.environ.get(REPOSITORY_ENV_VAR)
    if env_root:
        settings.repository_root = env_root
    return settings


def resolve_repository_root(settings: LibrarySettings) -> str:
    return settings.repository_root or str(get_data_dir() / "repository")


def resolve_cache_root(settings: LibrarySettings) -> Path:
    if settings.local_cache_root:
        return Path(settings.local_cache_root).expanduser()
    return get_data_dir() / "cache"


def is_http_root(root: str) -> bool:
    return root.lower().startswith(("http://", "https://"))


def create_repository(root: str, settings: Optional[LibrarySettings] = None) -> ModelRepository:
    """HttpRepository for http(s) roots, FileSystemRepository otherwise."""
    if not root:
        raise ValueError("Repository root must not be empty")
    if is_http_root(root):
        timeout = settings.http_timeout_seconds if settings else LibrarySettings().http_timeout_seconds
        return HttpRepository(root, timeout=timeout)
    return FileSystemRepository(root)


def get_settings() -> LibrarySettings:
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def get_repository() -> ModelRepository:
    global _repository
    if _repository is None:
        settings = get_settings()
        root = resolve_repository_root(settings)
        _repository = create_repository(root, settings)
        logger.info(f"Using repository at {_repository.root}")
    return _repository


def get_filesystem_repository() -> FileSystemRepository:
    """
    Repository served by the HTTP API. Only a folder-backed repository can be
    served; an http(s) root here would make the server proxy to itself.
    """
    repository = get_repository()
    if not isinstance(repository, FileSystemRepository):
        raise RuntimeError(
            f"The HTTP server needs a folder repository root, got {repository.root}; "
            f"set {REPOSITORY_ENV_VAR} to a local path"
        )
    return repository


def get_index_service() -> ModelIndexService:
    global _index_service
    if _index_service is None:
        _index_service = ModelIndexService(get_repository())
    return _index_service


def get_library_service() -> ModelLibraryService:
    global _library_service
    if _library_service is None:
        settings = get_settings()
        _library_service = ModelLibraryService(
            get_repository(),
            index_service=get_index_service(),
            cache_root=resolve_cache_root(settings),
            default_author=settings.default_author,
        )
    return _library_service


def reset() -> None:
    """Drop every cached singleton so the next call re-reads configuration."""
    global _settings, _repository, _index_service, _library_service
    _settings = None
    _repository = None
    _index_service = None
    _library_service = None
