"""
Persistence of the catalog.

This package is responsible for:
* Reading and writing model.json / models_index.json, including schema
  migration and degraded recovery of damaged records.
* The storage-agnostic ``ModelRepository`` contract.
* Folder-backed and HTTP-backed repository implementations.
"""

from model_library.storage.errors import (
    DegradedMetadataError,
    ModelNotFoundError,
    RepositoryBackendError,
    RepositoryError,
)
from model_library.storage.filesystem_repository import FileSystemRepository
from model_library.storage.http_repository import HttpRepository
from model_library.storage.repository import ModelRepository

__all__ = [
    "DegradedMetadataError",
    "FileSystemRepository",
    "HttpRepository",
    "ModelNotFoundError",
    "ModelRepository",
    "RepositoryBackendError",
    "RepositoryError",
]
