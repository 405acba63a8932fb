"""
Pydantic models for the model library.

This module defines the data model of the catalog:
- The repository-wide index (models_index.json) and its entries
- Per-release metadata (model.json) and its nested value objects
- Library settings

Python attribute names are snake_case; the JSON wire names are the camelCase
names used by existing catalogs and are declared as field aliases. Always
serialize with ``by_alias=True``.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# Schema version written into every model.json produced by this code.
# Increment it together with a new entry in storage/migrations.py.
CURRENT_SCHEMA_VERSION = 2

MODEL_JSON = "model.json"
INDEX_JSON = "models_index.json"


class WireModel(BaseModel):
    """Base class accepting both attribute names and wire aliases on input."""

    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Index Models (models_index.json)
# ---------------------------------------------------------------------------


class ModelIndexEntry(WireModel):
    """
    One row of the index, describing one model family.

    Contains just enough information to browse and search without loading
    every release's metadata.
    """

    id: str = Field(
        description="Unique ID of the model family (same as ModelIdentity.id). Primary key of the index.",
    )
    name: Optional[str] = Field(
        default=None,
        description="Human-readable name of the model family.",
    )
    latest_version: Optional[str] = Field(
        default=None,
        alias="latestVersion",
        description="Latest published version (MAJOR.MINOR.PATCH). Unparseable values are treated as unknown.",
    )
    description: Optional[str] = Field(
        default=None,
        description="Short description used for browsing and search.",
    )
    tags: List[str] = Field(
        default_factory=list,
        description="Tags copied from the latest release's metadata.",
    )
    updated_time: int = Field(
        default=0,
        alias="updatedTimeTicks",
        description="When the latest release was published, in ticks.",
    )
    release_time: int = Field(
        default=0,
        alias="releaseTimeTicks",
        description="When the latest release was uploaded, in ticks.",
    )

    @field_validator("tags", mode="before")
    @classmethod
    def _none_tags_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class ModelIndex(WireModel):
    """
    Repository-wide catalog of model families.

    Persisted at: <ROOT>/models_index.json
    """

    entries: List[ModelIndexEntry] = Field(
        default_factory=list,
        description="All model families in insertion order.",
    )

    @field_validator("entries", mode="before")
    @classmethod
    def _none_entries_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    def get(self, model_id: str) -> Optional[ModelIndexEntry]:
        """Return the entry with the given id, or None."""
        for entry in self.entries:
            if entry.id == model_id:
                return entry
        return None

    def upsert(self, entry: ModelIndexEntry) -> None:
        """Replace the entry with the same id in place, or append it."""
        for i, existing in enumerate(self.entries):
            if existing.id == entry.id:
                self.entries[i] = entry
                return
        self.entries.append(entry)

    def remove(self, model_id: str) -> bool:
        """Remove the entry with the given id. Returns False if there was none."""
        for i, existing in enumerate(self.entries):
            if existing.id == model_id:
                del self.entries[i]
                return True
        return False


# ---------------------------------------------------------------------------
# Metadata value objects
# ---------------------------------------------------------------------------


class ModelIdentity(WireModel):
    """
    Stable identity of a model family, shared by all of its releases.
    """

    id: Optional[str] = Field(
        default=None,
        description="Unique identifier of the model family. Never changes once assigned.",
    )
    name: Optional[str] = Field(
        default=None,
        description="Display name; may change between versions.",
    )


class ModelTags(WireModel):
    """Container for the tag list of a release (wire shape: {"values": [...]})."""

    values: List[str] = Field(default_factory=list)

    @field_validator("values", mode="before")
    @classmethod
    def _none_values_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class AssetRef(WireModel):
    """
    Lightweight reference to a material or texture inside a release.
    """

    external_id: Optional[str] = Field(
        default=None,
        alias="guid",
        description="Identifier of the asset in the consuming project, if known.",
    )
    name: Optional[str] = Field(default=None, description="Asset name.")
    relative_path: Optional[str] = Field(
        default=None,
        alias="relativePath",
        description="Path inside the release folder, if known.",
    )
    type_name: Optional[str] = Field(
        default=None,
        alias="type",
        description="Asset type name, e.g. 'Material' or 'Texture2D'.",
    )


class DependencyRef(WireModel):
    """
    An asset referenced by the release but not bundled with it.
    """

    external_id: Optional[str] = Field(default=None, alias="guid")
    type_name: Optional[str] = Field(default=None, alias="type")
    name: Optional[str] = Field(default=None)


class ModelImporterSettings(WireModel):
    """Import configuration captured for one payload file."""

    material_import_mode: Optional[str] = Field(default=None, alias="materialImportMode")
    material_search: Optional[str] = Field(default=None, alias="materialSearch")
    material_name: Optional[str] = Field(default=None, alias="materialName")


class ModelNote(WireModel):
    """
    A feedback note left on a release.

    Tag values used by the tooling: "bugfix", "improvements", "remarks",
    "question", "praise".
    """

    author: Optional[str] = None
    message: Optional[str] = None
    created_time: int = Field(default=0, alias="createdTimeTicks")
    context: Optional[str] = None
    tag: Optional[str] = None


class ModelChangelogEntry(WireModel):
    """One changelog line describing what changed in a version."""

    version: Optional[str] = None
    summary: Optional[str] = None
    author: Optional[str] = None
    timestamp: int = Field(default=0, description="When the change was made, in ticks.")


# ---------------------------------------------------------------------------
# Release Metadata (model.json)
# ---------------------------------------------------------------------------


_COLLECTION_FIELDS = (
    "payload_paths",
    "materials",
    "textures",
    "external_asset_ids",
    "image_paths",
    "notes",
    "dependencies",
    "dependencies_detailed",
    "changelog",
)

_MAPPING_FIELDS = ("extra", "per_file_import_settings")


class ModelMeta(WireModel):
    """
    Full metadata of a single (model, version) release.

    Persisted in: <ROOT>/<model_id>/<version>/model.json
    """

    schema_version: int = Field(
        default=CURRENT_SCHEMA_VERSION,
        alias="schemaVersion",
        description="Schema version the record was written with. Drives migration on load.",
    )
    identity: ModelIdentity = Field(
        default_factory=ModelIdentity,
        description="Identity of the owning model family.",
    )
    version: Optional[str] = Field(
        default=None,
        description="Release version in MAJOR.MINOR.PATCH format.",
    )
    description: Optional[str] = None
    tags: ModelTags = Field(default_factory=ModelTags)
    author: Optional[str] = None
    created_time: int = Field(default=0, alias="createdTimeTicks")
    updated_time: int = Field(default=0, alias="updatedTimeTicks")
    payload_paths: List[str] = Field(
        default_factory=list,
        alias="payloadRelativePaths",
        description="Asset files of the release, relative to the release folder.",
    )
    materials: List[AssetRef] = Field(default_factory=list)
    textures: List[AssetRef] = Field(default_factory=list)
    external_asset_ids: List[str] = Field(
        default_factory=list,
        alias="assetGuids",
        description="Identifiers of the payload in the consuming project, used to detect installs.",
    )
    image_paths: List[str] = Field(default_factory=list, alias="imageRelativePaths")
    preview_image_path: Optional[str] = Field(default=None, alias="previewImagePath")
    upload_time: int = Field(default=0, alias="uploadTimeTicks")
    install_path: Optional[str] = Field(
        default=None,
        alias="installPath",
        description="Suggested install destination inside a consuming project.",
    )
    relative_path: Optional[str] = Field(default=None, alias="relativePath")
    notes: List[ModelNote] = Field(default_factory=list)
    dependencies: List[str] = Field(default_factory=list)
    dependencies_detailed: List[DependencyRef] = Field(
        default_factory=list,
        alias="dependenciesDetailed",
    )
    extra: Dict[str, str] = Field(
        default_factory=dict,
        description="Open key/value pairs for custom fields.",
    )
    per_file_import_settings: Dict[str, ModelImporterSettings] = Field(
        default_factory=dict,
        alias="modelImporters",
        description="Importer settings keyed by payload-relative path.",
    )
    changelog: List[ModelChangelogEntry] = Field(default_factory=list)
    vertex_count: int = Field(default=0, ge=0, alias="vertexCount")
    triangle_count: int = Field(default=0, ge=0, alias="triangleCount")

    @field_validator(*_COLLECTION_FIELDS, mode="before")
    @classmethod
    def _none_list_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator(*_MAPPING_FIELDS, mode="before")
    @classmethod
    def _none_mapping_to_empty(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("identity", mode="before")
    @classmethod
    def _none_identity_to_empty(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("tags", mode="before")
    @classmethod
    def _none_tags_to_empty(cls, value: Any) -> Any:
        return {} if value is None else value

    @property
    def model_id(self) -> Optional[str]:
        return self.identity.id


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class LibrarySettings(BaseModel):
    """
    Process configuration for the model library.

    Persisted at: <DATA_DIR>/library_settings.json
    """

    repository_root: str = Field(
        default="",
        description="Repository root: a local/shared folder path or an http(s) base URL. Empty means <DATA_DIR>/repository.",
    )
    local_cache_root: str = Field(
        default="",
        description="Folder where downloaded releases are cached. Empty means <DATA_DIR>/cache.",
    )
    http_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for HTTP repository requests.",
    )
    log_level: str = Field(
        default="INFO",
        description="Root logging level used by the HTTP server entry point.",
    )
    default_author: str = Field(
        default="unknown",
        description="Author recorded when a submission does not name one.",
    )
