class RepositoryError(Exception):
    """Base class for repository failures."""


class ModelNotFoundError(RepositoryError, FileNotFoundError):
    """The requested release or artifact does not exist."""

    def __init__(self, location: str):
        super().__init__(f"Not found: {location}")
        self.location = location


class RepositoryBackendError(RepositoryError):
    """
    I/O or transport failure of the storage backend.

    Not retried internally; callers apply their own retry policy.
    """


class DegradedMetadataError(RepositoryError):
    """
    A stored model.json could only be partially recovered, so overwriting it
    would lose the collections that could not be read.
    """

    def __init__(self, location: str):
        super().__init__(f"Refusing to overwrite partially recovered metadata: {location}")
        self.location = location
