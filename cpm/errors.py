"""
Custom exception hierarchy for CPM.
"""
from pathlib import Path
from typing import Union


class CpmError(Exception):
    """Base exception for all cpm errors."""
    pass

class SnapshotError(CpmError):
    pass

class SelectionError(SnapshotError):
    pass

class ArchiveError(SnapshotError):
    pass

class RestoreError(CpmError):
    pass

class ArchiveNotFoundError(RestoreError):
    pass

class DestinationExistsError(RestoreError):
    pass

class BackupError(RestoreError):
    pass

class RestoreExtractionError(RestoreError):
    pass

class PathTraversalError(RestoreError):
    pass

class FileLockedError(RestoreError):
    """A destination file could not be overwritten because another process holds it."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        super().__init__(
            f"File '{self.path}' is locked by another process. "
            "Close the running Claude client and retry."
        )

class ProfileError(CpmError):
    pass

class ProfileNotFoundError(ProfileError):
    pass

class ProfileExistsError(ProfileError):
    pass

class InvalidProfileNameError(ProfileError):
    pass

class ProfileValidationError(ProfileError):
    pass

class ConfigError(CpmError):
    pass
