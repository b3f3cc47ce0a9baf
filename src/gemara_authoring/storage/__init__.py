"""Artifact persistence: repository interface and the file-backed store."""

from gemara_authoring.storage.filesystem import FileArtifactStore
from gemara_authoring.storage.repository import (
    ArtifactNotFoundError,
    ArtifactRepository,
    MissingArtifactIdError,
    StorageError,
)

__all__ = [
    "ArtifactNotFoundError",
    "ArtifactRepository",
    "FileArtifactStore",
    "MissingArtifactIdError",
    "StorageError",
]
