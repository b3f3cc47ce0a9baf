"""Abstract repository interface for artifact persistence."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from gemara_authoring.models.artifacts import Artifact, IndexEntry, Layer


class StorageError(Exception):
    """IO failure while reading or writing persisted artifacts."""


class ArtifactNotFoundError(KeyError):
    """No artifact with the requested id exists in the layer."""

    def __init__(self, layer: Layer, artifact_id: str) -> None:
        super().__init__(f"{layer.label} artifact '{artifact_id}' not found")
        self.layer = layer
        self.artifact_id = artifact_id

    def __str__(self) -> str:
        return str(self.args[0])


class MissingArtifactIdError(ValueError):
    """Document has no ``metadata.id`` to store it under."""


class ArtifactRepository(ABC):
    """Source of truth for stored artifacts, partitioned by layer.

    Ids are unique within a layer only.  Storing under an existing id
    replaces the previous content.
    """

    @abstractmethod
    def list(self, layer: Layer) -> list[IndexEntry]: ...

    @abstractmethod
    def retrieve(self, layer: Layer, artifact_id: str) -> Artifact: ...

    @abstractmethod
    def retrieve_raw(self, layer: Layer, artifact_id: str) -> str: ...

    @abstractmethod
    def add(self, layer: Layer, artifact_id: str, artifact: Artifact) -> None: ...

    @abstractmethod
    def store_raw(self, layer: Layer, content: str) -> str: ...

    @property
    @abstractmethod
    def base_directory(self) -> Path: ...
