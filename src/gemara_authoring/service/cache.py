"""In-memory, per-layer view of stored artifacts (cache-aside over the store)."""

from __future__ import annotations

import logging
import threading

from gemara_authoring.models.artifacts import STORABLE_LAYERS, Artifact, Layer
from gemara_authoring.storage.repository import (
    ArtifactNotFoundError,
    ArtifactRepository,
    StorageError,
)

logger = logging.getLogger(__name__)


class ArtifactCache:
    """Per-layer ``id -> artifact`` maps filled from the store on first read.

    The store stays the source of truth.  Entries are never expired; writers
    that go through ``ArtifactService`` evict the id they replace, so a stale
    entry can only come from a write made to the store behind the cache's back.
    Without a store, entries exist only once ``put`` has been called.
    """

    def __init__(self, store: ArtifactRepository | None = None) -> None:
        self._store = store
        self._lock = threading.Lock()
        self._entries: dict[Layer, dict[str, Artifact]] = {layer: {} for layer in STORABLE_LAYERS}

    @property
    def store(self) -> ArtifactRepository | None:
        return self._store

    def get(self, layer: Layer, artifact_id: str) -> Artifact:
        """Return the artifact, reading through to the store on a miss.

        Raises ``ArtifactNotFoundError`` if neither the cache nor the store has it.
        """
        with self._lock:
            cached = self._entries[layer].get(artifact_id)
        if cached is not None:
            return cached
        if self._store is None:
            raise ArtifactNotFoundError(layer, artifact_id)

        artifact = self._store.retrieve(layer, artifact_id)
        logger.debug("Cache fill: %s '%s'", layer.label, artifact_id)
        with self._lock:
            return self._entries[layer].setdefault(artifact_id, artifact)

    def contains(self, layer: Layer, artifact_id: str) -> bool:
        """Whether *artifact_id* can be served; unreadable stored files count as absent."""
        try:
            self.get(layer, artifact_id)
        except ArtifactNotFoundError:
            return False
        except StorageError as exc:
            logger.warning("Treating %s artifact '%s' as absent: %s", layer.label, artifact_id, exc)
            return False
        return True

    def put(self, layer: Layer, artifact_id: str, artifact: Artifact) -> None:
        with self._lock:
            self._entries[layer][artifact_id] = artifact

    def evict(self, layer: Layer, artifact_id: str) -> None:
        with self._lock:
            self._entries[layer].pop(artifact_id, None)

    def clear(self) -> None:
        with self._lock:
            for entries in self._entries.values():
                entries.clear()

    def artifacts(self, layer: Layer) -> list[tuple[str, Artifact]]:
        """Every known artifact of *layer* as ``(id, artifact)`` pairs.

        Stored artifacts come first in id order, followed by cache-only
        entries.  Stored files that cannot be read are logged and skipped.
        """
        result: list[tuple[str, Artifact]] = []
        seen: set[str] = set()
        if self._store is not None:
            for entry in self._store.list(layer):
                try:
                    result.append((entry.id, self.get(layer, entry.id)))
                except (ArtifactNotFoundError, StorageError) as exc:
                    logger.warning("Skipping %s artifact '%s': %s", layer.label, entry.id, exc)
                    continue
                seen.add(entry.id)
        with self._lock:
            extras = sorted(
                ((aid, art) for aid, art in self._entries[layer].items() if aid not in seen),
                key=lambda pair: pair[0],
            )
        result.extend(extras)
        return result
