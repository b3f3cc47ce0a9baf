"""Directory-backed artifact store with a JSON index.

Layout under the base directory::

    index.json
    layer1/<id>.yaml
    layer2/<id>.yaml
    layer3/<id>.yaml

Writes put the content file in place first and then replace ``index.json``.
A crash in between leaves a content file the index does not know about;
``rebuild_index()`` (run automatically when the index is missing or
unreadable) recovers it by rescanning the layer directories.
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
import threading
from pathlib import Path

from pydantic import BaseModel, ValidationError

from gemara_authoring.models.artifacts import (
    STORABLE_LAYERS,
    Artifact,
    IndexEntry,
    Layer,
    parse_artifact,
)
from gemara_authoring.parser.loader import SUPPORTED_SUFFIXES, TrackedLoader
from gemara_authoring.storage.repository import (
    ArtifactNotFoundError,
    ArtifactRepository,
    MissingArtifactIdError,
    StorageError,
)

logger = logging.getLogger(__name__)

INDEX_FILE = "index.json"
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class _IndexFile(BaseModel):
    version: int = 1
    artifacts: list[IndexEntry] = []


def _filename_for(artifact_id: str, *, long_digest: bool = False) -> str:
    """Filesystem-safe file name for an artifact id.

    Ids that need sanitizing get a short sha256 suffix.  ``long_digest``
    forces a longer suffix, used when the short name is already taken by
    another id.
    """
    safe = _UNSAFE_CHARS.sub("_", artifact_id).lstrip(".")
    if long_digest or safe != artifact_id or not safe:
        digest = hashlib.sha256(artifact_id.encode("utf-8")).hexdigest()
        safe = f"{safe or 'artifact'}-{digest[:16] if long_digest else digest[:8]}"
    return f"{safe}.yaml"


class FileArtifactStore(ArtifactRepository):
    """Persists artifacts as individual files.  Thread-safe via ``threading.Lock``."""

    def __init__(self, base_dir: Path | str, loader: TrackedLoader | None = None) -> None:
        self._base = Path(base_dir)
        self._loader = loader or TrackedLoader()
        self._lock = threading.Lock()
        try:
            for layer in STORABLE_LAYERS:
                (self._base / layer.dir_name).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Cannot create artifact directory {self._base}: {exc}") from exc
        self._index: dict[Layer, dict[str, IndexEntry]] = {
            layer: {} for layer in STORABLE_LAYERS
        }
        self._open_index()

    @property
    def base_directory(self) -> Path:
        return self._base

    @property
    def index_path(self) -> Path:
        return self._base / INDEX_FILE

    # -- reads ---------------------------------------------------------------

    def list(self, layer: Layer) -> list[IndexEntry]:
        layer = self._require_storable(layer)
        with self._lock:
            entries = list(self._index[layer].values())
        return sorted(entries, key=lambda e: e.id)

    def retrieve_raw(self, layer: Layer, artifact_id: str) -> str:
        """Return the stored text exactly as it was written."""
        layer = self._require_storable(layer)
        with self._lock:
            entry = self._index[layer].get(artifact_id)
        if entry is None:
            raise ArtifactNotFoundError(layer, artifact_id)
        path = self._base / entry.path
        try:
            with path.open("r", encoding="utf-8", newline="") as handle:
                return handle.read()
        except OSError as exc:
            raise StorageError(f"Cannot read {path}: {exc}") from exc

    def retrieve(self, layer: Layer, artifact_id: str) -> Artifact:
        layer = self._require_storable(layer)
        raw = self.retrieve_raw(layer, artifact_id)
        try:
            data, _ = self._loader.load_string(raw, filename=f"{layer.dir_name}/{artifact_id}")
            return parse_artifact(layer, data)
        except (ValueError, ValidationError) as exc:
            raise StorageError(
                f"Stored {layer.label} artifact '{artifact_id}' is unreadable: {exc}"
            ) from exc

    # -- writes --------------------------------------------------------------

    def store_raw(self, layer: Layer, content: str) -> str:
        """Persist *content* byte-for-byte under its ``metadata.id``; return the id."""
        layer = self._require_storable(layer)
        try:
            data, _ = self._loader.load_string(content)
        except Exception as exc:
            raise MissingArtifactIdError(
                f"Failed to parse document to extract metadata.id: {exc}"
            ) from exc
        artifact_id = self._loader.extract_artifact_id(data)
        if artifact_id is None:
            raise MissingArtifactIdError("Document must include metadata.id")
        metadata = data.get("metadata") or {}
        self._write(layer, artifact_id, str(metadata.get("title") or ""), content)
        return artifact_id

    def add(self, layer: Layer, artifact_id: str, artifact: Artifact) -> None:
        """Serialize a structured artifact and persist it under *artifact_id*."""
        layer = self._require_storable(layer)
        if not artifact_id:
            raise MissingArtifactIdError("Artifact id must not be empty")
        content = self._loader.dump(artifact.to_document())
        self._write(layer, artifact_id, artifact.metadata.title, content)

    def rebuild_index(self) -> int:
        """Recreate ``index.json`` from the layer directories; return the entry count."""
        with self._lock:
            rebuilt: dict[Layer, dict[str, IndexEntry]] = {}
            for layer in STORABLE_LAYERS:
                rebuilt[layer] = self._scan_layer(layer)
            self._index = rebuilt
            self._persist_index()
            total = sum(len(entries) for entries in rebuilt.values())
        logger.info("Rebuilt artifact index at %s (%d entries)", self.index_path, total)
        return total

    # -- helpers -------------------------------------------------------------

    @staticmethod
    def _require_storable(layer: Layer | int) -> Layer:
        layer = Layer(layer)
        if not layer.storable:
            raise ValueError(f"{layer.label} artifacts cannot be stored")
        return layer

    def _relative_path(self, layer: Layer, artifact_id: str) -> str:
        """Pick a file name no other indexed id uses.  Caller holds the lock."""
        taken = {e.path for aid, e in self._index[layer].items() if aid != artifact_id}
        for long_digest in (False, True):
            rel_path = f"{layer.dir_name}/{_filename_for(artifact_id, long_digest=long_digest)}"
            if rel_path not in taken:
                return rel_path
        raise StorageError(f"No free file name for {layer.label} artifact '{artifact_id}'")

    def _write(self, layer: Layer, artifact_id: str, title: str, content: str) -> None:
        with self._lock:
            rel_path = self._relative_path(layer, artifact_id)
            path = self._base / rel_path
            previous = self._index[layer].get(artifact_id)
            try:
                with path.open("w", encoding="utf-8", newline="") as handle:
                    handle.write(content)
            except OSError as exc:
                raise StorageError(f"Cannot write {path}: {exc}") from exc
            if previous is not None and previous.path != rel_path:
                (self._base / previous.path).unlink(missing_ok=True)
            self._index[layer][artifact_id] = IndexEntry(
                id=artifact_id, layer=layer, title=title, path=rel_path
            )
            self._persist_index()
        logger.info("Stored %s artifact '%s' at %s", layer.label, artifact_id, rel_path)

    def _persist_index(self) -> None:
        """Write the in-memory index to disk.  Caller holds the lock."""
        entries = [
            entry
            for layer in STORABLE_LAYERS
            for entry in sorted(self._index[layer].values(), key=lambda e: e.id)
        ]
        payload = _IndexFile(artifacts=entries).model_dump_json(indent=2)
        tmp_path = self.index_path.with_suffix(".json.tmp")
        try:
            tmp_path.write_text(payload, encoding="utf-8")
            os.replace(tmp_path, self.index_path)
        except OSError as exc:
            raise StorageError(f"Cannot write index {self.index_path}: {exc}") from exc

    def _open_index(self) -> None:
        if not self.index_path.exists():
            self.rebuild_index()
            return
        try:
            index = _IndexFile.model_validate_json(self.index_path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as exc:
            logger.warning("Artifact index %s is unreadable (%s); rebuilding", self.index_path, exc)
            self.rebuild_index()
            return
        for entry in index.artifacts:
            try:
                layer = Layer(entry.layer)
            except ValueError:
                logger.warning("Ignoring index entry '%s' with unknown layer %s", entry.id, entry.layer)
                continue
            if layer in self._index:
                self._index[layer][entry.id] = entry

    def _scan_layer(self, layer: Layer) -> dict[str, IndexEntry]:
        entries: dict[str, IndexEntry] = {}
        layer_dir = self._base / layer.dir_name
        for path in sorted(layer_dir.iterdir()):
            if path.suffix.lower() not in SUPPORTED_SUFFIXES or not path.is_file():
                continue
            try:
                data, _ = self._loader.load(path)
            except Exception as exc:
                logger.warning("Skipping unreadable artifact file %s: %s", path, exc)
                continue
            artifact_id = self._loader.extract_artifact_id(data)
            if artifact_id is None:
                logger.warning("Skipping %s: no metadata.id", path)
                continue
            metadata = data.get("metadata") or {}
            entries[artifact_id] = IndexEntry(
                id=artifact_id,
                layer=layer,
                title=str(metadata.get("title") or ""),
                path=f"{layer.dir_name}/{path.name}",
            )
        return entries
