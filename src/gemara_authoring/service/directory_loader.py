"""Bulk loading of an artifacts tree (``layer1/``, ``layer2/``, ``layer3/``) into the cache."""

from __future__ import annotations

import logging
from pathlib import Path

from gemara_authoring.models.artifacts import Layer, parse_artifact
from gemara_authoring.parser.loader import TrackedLoader
from gemara_authoring.service.cache import ArtifactCache

logger = logging.getLogger(__name__)

# Layer 1 guidance is YAML only; catalogs and policies may also be JSON.
LAYER_SUFFIXES: dict[Layer, tuple[str, ...]] = {
    Layer.GUIDANCE: (".yaml", ".yml"),
    Layer.CONTROLS: (".yaml", ".yml", ".json"),
    Layer.POLICY: (".yaml", ".yml", ".json"),
}


def load_artifacts_dir(
    root: Path, cache: ArtifactCache, loader: TrackedLoader | None = None
) -> dict[Layer, int]:
    """Parse every artifact file under *root* into *cache*.

    Each file is loaded on its own; files that fail to parse, lack
    ``metadata.id`` or do not fit the layer's model are skipped.  Ids the
    cache's store already indexes are skipped too: the store's copy is served
    through fill-on-miss instead.  Returns the number of artifacts loaded per
    layer.
    """
    loader = loader or TrackedLoader()
    store = cache.store
    counts: dict[Layer, int] = {}
    for layer, suffixes in LAYER_SUFFIXES.items():
        counts[layer] = 0
        stored = {entry.id for entry in store.list(layer)} if store is not None else set()
        layer_dir = root / layer.dir_name
        if not layer_dir.is_dir():
            continue
        for path in sorted(layer_dir.iterdir()):
            if path.suffix.lower() not in suffixes or not path.is_file():
                continue
            try:
                data, _ = loader.load(path)
                artifact_id = loader.extract_artifact_id(data)
                if artifact_id is None:
                    logger.debug("Skipping %s: no metadata.id", path)
                    continue
                if artifact_id in stored:
                    logger.debug("Skipping %s: '%s' is already stored", path, artifact_id)
                    continue
                artifact = parse_artifact(layer, data)
            except Exception as exc:
                logger.debug("Skipping %s: %s", path, exc)
                continue
            cache.put(layer, artifact_id, artifact)
            counts[layer] += 1
    logger.info(
        "Loaded artifacts from %s: %s",
        root,
        ", ".join(f"{layer.dir_name}={n}" for layer, n in counts.items()),
    )
    return counts
