"""YAML/JSON loader with position tracking and input safety limits."""

from __future__ import annotations

import io
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ruamel.yaml import YAML
from ruamel.yaml.comments import CommentedMap, CommentedSeq

from gemara_authoring.models.errors import SourceSpan

# ---------------------------------------------------------------------------
# Safety limits
# ---------------------------------------------------------------------------

_MAX_DOCUMENT_SIZE = 5_000_000  # 5M characters
_MAX_NODE_COUNT = 50_000
_MAX_DEPTH = 20

# Anchor definitions (&name) at line start or after whitespace/sequence
# indicators.  Quoted strings are not excluded.
_ANCHOR_RE = re.compile(r"(?:^|[\s\-:])&(\w+)", re.MULTILINE)

SUPPORTED_SUFFIXES = (".yaml", ".yml", ".json")


class YAMLSafetyError(Exception):
    """Raised when YAML input violates safety constraints.

    Distinct from parse errors: these indicate potentially malicious input
    (billion-laughs anchors, excessive nesting, oversized documents).
    """


@dataclass
class SourceMap:
    """Maps document key paths to their source positions."""

    _positions: dict[str, SourceSpan] = field(default_factory=dict)

    def add(self, path: str, span: SourceSpan) -> None:
        self._positions[path] = span

    def get(self, path: str) -> SourceSpan | None:
        return self._positions.get(path)

    @property
    def paths(self) -> list[str]:
        return list(self._positions.keys())


class TrackedLoader:
    """Gemara document loader built on ruamel.yaml.

    JSON documents go through the same parser (JSON is valid YAML 1.2), so
    every supported format gets the same safety checks and source map.
    """

    def __init__(self) -> None:
        self._yaml = YAML()
        self._yaml.preserve_quotes = True
        self._yaml.max_depth = _MAX_DEPTH

    # -- safety checks -------------------------------------------------------

    @staticmethod
    def _check_yaml_safety(content: str) -> None:
        if len(content) > _MAX_DOCUMENT_SIZE:
            raise YAMLSafetyError(
                f"YAML document exceeds maximum size "
                f"({len(content):,} chars > {_MAX_DOCUMENT_SIZE:,} limit)"
            )
        if _ANCHOR_RE.search(content):
            raise YAMLSafetyError("YAML anchors/aliases are not supported in Gemara artifacts")

    @staticmethod
    def _check_node_count(data: Any, limit: int = _MAX_NODE_COUNT) -> None:
        count = 0
        stack: list[Any] = [data]
        while stack:
            node = stack.pop()
            count += 1
            if count > limit:
                raise YAMLSafetyError(f"YAML document exceeds maximum node count ({limit:,})")
            if isinstance(node, dict):
                stack.extend(node.values())
            elif isinstance(node, list):
                stack.extend(node)

    # -- public loading API --------------------------------------------------

    def load(self, path: Path) -> tuple[dict[str, Any], SourceMap]:
        """Load a ``.yaml``, ``.yml`` or ``.json`` file."""
        if path.suffix.lower() not in SUPPORTED_SUFFIXES:
            raise ValueError(
                f"Unsupported file type '{path.suffix}' (expected one of "
                f"{', '.join(SUPPORTED_SUFFIXES)})"
            )
        with path.open("r", encoding="utf-8") as handle:
            content = handle.read()
        return self.load_string(content, filename=str(path))

    def load_string(
        self, content: str, filename: str = "<string>"
    ) -> tuple[dict[str, Any], SourceMap]:
        """Parse a document held in memory.

        Raises ``ValueError`` when the top level is not a mapping.
        """
        self._check_yaml_safety(content)
        data = self._yaml.load(content)
        if data is None:
            return {}, SourceMap()
        if not isinstance(data, dict):
            raise ValueError(
                f"{filename}: expected a mapping at the document root, "
                f"got {type(data).__name__}"
            )
        self._check_node_count(data)
        source_map = SourceMap()
        self._extract_positions(data, filename, "", source_map)
        return self._to_plain_value(data), source_map

    def dump(self, data: Any) -> str:
        """Serialize plain dicts/lists as block-style YAML."""
        stream = io.StringIO()
        writer = YAML()
        writer.default_flow_style = False
        writer.width = 4096
        writer.dump(data, stream)
        return stream.getvalue()

    @staticmethod
    def extract_artifact_id(data: dict[str, Any]) -> str | None:
        """Return ``metadata.id`` when present and non-empty."""
        metadata = data.get("metadata")
        if not isinstance(metadata, dict):
            return None
        artifact_id = metadata.get("id")
        if artifact_id is None or artifact_id == "":
            return None
        return str(artifact_id)

    # -- helpers -------------------------------------------------------------

    def _extract_positions(
        self,
        data: Any,
        filename: str,
        prefix: str,
        source_map: SourceMap,
    ) -> None:
        """Walk the ruamel.yaml tree and record where each key and list item starts."""
        if isinstance(data, CommentedMap):
            children = [
                (f"{prefix}.{key}" if prefix else str(key), data[key], data.lc.key, key)
                for key in data
            ]
        elif isinstance(data, CommentedSeq):
            children = [
                (f"{prefix}[{i}]", item, data.lc.item, i) for i, item in enumerate(data)
            ]
        else:
            return
        for path, child, locate, handle in children:
            try:
                position = locate(handle)
            except (AttributeError, KeyError, TypeError):
                position = None
            if position:
                line, col = position
                source_map.add(path, SourceSpan(file=filename, line=line + 1, column=col + 1))
            self._extract_positions(child, filename, path, source_map)

    def _to_plain_value(self, data: Any) -> Any:
        """Convert ruamel.yaml CommentedMap/Seq (and scalars) to plain Python."""
        if isinstance(data, dict):
            return {str(k): self._to_plain_value(v) for k, v in data.items()}
        if isinstance(data, list):
            return [self._to_plain_value(item) for item in data]
        if isinstance(data, str):
            return str(data)
        if isinstance(data, bool):
            return bool(data)
        if isinstance(data, int):
            return int(data)
        if isinstance(data, float):
            return float(data)
        return data
