"""YAML/JSON parsing with line fidelity for Gemara artifacts."""

from gemara_authoring.parser.loader import SourceMap, TrackedLoader, YAMLSafetyError

__all__ = [
    "SourceMap",
    "TrackedLoader",
    "YAMLSafetyError",
]
