"""CUE schema retrieval and document validation."""

from gemara_authoring.schema.source import SchemaError, SchemaFetchError, SchemaSource
from gemara_authoring.schema.validator import (
    ConcretenessError,
    CueRunner,
    CueUnavailableError,
    CueValidator,
    UnificationError,
)

__all__ = [
    "ConcretenessError",
    "CueRunner",
    "CueUnavailableError",
    "CueValidator",
    "SchemaError",
    "SchemaFetchError",
    "SchemaSource",
    "UnificationError",
]
