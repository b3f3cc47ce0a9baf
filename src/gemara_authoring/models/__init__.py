"""Pydantic domain models for Gemara artifacts and validation results."""

from gemara_authoring.models.artifacts import (
    Artifact,
    Catalog,
    Control,
    ControlFamily,
    GuidanceDocument,
    IndexEntry,
    Layer,
    Mapping,
    MappingEntry,
    Metadata,
    Policy,
)
from gemara_authoring.models.errors import SchemaDiagnostic, SourceSpan, ValidationResult
from gemara_authoring.models.relationships import ArtifactRelationships, ReferenceEdge

__all__ = [
    "Artifact",
    "ArtifactRelationships",
    "Catalog",
    "Control",
    "ControlFamily",
    "GuidanceDocument",
    "IndexEntry",
    "Layer",
    "Mapping",
    "MappingEntry",
    "Metadata",
    "Policy",
    "ReferenceEdge",
    "SchemaDiagnostic",
    "SourceSpan",
    "ValidationResult",
]
