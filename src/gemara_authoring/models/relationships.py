"""Derived cross-layer reference graph nodes (computed on demand, never stored)."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from gemara_authoring.models.artifacts import Layer


class ReferenceEdge(BaseModel):
    """A directed reference between two artifacts.

    ``resolved`` is ``False`` when the target id was not found in its layer at
    query time.  Layer 2 endpoints are control ids; ``catalog_id`` names the
    catalog holding the control when it is known.
    """

    source_id: str
    source_layer: Layer
    target_id: str
    target_layer: Layer
    resolved: bool = True
    catalog_id: str | None = None

    @property
    def target_label(self) -> str:
        if not self.resolved:
            return f"{self.target_id} ({self.target_layer.label} - NOT FOUND)"
        return f"{self.target_id} ({self.target_layer.label})"

    @property
    def source_label(self) -> str:
        return f"{self.source_id} ({self.source_layer.label})"


class ArtifactRelationships(BaseModel):
    """Graph node for one artifact: what it references and what references it."""

    artifact_id: str
    layer: Layer
    title: str = ""
    references: list[ReferenceEdge] = []
    referenced_by: list[ReferenceEdge] = []
    details: dict[str, Any] = {}

    @property
    def reference_labels(self) -> list[str]:
        return [edge.target_label for edge in self.references]

    @property
    def referenced_by_labels(self) -> list[str]:
        return [edge.source_label for edge in self.referenced_by]

    def summary(self) -> dict[str, Any]:
        """Flat, label-based view used for YAML/JSON tool output."""
        return {
            "artifact_id": self.artifact_id,
            "artifact_type": self.layer.dir_name,
            "title": self.title,
            "references": self.reference_labels,
            "referenced_by": self.referenced_by_labels,
            "details": self.details,
        }
