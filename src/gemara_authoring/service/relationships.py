"""Cross-layer reference graph computed from the artifact cache.

References point downward (policy -> control -> guidance).  Every lookup is
an exhaustive scan over the cached artifacts; targets that do not exist are
reported as unresolved edges instead of errors, since documents are often
authored before the artifacts they reference.
"""

from __future__ import annotations

from typing import Any

from gemara_authoring.models.artifacts import Catalog, Control, GuidanceDocument, Layer, Policy
from gemara_authoring.models.relationships import ArtifactRelationships, ReferenceEdge
from gemara_authoring.service.cache import ArtifactCache
from gemara_authoring.storage.repository import ArtifactNotFoundError


class RelationshipResolver:
    """Builds ``ArtifactRelationships`` for guidance, control and policy ids."""

    def __init__(self, cache: ArtifactCache) -> None:
        self._cache = cache

    def resolve(self, artifact_id: str, layer: Layer) -> ArtifactRelationships:
        """Return the graph node for *artifact_id* in *layer*.

        Layer 2 ids are control ids, looked up across every catalog.  Raises
        ``ArtifactNotFoundError`` only when the artifact itself is unknown.
        """
        layer = Layer(layer)
        if layer is Layer.GUIDANCE:
            return self._resolve_guidance(artifact_id)
        if layer is Layer.CONTROLS:
            return self._resolve_control(artifact_id)
        if layer is Layer.POLICY:
            return self._resolve_policy(artifact_id)
        raise ValueError(f"Relationships are not tracked for {layer.label} artifacts")

    def find_control(self, control_id: str) -> tuple[str, Control] | None:
        """Locate a control by id; returns ``(catalog_id, control)``."""
        for catalog_id, catalog in self._cache.artifacts(Layer.CONTROLS):
            assert isinstance(catalog, Catalog)
            control = catalog.find_control(control_id)
            if control is not None:
                return catalog_id, control
        return None

    # -- per-layer -----------------------------------------------------------

    def _resolve_guidance(self, guidance_id: str) -> ArtifactRelationships:
        guidance = self._cache.get(Layer.GUIDANCE, guidance_id)
        assert isinstance(guidance, GuidanceDocument)

        referenced_by: list[ReferenceEdge] = []
        for catalog_id, catalog in self._cache.artifacts(Layer.CONTROLS):
            assert isinstance(catalog, Catalog)
            for _family, control in catalog.iter_controls():
                for mapping in control.guideline_mappings:
                    if mapping.reference_id != guidance_id:
                        continue
                    referenced_by.append(
                        ReferenceEdge(
                            source_id=control.id,
                            source_layer=Layer.CONTROLS,
                            target_id=guidance_id,
                            target_layer=Layer.GUIDANCE,
                            catalog_id=catalog_id,
                        )
                    )

        meta = guidance.metadata
        details: dict[str, Any] = {
            "author": meta.author_name,
            "version": meta.version,
            "document_type": meta.document_type,
            "guideline_count": guidance.guideline_count,
        }
        return ArtifactRelationships(
            artifact_id=guidance_id,
            layer=Layer.GUIDANCE,
            title=meta.title,
            references=[],
            referenced_by=referenced_by,
            details=details,
        )

    def _resolve_control(self, control_id: str) -> ArtifactRelationships:
        found = self.find_control(control_id)
        if found is None:
            raise ArtifactNotFoundError(Layer.CONTROLS, control_id)
        catalog_id, control = found

        references = [
            ReferenceEdge(
                source_id=control_id,
                source_layer=Layer.CONTROLS,
                target_id=mapping.reference_id,
                target_layer=Layer.GUIDANCE,
                resolved=self._cache.contains(Layer.GUIDANCE, mapping.reference_id),
                catalog_id=catalog_id,
            )
            for mapping in control.guideline_mappings
            if mapping.reference_id
        ]

        referenced_by: list[ReferenceEdge] = []
        for policy_id, policy in self._cache.artifacts(Layer.POLICY):
            assert isinstance(policy, Policy)
            for ref in policy.control_references:
                if ref.reference_id == control_id:
                    referenced_by.append(
                        ReferenceEdge(
                            source_id=policy_id,
                            source_layer=Layer.POLICY,
                            target_id=control_id,
                            target_layer=Layer.CONTROLS,
                            catalog_id=catalog_id,
                        )
                    )

        return ArtifactRelationships(
            artifact_id=control_id,
            layer=Layer.CONTROLS,
            title=control.title,
            references=references,
            referenced_by=referenced_by,
            details={"catalog_id": catalog_id, "objective": control.objective},
        )

    def _resolve_policy(self, policy_id: str) -> ArtifactRelationships:
        policy = self._cache.get(Layer.POLICY, policy_id)
        assert isinstance(policy, Policy)

        references: list[ReferenceEdge] = []
        for ref in policy.guidance_references:
            if not ref.reference_id:
                continue
            references.append(
                ReferenceEdge(
                    source_id=policy_id,
                    source_layer=Layer.POLICY,
                    target_id=ref.reference_id,
                    target_layer=Layer.GUIDANCE,
                    resolved=self._cache.contains(Layer.GUIDANCE, ref.reference_id),
                )
            )
        for ref in policy.control_references:
            if not ref.reference_id:
                continue
            found = self.find_control(ref.reference_id)
            references.append(
                ReferenceEdge(
                    source_id=policy_id,
                    source_layer=Layer.POLICY,
                    target_id=ref.reference_id,
                    target_layer=Layer.CONTROLS,
                    resolved=found is not None,
                    catalog_id=found[0] if found else None,
                )
            )

        meta = policy.metadata
        return ArtifactRelationships(
            artifact_id=policy_id,
            layer=Layer.POLICY,
            title=meta.title,
            references=references,
            referenced_by=[],
            details={
                "organization": meta.organization_id,
                "version": meta.version,
                "objective": meta.objective,
            },
        )
