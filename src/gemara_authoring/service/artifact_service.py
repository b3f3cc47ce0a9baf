"""Artifact service: the application context shared by the MCP tools.

Owns one schema source, validator, store, cache and relationship resolver
for the lifetime of the server.  Nothing here is module-global, so tests can
build as many independent services as they like.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx

from gemara_authoring.models.artifacts import (
    Artifact,
    Catalog,
    Control,
    ControlFamily,
    GuidanceDocument,
    IndexEntry,
    Layer,
    Policy,
    parse_artifact,
)
from gemara_authoring.models.errors import ValidationResult
from gemara_authoring.models.relationships import ArtifactRelationships
from gemara_authoring.parser.loader import TrackedLoader
from gemara_authoring.schema.source import SchemaSource
from gemara_authoring.schema.validator import CueRunner, CueValidator
from gemara_authoring.service.cache import ArtifactCache
from gemara_authoring.service.directory_loader import load_artifacts_dir
from gemara_authoring.service.relationships import RelationshipResolver
from gemara_authoring.service.suggestions import Suggestion, suggest_fixes
from gemara_authoring.settings import Settings
from gemara_authoring.storage.filesystem import FileArtifactStore
from gemara_authoring.storage.repository import (
    ArtifactNotFoundError,
    ArtifactRepository,
    MissingArtifactIdError,
    StorageError,
)

logger = logging.getLogger(__name__)


class ArtifactValidationError(ValueError):
    """A submitted document failed schema validation and was not stored."""

    def __init__(self, result: ValidationResult) -> None:
        super().__init__(result.error or "Schema validation failed")
        self.result = result


class StorageUnavailableError(RuntimeError):
    """The service was started without an artifact store."""


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class StoreResult:
    """Result of a validated store."""

    artifact_id: str
    layer: Layer
    validation: ValidationResult


@dataclass
class LoadResult:
    """Result of loading an artifact file into the service."""

    artifact_id: str
    layer: Layer
    title: str
    persisted: bool
    warnings: list[str] = field(default_factory=list)


@dataclass
class GuidanceSummary:
    guidance_id: str
    title: str
    description: str
    author: str
    version: str | None
    document_type: str | None
    guideline_count: int


@dataclass
class ControlSummary:
    control_id: str
    title: str
    objective: str
    catalog_id: str
    family_id: str
    guidance_references: list[str]


@dataclass
class PolicySummary:
    policy_id: str
    title: str
    objective: str | None
    organization: str | None
    version: str | None
    guidance_references: list[str]
    control_references: list[str]


@dataclass
class MappingDetail:
    """One guideline mapping of a control, with its entries."""

    reference_id: str
    resolved: bool
    entries: list[dict[str, Any]]
    remarks: str | None = None
    guidance: dict[str, Any] | None = None


@dataclass
class GuidelineMappings:
    control_id: str
    control_title: str
    catalog_id: str
    family_id: str
    mappings: list[MappingDetail]


@dataclass
class ApplicableArtifacts:
    guidance: list[GuidanceSummary]
    controls: list[ControlSummary]


# ---------------------------------------------------------------------------
# ArtifactService
# ---------------------------------------------------------------------------


def _matches(term: str, *values: str | None) -> bool:
    needle = term.lower()
    return any(needle in value.lower() for value in values if value)


def _overlaps(wanted: list[str], available: list[str]) -> bool:
    have = [a.lower() for a in available if a]
    return any(w.lower() in a or a in w.lower() for w in wanted if w for a in have)


class ArtifactService:
    """Validate-then-store entry point plus read, search and relationship queries."""

    def __init__(
        self,
        validator: CueValidator,
        store: ArtifactRepository | None = None,
        *,
        cache: ArtifactCache | None = None,
        loader: TrackedLoader | None = None,
        artifacts_dir: Path | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._validator = validator
        self._store = store
        self._cache = cache or ArtifactCache(store)
        self._loader = loader or TrackedLoader()
        self._resolver = RelationshipResolver(self._cache)
        self._artifacts_dir = artifacts_dir
        self._http = http_client

    @classmethod
    def from_settings(cls, settings: Settings) -> ArtifactService:
        """Wire up all components from configuration."""
        source = SchemaSource(settings.schema_base_url, timeout=settings.schema_fetch_timeout)
        validator = CueValidator(source, CueRunner(settings.cue_binary))
        store: ArtifactRepository | None = None
        if settings.storage_enabled:
            try:
                store = FileArtifactStore(settings.artifacts_dir)
            except StorageError as exc:
                logger.error("Artifact storage disabled: %s", exc)
        return cls(validator, store, artifacts_dir=settings.artifacts_dir)

    @property
    def store(self) -> ArtifactRepository | None:
        return self._store

    @property
    def cache(self) -> ArtifactCache:
        return self._cache

    @property
    def schema_source(self) -> SchemaSource:
        return self._validator.source

    def close(self) -> None:
        self._validator.source.close()
        if self._http is not None:
            self._http.close()

    # -- validation & storage ------------------------------------------------

    def validate(self, content: str, layer: Layer | int) -> ValidationResult:
        """Schema-validate a document without storing it."""
        return self._validator.validate(content, layer)

    def suggestions(self, result: ValidationResult) -> list[Suggestion]:
        return suggest_fixes(result, result.layer)

    def store_yaml(self, layer: Layer | int, content: str) -> StoreResult:
        """Validate *content* and, if valid, persist it byte-for-byte.

        Raises ``ArtifactValidationError`` (nothing is stored),
        ``MissingArtifactIdError``, ``StorageUnavailableError`` or ``StorageError``.
        """
        layer = Layer.parse(layer)
        if not layer.storable:
            raise ValueError(f"{layer.label} artifacts cannot be stored")

        result = self._validator.validate(content, layer)
        if not result.valid:
            raise ArtifactValidationError(result)

        data, _ = self._loader.load_string(content)
        if self._loader.extract_artifact_id(data) is None:
            raise MissingArtifactIdError("YAML content must include metadata.id")
        if self._store is None:
            raise StorageUnavailableError("Storage not available")

        artifact_id = self._store.store_raw(layer, content)
        self._cache.evict(layer, artifact_id)
        logger.info("Stored validated %s artifact '%s'", layer.label, artifact_id)
        return StoreResult(artifact_id=artifact_id, layer=layer, validation=result)

    def load_from_file(self, layer: Layer | int, location: str) -> LoadResult:
        """Load an artifact from a local path, ``file://`` URI or http(s) URL.

        The artifact becomes queryable immediately.  It is also written to the
        store when one is configured; a failed write is reported as a warning.
        """
        layer = Layer.parse(layer)
        if not layer.storable:
            raise ValueError(f"{layer.label} artifacts cannot be loaded")

        data = self._read_document(location)
        artifact_id = self._loader.extract_artifact_id(data)
        if artifact_id is None:
            raise MissingArtifactIdError(f"Loaded {layer.label} document missing metadata.id")
        artifact = parse_artifact(layer, data)

        self._cache.put(layer, artifact_id, artifact)
        warnings: list[str] = []
        persisted = False
        if self._store is not None:
            try:
                self._store.add(layer, artifact_id, artifact)
                persisted = True
            except StorageError as exc:
                logger.warning("Loaded '%s' but could not persist it: %s", artifact_id, exc)
                warnings.append(f"not persisted: {exc}")
        return LoadResult(
            artifact_id=artifact_id,
            layer=layer,
            title=artifact.metadata.title,
            persisted=persisted,
            warnings=warnings,
        )

    def load_artifacts_dir(self) -> dict[Layer, int]:
        """Bulk-load the configured artifacts directory into the cache."""
        if self._artifacts_dir is None or not self._artifacts_dir.is_dir():
            return {}
        return load_artifacts_dir(self._artifacts_dir, self._cache, self._loader)

    # -- generic reads -------------------------------------------------------

    def list_entries(self, layer: Layer) -> list[IndexEntry]:
        """Index entries for *layer*, including artifacts only held in memory."""
        entries = {e.id: e for e in self._store.list(layer)} if self._store else {}
        for artifact_id, artifact in self._cache.artifacts(layer):
            if artifact_id not in entries:
                entries[artifact_id] = IndexEntry(
                    id=artifact_id, layer=layer, title=artifact.metadata.title, path=""
                )
        return sorted(entries.values(), key=lambda e: e.id)

    def get_artifact(self, layer: Layer, artifact_id: str) -> Artifact:
        """Raises ``ArtifactNotFoundError`` if the id is unknown in *layer*."""
        return self._cache.get(layer, artifact_id)

    def get_document_text(self, layer: Layer, artifact_id: str) -> str:
        """Stored text when available, else the artifact re-serialized as YAML."""
        if self._store is not None:
            try:
                return self._store.retrieve_raw(layer, artifact_id)
            except ArtifactNotFoundError:
                pass
        artifact = self._cache.get(layer, artifact_id)
        return self._loader.dump(artifact.to_document())

    # -- layer 1 -------------------------------------------------------------

    def list_guidance(self) -> list[GuidanceSummary]:
        return [
            self._guidance_summary(gid, doc)
            for gid, doc in self._cache.artifacts(Layer.GUIDANCE)
            if isinstance(doc, GuidanceDocument)
        ]

    def search_guidance(self, term: str) -> list[GuidanceSummary]:
        """Case-insensitive match on title, description and author."""
        return [
            s
            for s in self.list_guidance()
            if _matches(term, s.title, s.description, s.author)
        ]

    # -- layer 2 -------------------------------------------------------------

    def list_controls(
        self, layer1_reference: str | None = None, technology: str | None = None
    ) -> list[ControlSummary]:
        """All controls across catalogs, optionally filtered.

        *layer1_reference* keeps controls with a guideline mapping to that
        guidance id; *technology* keeps controls whose catalog technology
        domains or assessment-requirement applicability mention it.
        """
        result: list[ControlSummary] = []
        for catalog_id, catalog, family, control in self._iter_controls():
            if layer1_reference and not control.references_guidance(layer1_reference):
                continue
            if technology and not self._control_matches_technology(catalog, control, technology):
                continue
            result.append(self._control_summary(catalog_id, family, control))
        return result

    def find_control(self, control_id: str) -> tuple[str, Control]:
        """Return ``(catalog_id, control)``.  Raises ``ArtifactNotFoundError``."""
        found = self._resolver.find_control(control_id)
        if found is None:
            raise ArtifactNotFoundError(Layer.CONTROLS, control_id)
        return found

    def search_controls(self, term: str, technology: str | None = None) -> list[ControlSummary]:
        """Case-insensitive match on control title, objective and id."""
        return [
            c
            for c in self.list_controls(technology=technology)
            if _matches(term, c.title, c.objective, c.control_id)
        ]

    def guideline_mappings(
        self, control_id: str, include_guidance_details: bool = False
    ) -> GuidelineMappings:
        catalog_id, control = self.find_control(control_id)
        catalog = self._cache.get(Layer.CONTROLS, catalog_id)
        family_id = ""
        if isinstance(catalog, Catalog):
            family_id = next(
                (fam.id for fam, ctrl in catalog.iter_controls() if ctrl.id == control_id), ""
            )

        mappings: list[MappingDetail] = []
        for mapping in control.guideline_mappings:
            guidance = self._optional(Layer.GUIDANCE, mapping.reference_id)
            entries: list[dict[str, Any]] = []
            for entry in mapping.entries:
                item: dict[str, Any] = {
                    "reference_id": entry.reference_id,
                    "strength": entry.strength,
                }
                if entry.remarks:
                    item["remarks"] = entry.remarks
                entries.append(item)
            detail = MappingDetail(
                reference_id=mapping.reference_id,
                resolved=guidance is not None,
                entries=entries,
                remarks=mapping.remarks,
            )
            if include_guidance_details and guidance is not None:
                detail.guidance = {
                    "id": mapping.reference_id,
                    "title": guidance.metadata.title,
                    "version": guidance.metadata.version,
                    "author": guidance.metadata.author_name,
                }
            mappings.append(detail)

        return GuidelineMappings(
            control_id=control_id,
            control_title=control.title,
            catalog_id=catalog_id,
            family_id=family_id,
            mappings=mappings,
        )

    # -- layer 3 -------------------------------------------------------------

    def list_policies(self) -> list[PolicySummary]:
        return [
            self._policy_summary(pid, policy)
            for pid, policy in self._cache.artifacts(Layer.POLICY)
            if isinstance(policy, Policy)
        ]

    def search_policies(self, term: str) -> list[PolicySummary]:
        """Case-insensitive match on policy title, objective and id."""
        return [
            p for p in self.list_policies() if _matches(term, p.title, p.objective, p.policy_id)
        ]

    # -- cross-layer ---------------------------------------------------------

    def relationships(self, artifact_id: str, layer: Layer | int) -> ArtifactRelationships:
        return self._resolver.resolve(artifact_id, Layer.parse(layer))

    def find_applicable_artifacts(
        self,
        boundaries: list[str] | None = None,
        technologies: list[str] | None = None,
        providers: list[str] | None = None,
    ) -> ApplicableArtifacts:
        """Guidance and controls whose applicability overlaps the given scope.

        Guidance matches on ``metadata.applicability`` (boundaries against
        jurisdictions, technologies against technology domains, providers
        against industry sectors).  Controls match when any assessment
        requirement's applicability mentions one of the scope values.
        """
        boundaries = boundaries or []
        technologies = technologies or []
        providers = providers or []
        if not (boundaries or technologies or providers):
            raise ValueError("Provide at least one of boundaries, technologies or providers")

        guidance: list[GuidanceSummary] = []
        for gid, doc in self._cache.artifacts(Layer.GUIDANCE):
            if not isinstance(doc, GuidanceDocument):
                continue
            scope = doc.metadata.applicability
            if scope is None:
                continue
            if (
                _overlaps(boundaries, scope.jurisdictions)
                or _overlaps(technologies, scope.technology_domains)
                or _overlaps(providers, scope.industry_sectors)
            ):
                guidance.append(self._guidance_summary(gid, doc))

        wanted = [*boundaries, *technologies, *providers]
        controls: list[ControlSummary] = []
        for catalog_id, _catalog, family, control in self._iter_controls():
            applicability = [
                item for req in control.assessment_requirements for item in req.applicability
            ]
            if _overlaps(wanted, applicability):
                controls.append(self._control_summary(catalog_id, family, control))
        return ApplicableArtifacts(guidance=guidance, controls=controls)

    # -- helpers -------------------------------------------------------------

    def _iter_controls(self) -> Iterator[tuple[str, Catalog, ControlFamily, Control]]:
        for catalog_id, catalog in self._cache.artifacts(Layer.CONTROLS):
            if not isinstance(catalog, Catalog):
                continue
            for family, control in catalog.iter_controls():
                yield catalog_id, catalog, family, control

    def _optional(self, layer: Layer, artifact_id: str) -> Any:
        if not artifact_id:
            return None
        try:
            return self._cache.get(layer, artifact_id)
        except ArtifactNotFoundError:
            return None

    def _read_document(self, location: str) -> dict[str, Any]:
        if location.startswith(("http://", "https://")):
            client = self._http or httpx.Client(timeout=30)
            if self._http is None:
                self._http = client
            try:
                resp = client.get(location)
                resp.raise_for_status()
            except httpx.HTTPError as exc:
                raise ValueError(f"Failed to fetch {location}: {exc}") from exc
            data, _ = self._loader.load_string(resp.text, filename=location)
            return data
        path = Path(location.removeprefix("file://"))
        if not path.is_file():
            raise FileNotFoundError(f"No such file: {path}")
        data, _ = self._loader.load(path)
        return data

    @staticmethod
    def _control_matches_technology(catalog: Catalog, control: Control, technology: str) -> bool:
        domains: list[str] = []
        if catalog.metadata.applicability is not None:
            domains.extend(catalog.metadata.applicability.technology_domains)
        for req in control.assessment_requirements:
            domains.extend(req.applicability)
        return _overlaps([technology], domains)

    @staticmethod
    def _guidance_summary(guidance_id: str, doc: GuidanceDocument) -> GuidanceSummary:
        meta = doc.metadata
        return GuidanceSummary(
            guidance_id=guidance_id,
            title=meta.title,
            description=meta.description,
            author=meta.author_name,
            version=meta.version,
            document_type=meta.document_type,
            guideline_count=doc.guideline_count,
        )

    @staticmethod
    def _control_summary(catalog_id: str, family: ControlFamily, control: Control) -> ControlSummary:
        return ControlSummary(
            control_id=control.id,
            title=control.title,
            objective=control.objective,
            catalog_id=catalog_id,
            family_id=family.id,
            guidance_references=[
                m.reference_id for m in control.guideline_mappings if m.reference_id
            ],
        )

    @staticmethod
    def _policy_summary(policy_id: str, policy: Policy) -> PolicySummary:
        meta = policy.metadata
        return PolicySummary(
            policy_id=policy_id,
            title=meta.title,
            objective=meta.objective,
            organization=meta.organization_id,
            version=meta.version,
            guidance_references=[r.reference_id for r in policy.guidance_references if r.reference_id],
            control_references=[r.reference_id for r in policy.control_references if r.reference_id],
        )
