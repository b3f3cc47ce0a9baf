"""Gemara artifact types for layers 1-3 plus the layer enumeration.

Field names follow the kebab-case keys used in Gemara YAML (``control-families``,
``guideline-mappings``, ...) through aliases.  Unknown keys are kept so a
document survives a parse/serialize cycle without losing content the models
do not describe.
"""

from __future__ import annotations

from collections.abc import Iterator
from enum import IntEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class Layer(IntEnum):
    GUIDANCE = 1
    CONTROLS = 2
    POLICY = 3
    EVALUATION = 4

    @property
    def label(self) -> str:
        return f"Layer {self.value}"

    @property
    def dir_name(self) -> str:
        """Directory holding this layer's documents in an artifacts tree."""
        return f"layer{self.value}"

    @property
    def schema_name(self) -> str:
        return f"layer-{self.value}"

    @property
    def definition(self) -> str:
        """CUE definition a document of this layer must satisfy."""
        return _DEFINITIONS[self]

    @property
    def storable(self) -> bool:
        return self is not Layer.EVALUATION

    @classmethod
    def parse(cls, value: int | str) -> Layer:
        """Accept ``2``, ``"2"``, ``"layer2"`` or ``"layer-2"``."""
        try:
            if isinstance(value, int):
                return cls(value)
            text = value.strip().lower().removeprefix("layer").removeprefix("-").strip()
            return cls(int(text))
        except ValueError:
            raise ValueError(f"layer must be between 1 and 4, got {value!r}") from None


_DEFINITIONS: dict[Layer, str] = {
    Layer.GUIDANCE: "#GuidanceDocument",
    Layer.CONTROLS: "#Catalog",
    Layer.POLICY: "#Policy",
    Layer.EVALUATION: "#EvaluationLog",
}

STORABLE_LAYERS: tuple[Layer, ...] = (Layer.GUIDANCE, Layer.CONTROLS, Layer.POLICY)


class GemaraModel(BaseModel):
    """Base for all document models: alias-aware and lossless on unknown keys."""

    model_config = {"populate_by_name": True, "extra": "allow"}

    def to_document(self) -> dict[str, Any]:
        """Plain dict using the YAML key names, suitable for serialization."""
        return self.model_dump(by_alias=True, exclude_unset=True, mode="json")


# ---------------------------------------------------------------------------
# Shared metadata
# ---------------------------------------------------------------------------


class Applicability(GemaraModel):
    jurisdictions: list[str] = []
    technology_domains: list[str] = Field([], alias="technology-domains")
    industry_sectors: list[str] = Field([], alias="industry-sectors")


class Metadata(GemaraModel):
    """The ``metadata`` block every artifact carries."""

    id: str = ""
    title: str = ""
    description: str = ""
    author: str | dict[str, Any] | None = None
    version: str | None = None
    document_type: str | None = Field(None, alias="document-type")
    applicability: Applicability | None = None
    organization_id: str | None = Field(None, alias="organization-id")
    objective: str | None = None

    @field_validator("version", mode="before")
    @classmethod
    def _version_as_text(cls, value: Any) -> Any:
        # YAML reads ``version: 1.0`` as a float
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @property
    def author_name(self) -> str:
        if isinstance(self.author, dict):
            return str(self.author.get("name") or self.author.get("id") or "")
        return self.author or ""


# ---------------------------------------------------------------------------
# Layer 1: guidance
# ---------------------------------------------------------------------------


class Guideline(GemaraModel):
    id: str = ""
    title: str = ""
    objective: str | None = None


class Category(GemaraModel):
    id: str = ""
    title: str = ""
    description: str | None = None
    guidelines: list[Guideline] = []


class GuidanceDocument(GemaraModel):
    metadata: Metadata = Metadata()
    categories: list[Category] = []

    @property
    def guideline_count(self) -> int:
        return sum(len(category.guidelines) for category in self.categories)


# ---------------------------------------------------------------------------
# Layer 2: control catalogs
# ---------------------------------------------------------------------------


class MappingEntry(GemaraModel):
    reference_id: str = Field("", alias="reference-id")
    strength: int = 0
    remarks: str | None = None


class Mapping(GemaraModel):
    """A reference to another artifact, optionally narrowed to entries inside it."""

    reference_id: str = Field("", alias="reference-id")
    entries: list[MappingEntry] = []
    remarks: str | None = None


class AssessmentRequirement(GemaraModel):
    id: str = ""
    text: str = ""
    applicability: list[str] = []


class Control(GemaraModel):
    id: str = ""
    title: str = ""
    objective: str = ""
    guideline_mappings: list[Mapping] = Field([], alias="guideline-mappings")
    assessment_requirements: list[AssessmentRequirement] = Field(
        [], alias="assessment-requirements"
    )

    def references_guidance(self, guidance_id: str) -> bool:
        return any(m.reference_id == guidance_id for m in self.guideline_mappings)


class ControlFamily(GemaraModel):
    id: str = ""
    title: str = ""
    description: str | None = None
    controls: list[Control] = []


class Catalog(GemaraModel):
    metadata: Metadata = Metadata()
    control_families: list[ControlFamily] = Field([], alias="control-families")

    def iter_controls(self) -> Iterator[tuple[ControlFamily, Control]]:
        for family in self.control_families:
            for control in family.controls:
                yield family, control

    def find_control(self, control_id: str) -> Control | None:
        for _family, control in self.iter_controls():
            if control.id == control_id:
                return control
        return None


# ---------------------------------------------------------------------------
# Layer 3: policy
# ---------------------------------------------------------------------------


class Policy(GemaraModel):
    metadata: Metadata = Metadata()
    guidance_references: list[Mapping] = Field([], alias="guidance-references")
    control_references: list[Mapping] = Field([], alias="control-references")

    def references_control(self, control_id: str) -> bool:
        return any(ref.reference_id == control_id for ref in self.control_references)


Artifact = GuidanceDocument | Catalog | Policy

ARTIFACT_TYPES: dict[Layer, type[GuidanceDocument] | type[Catalog] | type[Policy]] = {
    Layer.GUIDANCE: GuidanceDocument,
    Layer.CONTROLS: Catalog,
    Layer.POLICY: Policy,
}


def parse_artifact(layer: Layer, data: dict[str, Any]) -> Artifact:
    """Build the typed artifact for *layer* from a parsed document dict."""
    try:
        model_cls = ARTIFACT_TYPES[layer]
    except KeyError:
        raise ValueError(f"{layer.label} artifacts cannot be stored") from None
    return model_cls.model_validate(data)


class IndexEntry(BaseModel):
    """Lightweight catalog record kept alongside stored content."""

    id: str
    layer: int
    title: str = ""
    path: str
