"""Document ingestion pipeline interface (source document -> layer 1 guidance).

Concrete pipelines (PDF extraction, segmentation heuristics, ...) live
outside this package.  They plug in by implementing ``IngestionPipeline``;
``ingest_document`` runs the stages in order, times them, and then
schema-validates the converted guidance like any other submission.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from gemara_authoring.models.artifacts import GuidanceDocument, Layer
from gemara_authoring.models.errors import ValidationResult
from gemara_authoring.parser.loader import TrackedLoader
from gemara_authoring.schema.validator import CueValidator


@dataclass
class StructureError:
    path: str
    message: str
    value: Any = None


@dataclass
class StructureReport:
    """Result of a pipeline's own structural checks on the converted document."""

    valid: bool
    errors: list[StructureError] = field(default_factory=list)


class IngestionPipeline(Protocol):
    def parse(self, path: Path) -> Any: ...

    def segment(self, parsed: Any) -> Any: ...

    def convert(self, segmented: Any) -> GuidanceDocument: ...

    def validate_structure(self, document: GuidanceDocument) -> StructureReport: ...


@dataclass
class IngestionResult:
    """Converted guidance plus both validation outcomes and per-stage timings."""

    path: Path
    document: GuidanceDocument
    structure: StructureReport
    schema: ValidationResult
    timings_ms: dict[str, float]

    @property
    def valid(self) -> bool:
        return self.structure.valid and self.schema.valid


def ingest_document(
    pipeline: IngestionPipeline,
    path: Path,
    validator: CueValidator,
    loader: TrackedLoader | None = None,
) -> IngestionResult:
    """Run parse, segment, convert and validate_structure, then schema validation.

    Stage exceptions propagate to the caller unchanged.
    """
    loader = loader or TrackedLoader()
    timings: dict[str, float] = {}

    def _timed(stage: str, fn: Any, arg: Any) -> Any:
        start = time.perf_counter()
        try:
            return fn(arg)
        finally:
            timings[stage] = (time.perf_counter() - start) * 1000

    parsed = _timed("parse", pipeline.parse, path)
    segmented = _timed("segment", pipeline.segment, parsed)
    document = _timed("convert", pipeline.convert, segmented)
    structure = _timed("validate_structure", pipeline.validate_structure, document)
    schema = _timed(
        "schema",
        lambda doc: validator.validate(loader.dump(doc.to_document()), Layer.GUIDANCE),
        document,
    )

    return IngestionResult(
        path=path,
        document=document,
        structure=structure,
        schema=schema,
        timings_ms=timings,
    )
