"""Schema validation of candidate documents by delegating to the ``cue`` CLI.

A layer schema is the composition of the shared fragments (``base``,
``metadata``, ``mapping``) with ``layer-<N>``.  Validation happens in two
passes over the same temporary package:

1. **Unification**: ``cue vet -d <definition>`` checks the document can be
   unified with the layer definition (shape and types).
2. **Concreteness**: ``cue vet -c -d <definition>`` additionally requires
   every field the schema demands to be present with a concrete value.

Failures from either pass come back as a ``ValidationResult``; the validator
never raises for a bad document and never touches the artifact store.
"""

from __future__ import annotations

import logging
import re
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path

from gemara_authoring.models.artifacts import Layer
from gemara_authoring.models.errors import SchemaDiagnostic, SourceSpan, ValidationResult
from gemara_authoring.parser.loader import SourceMap, TrackedLoader, YAMLSafetyError
from gemara_authoring.schema.source import SchemaError, SchemaFetchError, SchemaSource

logger = logging.getLogger(__name__)

DATA_FILE = "data.yaml"

# Failure codes reported in ValidationResult.failure / SchemaDiagnostic.code
YAML_PARSE_ERROR = "YAML_PARSE_ERROR"
YAML_SAFETY_ERROR = "YAML_SAFETY_ERROR"
SCHEMA_FETCH_ERROR = "SCHEMA_FETCH_ERROR"
UNIFICATION_ERROR = "UNIFICATION_ERROR"
CONCRETENESS_ERROR = "CONCRETENESS_ERROR"
CUE_UNAVAILABLE = "CUE_UNAVAILABLE"

# Messages cue uses for values that unify but are not (yet) concrete.
_INCOMPLETE_MARKERS = (
    "incomplete value",
    "required but not present",
    "non-concrete value",
    "missing required field",
    "instances are incomplete",
)

_POSITION_RE = re.compile(r"^\s+(?P<file>\S+?):(?P<line>\d+):(?P<column>\d+)\s*$")
_PATH_RE = re.compile(r"^(?P<path>[#\w.\-\[\]\"]+):\s+(?P<message>.+?):?\s*$")


class CueUnavailableError(SchemaError):
    """The ``cue`` binary is missing or did not finish."""


class SchemaViolationError(SchemaError):
    """The document does not satisfy the composed schema."""

    code = UNIFICATION_ERROR

    def __init__(self, message: str, diagnostics: list[SchemaDiagnostic]) -> None:
        super().__init__(message)
        self.diagnostics = diagnostics


class UnificationError(SchemaViolationError):
    """Document shape or types are incompatible with the layer definition."""

    code = UNIFICATION_ERROR


class ConcretenessError(SchemaViolationError):
    """Document unifies but leaves required fields absent or unresolved."""

    code = CONCRETENESS_ERROR


# ---------------------------------------------------------------------------
# cue subprocess wrapper
# ---------------------------------------------------------------------------


@dataclass
class CueRun:
    """Outcome of one ``cue`` invocation."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CueRunner:
    """Runs ``cue vet`` over a set of files in a working directory."""

    def __init__(self, binary: str = "cue", timeout: float = 60.0) -> None:
        self.binary = binary
        self.timeout = timeout

    def vet(
        self, files: list[str], definition: str, *, concrete: bool, cwd: Path
    ) -> CueRun:
        args = [self.binary, "vet"]
        if concrete:
            args.append("-c")
        args.extend(["-d", definition, *files])
        logger.debug("Running %s in %s", " ".join(args), cwd)
        try:
            proc = subprocess.run(
                args,
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            raise CueUnavailableError(
                f"cue binary '{self.binary}' not found; install it from https://cuelang.org"
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise CueUnavailableError(
                f"cue vet did not finish within {self.timeout:g}s"
            ) from exc
        return CueRun(returncode=proc.returncode, stdout=proc.stdout, stderr=proc.stderr)


def parse_cue_errors(output: str, code: str) -> list[SchemaDiagnostic]:
    """Split ``cue`` error output into diagnostics.

    An unindented line opens a diagnostic (``path: message`` when a path is
    present); the indented ``file:line:col`` lines below it are its positions.
    """
    diagnostics: list[SchemaDiagnostic] = []
    for raw_line in output.splitlines():
        if not raw_line.strip():
            continue
        pos = _POSITION_RE.match(raw_line)
        if pos and diagnostics:
            diagnostics[-1].spans.append(
                SourceSpan(
                    file=pos.group("file").removeprefix("./"),
                    line=int(pos.group("line")),
                    column=int(pos.group("column")),
                )
            )
            continue
        if raw_line[0].isspace() and diagnostics:
            # continuation of a wrapped message
            diagnostics[-1].message += " " + raw_line.strip()
            continue
        match = _PATH_RE.match(raw_line)
        if match:
            diagnostics.append(
                SchemaDiagnostic(code=code, message=match.group("message"), path=match.group("path"))
            )
        else:
            diagnostics.append(SchemaDiagnostic(code=code, message=raw_line.strip().rstrip(":")))
    return diagnostics


def _document_path(cue_path: str) -> str:
    """``controls.0."reference-id"`` -> ``controls[0].reference-id``."""
    result = ""
    for segment in cue_path.split("."):
        segment = segment.strip('"')
        if segment.isdigit() and result:
            result += f"[{segment}]"
        else:
            result = f"{result}.{segment}" if result else segment
    return result


def _locate(cue_path: str, source_map: SourceMap) -> SourceSpan | None:
    """Position of *cue_path*, or of its nearest ancestor present in the document."""
    candidate = _document_path(cue_path)
    while candidate:
        span = source_map.get(candidate)
        if span is not None:
            return span
        cut = max(candidate.rfind("."), candidate.rfind("["))
        candidate = candidate[:cut] if cut > 0 else ""
    return None


def _anchor_to_document(diagnostics: list[SchemaDiagnostic], source_map: SourceMap) -> None:
    """Add a ``data.yaml`` span to diagnostics cue reported only against the schema."""
    for d in diagnostics:
        if d.path is None or any(s.file == DATA_FILE for s in d.spans):
            continue
        span = _locate(d.path, source_map)
        if span is not None:
            d.spans.append(span)


def _is_incomplete(diagnostics: list[SchemaDiagnostic]) -> bool:
    return bool(diagnostics) and all(
        any(marker in d.message.lower() for marker in _INCOMPLETE_MARKERS) for d in diagnostics
    )


# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------


class CueValidator:
    """Validates Gemara documents against their layer's composed CUE schema."""

    def __init__(
        self,
        source: SchemaSource,
        runner: CueRunner | None = None,
        loader: TrackedLoader | None = None,
    ) -> None:
        self._source = source
        self._runner = runner or CueRunner()
        self._loader = loader or TrackedLoader()

    @property
    def source(self) -> SchemaSource:
        return self._source

    def validate(self, content: str, layer: Layer | int) -> ValidationResult:
        """Validate *content* against the schema for *layer*.

        ``valid`` is ``True`` only when both the unification and the
        concreteness pass succeed.
        """
        layer = Layer.parse(layer)

        try:
            fragments = self._fragments(layer)
        except SchemaFetchError as exc:
            logger.warning("Schema fetch failed for %s: %s", layer.label, exc)
            return _failure(layer, SCHEMA_FETCH_ERROR, f"Failed to load {layer.label} schema: {exc}")

        try:
            _, source_map = self._loader.load_string(content, filename=DATA_FILE)
        except YAMLSafetyError as exc:
            return _failure(layer, YAML_SAFETY_ERROR, str(exc))
        except Exception as exc:
            return _failure(layer, YAML_PARSE_ERROR, f"Failed to parse document: {exc}")

        try:
            self._check(content, layer, fragments)
        except CueUnavailableError as exc:
            logger.error("%s", exc)
            return _failure(layer, CUE_UNAVAILABLE, str(exc))
        except SchemaViolationError as exc:
            _anchor_to_document(exc.diagnostics, source_map)
            return ValidationResult(
                valid=False,
                layer=layer,
                failure=exc.code,
                error=str(exc),
                errors=exc.diagnostics,
            )
        return ValidationResult(valid=True, layer=layer)

    # -- helpers -------------------------------------------------------------

    def _fragments(self, layer: Layer) -> dict[str, str]:
        """Shared fragments followed by the layer schema, keyed by name."""
        fragments = self._source.shared_schemas()
        fragments[layer.schema_name] = self._source.layer_schema(layer)
        return fragments

    def _check(self, content: str, layer: Layer, fragments: dict[str, str]) -> None:
        with tempfile.TemporaryDirectory(prefix="gemara-validation-") as tmp:
            workdir = Path(tmp)
            files: list[str] = []
            for name, text in fragments.items():
                filename = f"{name}.cue"
                (workdir / filename).write_text(text, encoding="utf-8")
                files.append(filename)
            (workdir / DATA_FILE).write_text(content, encoding="utf-8")
            files.append(DATA_FILE)

            run = self._runner.vet(files, layer.definition, concrete=False, cwd=workdir)
            if not run.ok:
                diagnostics = parse_cue_errors(run.stderr or run.stdout, UNIFICATION_ERROR)
                # Some cue releases already demand concreteness for data files.
                if _is_incomplete(diagnostics):
                    raise _concreteness(diagnostics)
                raise UnificationError(
                    f"Schema unification failed for {layer.label}", diagnostics
                )

            run = self._runner.vet(files, layer.definition, concrete=True, cwd=workdir)
            if not run.ok:
                raise _concreteness(parse_cue_errors(run.stderr or run.stdout, CONCRETENESS_ERROR))


def _concreteness(diagnostics: list[SchemaDiagnostic]) -> ConcretenessError:
    for d in diagnostics:
        d.code = CONCRETENESS_ERROR
    return ConcretenessError("Document is incomplete: required fields are missing", diagnostics)


def _failure(layer: Layer, code: str, message: str) -> ValidationResult:
    return ValidationResult(
        valid=False,
        layer=layer,
        failure=code,
        error=message,
        errors=[SchemaDiagnostic(code=code, message=message)],
    )
