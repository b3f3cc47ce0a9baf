"""Structured validation diagnostics with source position tracking."""

from __future__ import annotations

from pydantic import BaseModel


class SourceSpan(BaseModel):
    """Points to an exact location in YAML or CUE source for error reporting."""

    file: str
    line: int
    column: int


class SchemaDiagnostic(BaseModel):
    """A single schema violation, optionally anchored to a document path."""

    code: str
    message: str
    path: str | None = None
    spans: list[SourceSpan] = []

    def render(self) -> str:
        text = f"{self.path}: {self.message}" if self.path else self.message
        if self.spans:
            where = ", ".join(f"{s.file}:{s.line}:{s.column}" for s in self.spans)
            text += f" ({where})"
        return text


class ValidationResult(BaseModel):
    """Outcome of validating one candidate document against its layer schema.

    ``failure`` names the stage that rejected the document (one of the
    ``*_ERROR`` codes) and is ``None`` when the document is valid.
    """

    valid: bool
    layer: int
    failure: str | None = None
    error: str | None = None
    errors: list[SchemaDiagnostic] = []

    @property
    def messages(self) -> list[str]:
        return [d.render() for d in self.errors]
