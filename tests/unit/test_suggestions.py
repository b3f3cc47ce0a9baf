"""Tests for authoring fix suggestions."""

from __future__ import annotations

from gemara_authoring.models.errors import SchemaDiagnostic, ValidationResult
from gemara_authoring.schema.validator import (
    CONCRETENESS_ERROR,
    UNIFICATION_ERROR,
    YAML_PARSE_ERROR,
)
from gemara_authoring.service.suggestions import suggest_fixes


def _failed(layer: int, failure: str, *messages: str, error: str = "") -> ValidationResult:
    return ValidationResult(
        valid=False,
        layer=layer,
        failure=failure,
        error=error or None,
        errors=[SchemaDiagnostic(code=failure, message=m) for m in messages],
    )


def _titles(result: ValidationResult) -> list[str]:
    return [s.title for s in suggest_fixes(result, result.layer)]


class TestSuggestFixes:
    def test_valid_result_has_none(self) -> None:
        assert suggest_fixes(ValidationResult(valid=True, layer=1), 1) == []

    def test_missing_id_and_title(self) -> None:
        result = _failed(
            1,
            CONCRETENESS_ERROR,
            "metadata.id: field is required but not present",
            "metadata.title: field is required but not present",
        )
        assert _titles(result) == ["Missing metadata.id", "Missing metadata.title"]

    def test_missing_categories_only_for_layer1(self) -> None:
        message = "categories: incomplete value [...#Category]"
        assert "Missing categories" in _titles(_failed(1, CONCRETENESS_ERROR, message))
        assert "Missing categories" not in _titles(_failed(3, CONCRETENESS_ERROR, message))

    def test_missing_controls_for_layer2(self) -> None:
        result = _failed(2, CONCRETENESS_ERROR, "control-families.0.controls: incomplete value")
        assert "Missing controls" in _titles(result)

    def test_type_mismatch(self) -> None:
        result = _failed(
            1, UNIFICATION_ERROR, "metadata.version: conflicting values 2 and string"
        )
        assert _titles(result) == ["Type mismatch"]

    def test_yaml_syntax_only_for_parse_failures(self) -> None:
        parse = _failed(1, YAML_PARSE_ERROR, error="Failed to parse document: bad YAML syntax")
        assert "YAML syntax error" in _titles(parse)
        schema = _failed(1, UNIFICATION_ERROR, "data.yaml: cannot parse value")
        assert "YAML syntax error" not in _titles(schema)

    def test_date_and_document_type(self) -> None:
        result = _failed(
            1,
            UNIFICATION_ERROR,
            "metadata.publication-date: invalid value",
            "metadata.document-type: 3 errors in empty disjunction",
        )
        assert _titles(result) == ["Invalid date format", "Invalid document-type"]

    def test_reference_and_applicability(self) -> None:
        result = _failed(
            3,
            UNIFICATION_ERROR,
            "control-references.0: field not allowed",
            "metadata.applicability.jurisdictions: invalid value",
        )
        titles = _titles(result)
        assert "Invalid reference" in titles
        assert "Applicability field issues" in titles

    def test_fallback(self) -> None:
        [suggestion] = suggest_fixes(_failed(3, UNIFICATION_ERROR, "something odd"), 3)
        assert suggestion.title == "General validation error"
        assert "layer=3" in suggestion.description
