"""Tests for CUE-backed document validation."""

from __future__ import annotations

import httpx
import pytest

from gemara_authoring.models.artifacts import Layer
from gemara_authoring.models.errors import SourceSpan
from gemara_authoring.schema.source import SchemaSource
from gemara_authoring.schema.validator import (
    CONCRETENESS_ERROR,
    CUE_UNAVAILABLE,
    DATA_FILE,
    SCHEMA_FETCH_ERROR,
    UNIFICATION_ERROR,
    YAML_PARSE_ERROR,
    CueRun,
    CueRunner,
    CueValidator,
    parse_cue_errors,
)
from tests.conftest import (
    GUIDANCE_YAML,
    SCHEMA_BASE_URL,
    UNTITLED_GUIDANCE_YAML,
    RequiredFieldsRunner,
)


class TestParseCueErrors:
    def test_path_message_and_spans(self) -> None:
        output = (
            "metadata.title: field is required but not present:\n"
            "    ./metadata.cue:3:2\n"
            "    ./data.yaml:1:1\n"
        )
        [diag] = parse_cue_errors(output, CONCRETENESS_ERROR)
        assert diag.code == CONCRETENESS_ERROR
        assert diag.path == "metadata.title"
        assert diag.message == "field is required but not present"
        assert [(s.file, s.line, s.column) for s in diag.spans] == [
            ("metadata.cue", 3, 2),
            ("data.yaml", 1, 1),
        ]

    def test_multiple_diagnostics(self) -> None:
        output = (
            "metadata.id: conflicting values 1 and string (mismatched types int and string):\n"
            "    ./data.yaml:2:7\n"
            "categories.0.id: incomplete value string\n"
        )
        diags = parse_cue_errors(output, UNIFICATION_ERROR)
        assert [d.path for d in diags] == ["metadata.id", "categories.0.id"]
        assert "mismatched types" in diags[0].message

    def test_pathless_line_and_continuation(self) -> None:
        output = "some instances are incomplete; use the -c flag to show errors\n    and more detail\n"
        [diag] = parse_cue_errors(output, UNIFICATION_ERROR)
        assert diag.path is None
        assert diag.message.endswith("and more detail")

    def test_empty_output(self) -> None:
        assert parse_cue_errors("", UNIFICATION_ERROR) == []


class TestValidate:
    def test_valid_document(self, validator: CueValidator, cue_runner: RequiredFieldsRunner) -> None:
        result = validator.validate(GUIDANCE_YAML, 1)
        assert result.valid is True
        assert result.failure is None
        assert result.errors == []
        assert [call["concrete"] for call in cue_runner.calls] == [False, True]

    def test_composition_and_definition(
        self, validator: CueValidator, cue_runner: RequiredFieldsRunner
    ) -> None:
        validator.validate(GUIDANCE_YAML, Layer.CONTROLS)
        call = cue_runner.calls[0]
        assert call["definition"] == "#Catalog"
        assert call["files"] == [
            "base.cue",
            "metadata.cue",
            "mapping.cue",
            "layer-2.cue",
            DATA_FILE,
        ]

    def test_missing_required_field_is_concreteness_error(self, validator: CueValidator) -> None:
        result = validator.validate(UNTITLED_GUIDANCE_YAML, 1)
        assert result.valid is False
        assert result.failure == CONCRETENESS_ERROR
        assert [d.path for d in result.errors] == ["metadata.title"]
        assert "metadata.title" in result.messages[0]

    def test_missing_field_anchored_to_parent_key(self, validator: CueValidator) -> None:
        result = validator.validate(UNTITLED_GUIDANCE_YAML, 1)
        assert result.errors[0].spans[-1] == SourceSpan(file=DATA_FILE, line=1, column=1)

    def test_present_field_anchored_to_its_line(self, schema_source: SchemaSource) -> None:
        class SchemaOnlyRunner:
            def vet(self, files, definition, *, concrete, cwd):
                return CueRun(
                    1, "", "control-families.0.id: conflicting values:\n    ./layer-2.cue:9:3\n"
                )

        validator = CueValidator(schema_source, SchemaOnlyRunner())  # type: ignore[arg-type]
        content = "metadata:\n  id: cat\ncontrol-families:\n  - id: 7\n"
        [diag] = validator.validate(content, 2).errors
        assert [s.file for s in diag.spans] == ["layer-2.cue", DATA_FILE]
        assert (diag.spans[1].line, diag.spans[1].column) == (4, 5)

    def test_data_span_from_cue_not_duplicated(self, validator: CueValidator) -> None:
        result = validator.validate("metadata:\n  id: 42\n  title: T\n", 1)
        assert [s.file for s in result.errors[0].spans] == ["metadata.cue", DATA_FILE]

    def test_type_conflict_is_unification_error(
        self, validator: CueValidator, cue_runner: RequiredFieldsRunner
    ) -> None:
        result = validator.validate("metadata:\n  id: 42\n  title: T\n", 1)
        assert result.failure == UNIFICATION_ERROR
        assert result.errors[0].spans[-1].file == DATA_FILE
        assert len(cue_runner.calls) == 1

    def test_incomplete_first_pass_classified_as_concreteness(
        self, schema_source: SchemaSource
    ) -> None:
        class StrictRunner:
            def vet(self, files, definition, *, concrete, cwd):
                return CueRun(1, "", "metadata.id: incomplete value string\n")

        validator = CueValidator(schema_source, StrictRunner())  # type: ignore[arg-type]
        result = validator.validate("metadata: {}\n", 3)
        assert result.failure == CONCRETENESS_ERROR
        assert result.errors[0].code == CONCRETENESS_ERROR

    def test_unparseable_document(self, validator: CueValidator, cue_runner: RequiredFieldsRunner) -> None:
        result = validator.validate("metadata:\n  id: [oops\n", 1)
        assert result.failure == YAML_PARSE_ERROR
        assert result.error is not None
        assert result.error.startswith("Failed to parse document")
        assert cue_runner.calls == []

    def test_invalid_layer_raises(self, validator: CueValidator) -> None:
        with pytest.raises(ValueError):
            validator.validate(GUIDANCE_YAML, 9)


class TestValidateEnvironmentFailures:
    def test_schema_fetch_failure(self, cue_runner: RequiredFieldsRunner) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503)

        source = SchemaSource(SCHEMA_BASE_URL, client=httpx.Client(transport=httpx.MockTransport(handler)))
        result = CueValidator(source, cue_runner).validate(GUIDANCE_YAML, 1)  # type: ignore[arg-type]
        assert result.valid is False
        assert result.failure == SCHEMA_FETCH_ERROR
        assert "HTTP 503" in (result.error or "")
        assert cue_runner.calls == []

    def test_missing_cue_binary(self, schema_source: SchemaSource) -> None:
        runner = CueRunner(binary="cue-binary-that-does-not-exist")
        result = CueValidator(schema_source, runner).validate(GUIDANCE_YAML, 1)
        assert result.valid is False
        assert result.failure == CUE_UNAVAILABLE
        assert "not found" in (result.error or "")

    def test_temp_directory_cleaned_up(self, schema_source: SchemaSource) -> None:
        seen: list[Path] = []

        class RecordingRunner:
            def vet(self, files, definition, *, concrete, cwd):
                seen.append(cwd)
                return CueRun(0, "", "")

        CueValidator(schema_source, RecordingRunner()).validate(GUIDANCE_YAML, 1)  # type: ignore[arg-type]
        assert seen
        assert not seen[0].exists()
