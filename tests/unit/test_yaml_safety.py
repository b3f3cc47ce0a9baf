"""Tests for YAML parsing DoS safeguards in TrackedLoader."""

from __future__ import annotations

from gemara_authoring.models.artifacts import Layer
from gemara_authoring.parser.loader import _MAX_DOCUMENT_SIZE, TrackedLoader, YAMLSafetyError
from gemara_authoring.schema.validator import YAML_SAFETY_ERROR, CueValidator
from tests.conftest import CATALOG_YAML, GUIDANCE_YAML, POLICY_YAML

import pytest


class TestAnchorRejection:
    """Gemara artifacts never use YAML anchors/aliases: reject them entirely."""

    def test_billion_laughs_rejected(self, loader: TrackedLoader) -> None:
        yaml = (
            "a: &a ['lol','lol','lol','lol','lol']\n"
            "b: &b [*a,*a,*a,*a,*a]\n"
            "c: &c [*b,*b,*b,*b,*b]\n"
        )
        with pytest.raises(YAMLSafetyError, match="anchors/aliases"):
            loader.load_string(yaml)

    def test_anchor_in_metadata_rejected(self, loader: TrackedLoader) -> None:
        yaml = "metadata: &meta\n  id: x\nother:\n  <<: *meta\n"
        with pytest.raises(YAMLSafetyError, match="anchors/aliases"):
            loader.load_string(yaml)

    def test_ampersand_in_text_not_rejected(self, loader: TrackedLoader) -> None:
        """Prose such as ``R&D`` or ``Risk & Compliance`` must not trigger."""
        yaml = "metadata:\n  id: rd\n  title: R&D Risk & Compliance\n"
        raw, _ = loader.load_string(yaml)
        assert raw["metadata"]["title"] == "R&D Risk & Compliance"


class TestDocumentSize:
    def test_oversized_document_rejected(self, loader: TrackedLoader) -> None:
        yaml = "key: " + "x" * (_MAX_DOCUMENT_SIZE + 1) + "\n"
        with pytest.raises(YAMLSafetyError, match="maximum size"):
            loader.load_string(yaml)


class TestNodeCount:
    def test_excessive_node_count_rejected(self, loader: TrackedLoader) -> None:
        yaml = "\n".join(f"k{i}: v{i}" for i in range(50_001))
        with pytest.raises(YAMLSafetyError, match="node count"):
            loader.load_string(yaml)


class TestValidArtifacts:
    """Legitimate Gemara documents are not affected by the safety checks."""

    @pytest.mark.parametrize("content", [GUIDANCE_YAML, CATALOG_YAML, POLICY_YAML])
    def test_samples_parse(self, loader: TrackedLoader, content: str) -> None:
        raw, _ = loader.load_string(content)
        assert "metadata" in raw

    def test_empty_document_passes(self, loader: TrackedLoader) -> None:
        raw, _ = loader.load_string("")
        assert raw == {}


class TestValidatorIntegration:
    """YAMLSafetyError surfaces as YAML_SAFETY_ERROR through the validator."""

    def test_anchor_returns_safety_error(self, validator: CueValidator) -> None:
        result = validator.validate("a: &a [1,2,3]\nb: *a\n", Layer.GUIDANCE)
        assert result.valid is False
        assert result.failure == YAML_SAFETY_ERROR
        assert result.errors[0].code == YAML_SAFETY_ERROR
        assert "anchors/aliases" in result.errors[0].message

    def test_safety_error_skips_cue(self, validator: CueValidator, cue_runner) -> None:
        validator.validate("key: " + "x" * (_MAX_DOCUMENT_SIZE + 1), Layer.GUIDANCE)
        assert cue_runner.calls == []
