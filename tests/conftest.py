"""Shared test fixtures for the Gemara authoring server."""

from __future__ import annotations

from pathlib import Path

import httpx
import pytest
from ruamel.yaml import YAML

from gemara_authoring.parser.loader import TrackedLoader
from gemara_authoring.schema.source import SchemaSource
from gemara_authoring.schema.validator import DATA_FILE, CueRun, CueValidator
from gemara_authoring.service.artifact_service import ArtifactService
from gemara_authoring.storage.filesystem import FileArtifactStore

SCHEMA_BASE_URL = "https://schemas.test/gemara"

GUIDANCE_YAML = """\
metadata:
  id: nist-csf
  title: NIST CSF
  description: Cybersecurity framework for critical infrastructure
  author: NIST
  version: "2.0"
  document-type: Framework
  applicability:
    jurisdictions:
      - United States
    technology-domains:
      - Cloud Infrastructure
    industry-sectors:
      - Finance
categories:
  - id: ID
    title: Identify
    guidelines:
      - id: ID.AM-1
        title: Physical devices and systems are inventoried
      - id: ID.AM-2
        title: Software platforms are inventoried
"""

CATALOG_YAML = """\
metadata:
  id: k8s-catalog
  title: Kubernetes Controls
  applicability:
    technology-domains:
      - Kubernetes
control-families:
  - id: access
    title: Access Control
    controls:
      - id: k8s-rbac
        title: Enforce RBAC
        objective: Restrict cluster access to authorized identities
        guideline-mappings:
          - reference-id: nist-csf
            entries:
              - reference-id: ID.AM-1
                strength: 5
        assessment-requirements:
          - id: k8s-rbac-01
            text: RBAC authorization mode is enabled
            applicability:
              - Kubernetes
      - id: k8s-audit
        title: Enable audit logging
        objective: Record API server activity
        guideline-mappings:
          - reference-id: iso-27001
            entries:
              - reference-id: A.12.4
                strength: 3
"""

POLICY_YAML = """\
metadata:
  id: acme-policy
  title: ACME Cloud Policy
  organization-id: acme
  version: "1.0"
  objective: Secure the ACME container platform
guidance-references:
  - reference-id: nist-csf
control-references:
  - reference-id: k8s-rbac
  - reference-id: ctrl-missing
"""

# Missing metadata.title, which every layer schema requires.
UNTITLED_GUIDANCE_YAML = """\
metadata:
  id: untitled
categories: []
"""

# Parses as YAML and carries an id, but fails the guidance model.
UNREADABLE_GUIDANCE_YAML = """\
metadata:
  id: nist-csf
  title: [not, a, string]
"""


def schema_transport(requests: list[str] | None = None) -> httpx.MockTransport:
    """Serve ``<name>.cue`` for any name except ones containing ``missing``."""

    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(str(request.url))
        name = request.url.path.rsplit("/", 1)[-1]
        if "missing" in name:
            return httpx.Response(404, text="404: Not Found")
        return httpx.Response(200, text=f"package schemas\n\n// {name}\n")

    return httpx.MockTransport(handler)


class RequiredFieldsRunner:
    """Stand-in for ``cue vet`` that enforces a small slice of the Gemara schemas.

    Unification fails when ``metadata.id`` is not a string; the concreteness
    pass fails when ``metadata.id`` or ``metadata.title`` is absent.  Output
    mimics the cue CLI error format.
    """

    def __init__(self) -> None:
        self.calls: list[dict] = []

    def vet(self, files: list[str], definition: str, *, concrete: bool, cwd: Path) -> CueRun:
        self.calls.append({"files": list(files), "definition": definition, "concrete": concrete})
        data = YAML(typ="safe").load((cwd / DATA_FILE).read_text(encoding="utf-8")) or {}
        metadata = data.get("metadata") or {}

        if "id" in metadata and not isinstance(metadata["id"], str):
            return CueRun(
                returncode=1,
                stdout="",
                stderr=(
                    f"metadata.id: conflicting values {metadata['id']} and string "
                    "(mismatched types int and string):\n"
                    "    ./metadata.cue:4:7\n"
                    "    ./data.yaml:2:7\n"
                ),
            )
        if concrete:
            missing = [name for name in ("id", "title") if not metadata.get(name)]
            if missing:
                stderr = "".join(
                    f"metadata.{name}: field is required but not present:\n    ./metadata.cue:3:2\n"
                    for name in missing
                )
                return CueRun(returncode=1, stdout="", stderr=stderr)
        return CueRun(returncode=0, stdout="", stderr="")


@pytest.fixture
def loader() -> TrackedLoader:
    return TrackedLoader()


@pytest.fixture
def schema_source() -> SchemaSource:
    client = httpx.Client(transport=schema_transport())
    return SchemaSource(SCHEMA_BASE_URL, client=client)


@pytest.fixture
def cue_runner() -> RequiredFieldsRunner:
    return RequiredFieldsRunner()


@pytest.fixture
def validator(schema_source: SchemaSource, cue_runner: RequiredFieldsRunner) -> CueValidator:
    return CueValidator(schema_source, cue_runner)  # type: ignore[arg-type]


@pytest.fixture
def store(tmp_path: Path) -> FileArtifactStore:
    return FileArtifactStore(tmp_path / "artifacts")


@pytest.fixture
def service(validator: CueValidator, store: FileArtifactStore) -> ArtifactService:
    return ArtifactService(validator, store, artifacts_dir=store.base_directory)
