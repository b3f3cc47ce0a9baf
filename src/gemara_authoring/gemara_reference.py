"""Gemara reference text served by the MCP server (resource, tool and prompts)."""

from __future__ import annotations

SCHEMA_REPOSITORY_URL = "https://github.com/ossf/gemara/tree/main/schemas"

GEMARA_REFERENCE = """\
# Gemara Reference

Gemara organizes compliance documents into layers.  Each layer has its own
CUE schema and references artifacts in the layer below it.

| Layer | Artifact | References |
|-------|----------|------------|
| 1 | Guidance document (standards, frameworks) | nothing (terminal) |
| 2 | Control catalog | Layer 1 guidance via `guideline-mappings` |
| 3 | Policy | Layer 1 via `guidance-references`, Layer 2 via `control-references` |
| 4 | Evaluation log | validation only |

Every artifact carries a `metadata` block with at least `id` and `title`.
Ids are unique within a layer.  References are checked when you ask for
relationships, not when you store, so you can author a policy before the
controls it points at exist.

## Workflow

1. `get_layer_schema_info(layer)` to see required fields
2. `validate_gemara_yaml(yaml_content, layer)` while drafting
3. `store_layerN_yaml(yaml_content)` to validate and persist
4. `get_artifact_relationships(artifact_id, artifact_type)` to check references
"""

LAYER_SCHEMA_INFO: dict[int, str] = {
    1: """\
# Layer 1: Guidance Document (`#GuidanceDocument`)

High-level guidance such as standards, regulations and best-practice frameworks.

```yaml
metadata:
  id: nist-csf                     # required, unique within layer 1
  title: NIST Cybersecurity Framework
  description: Framework for improving critical infrastructure cybersecurity
  author: NIST
  version: "2.0"
  document-type: Framework         # Framework | Standard | Guideline
  applicability:
    jurisdictions: ["United States"]
    technology-domains: ["Cloud Infrastructure"]
    industry-sectors: ["Finance"]
categories:
  - id: ID
    title: Identify
    guidelines:
      - id: ID.AM-1
        title: Physical devices and systems are inventoried
```
""",
    2: """\
# Layer 2: Control Catalog (`#Catalog`)

Technology-specific controls grouped into families.  Controls map to Layer 1
guidelines through `guideline-mappings`.

```yaml
metadata:
  id: k8s-controls                 # required, unique within layer 2
  title: Kubernetes Security Controls
control-families:
  - id: access
    title: Access Control
    controls:
      - id: k8s-rbac               # control ids are what policies reference
        title: Enforce RBAC
        objective: Restrict cluster access to authorized identities
        guideline-mappings:
          - reference-id: nist-csf # Layer 1 guidance id
            entries:
              - reference-id: ID.AM-1
                strength: 5
        assessment-requirements:
          - id: k8s-rbac-01
            text: RBAC authorization mode is enabled
            applicability: ["Kubernetes"]
```
""",
    3: """\
# Layer 3: Policy (`#Policy`)

Organization-specific policy built from guidance and controls.

```yaml
metadata:
  id: acme-cloud-policy            # required, unique within layer 3
  title: ACME Cloud Security Policy
  organization-id: acme
  objective: Secure ACME's Kubernetes platform
guidance-references:
  - reference-id: nist-csf         # Layer 1 guidance id
control-references:
  - reference-id: k8s-rbac         # Layer 2 control id
```
""",
    4: """\
# Layer 4: Evaluation Log (`#EvaluationLog`)

Results of evaluating resources against controls.  Evaluation logs can be
validated but are not stored by this server.

```yaml
metadata:
  id: eval-2024-01
evaluations:
  - control-id: k8s-rbac
    result: Passed
```
""",
}
