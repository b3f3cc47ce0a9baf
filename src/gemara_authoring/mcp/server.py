"""FastMCP server exposing Gemara artifact authoring as MCP tools.

Run via::

    gemara-mcp                       # reads .env (default: stdio)
    MCP_TRANSPORT=http gemara-mcp    # streamable HTTP on port 9000
    MCP_TRANSPORT=sse  gemara-mcp    # legacy SSE on port 9000

All tools share one ``ArtifactService`` created in ``main()``.  Settings are
loaded from environment variables and ``.env`` file; see ``.env.example``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from typing import Any

from fastmcp import FastMCP
from fastmcp.exceptions import ResourceError, ToolError

from gemara_authoring import __version__
from gemara_authoring.gemara_reference import (
    GEMARA_REFERENCE,
    LAYER_SCHEMA_INFO,
    SCHEMA_REPOSITORY_URL,
)
from gemara_authoring.models.artifacts import Layer
from gemara_authoring.models.errors import ValidationResult
from gemara_authoring.parser.loader import TrackedLoader
from gemara_authoring.schema.source import SHARED_FRAGMENTS, SchemaFetchError
from gemara_authoring.service.artifact_service import (
    ArtifactService,
    ArtifactValidationError,
    StorageUnavailableError,
)
from gemara_authoring.settings import Settings
from gemara_authoring.storage.repository import ArtifactNotFoundError, StorageError

# ---------------------------------------------------------------------------
# Server + shared state
# ---------------------------------------------------------------------------

logger = logging.getLogger("gemara_authoring.mcp")

mcp = FastMCP("Gemara Authoring")
_service: ArtifactService | None = None
_yaml = TrackedLoader()

_SCHEMA_LAYERS = range(1, 7)


def _get_service() -> ArtifactService:
    if _service is None:
        raise ToolError("Artifact service not initialised")
    return _service


def _render(data: Any, output_format: str = "yaml") -> str:
    """Serialize dataclasses / pydantic dumps / plain values as YAML or JSON."""
    fmt = output_format.lower()
    if fmt not in ("yaml", "json"):
        raise ToolError(f"output_format must be 'yaml' or 'json', got '{output_format}'")
    plain = json.loads(json.dumps(data, default=str))
    if fmt == "json":
        return json.dumps(plain, indent=2)
    return _yaml.dump(plain)


def _parse_layer(value: int | str, allowed: tuple[Layer, ...] | None = None) -> Layer:
    try:
        layer = Layer.parse(value)
    except ValueError as exc:
        raise ToolError(str(exc)) from exc
    if allowed is not None and layer not in allowed:
        names = ", ".join(a.dir_name for a in allowed)
        raise ToolError(f"Unsupported artifact type '{value}' (expected one of: {names})")
    return layer


def _format_errors(result: ValidationResult) -> list[str]:
    lines: list[str] = []
    if result.error:
        lines.append(result.error)
    for i, diag in enumerate(result.errors, start=1):
        if diag.message == result.error:
            continue
        lines.append(f"  {i}. [{diag.code}] {diag.render()}")
    return lines


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------


@mcp.resource("gemara://reference")
def gemara_reference() -> str:
    """Overview of Gemara layers, artifact structure and the authoring workflow."""
    return GEMARA_REFERENCE


@mcp.resource("gemara://schema/common/{name}", mime_type="text/x-cue")
def common_schema(name: str) -> str:
    """Shared CUE schema fragment (base, metadata or mapping)."""
    if name not in SHARED_FRAGMENTS:
        raise ResourceError(
            f"Unknown common schema '{name}' (expected one of: {', '.join(SHARED_FRAGMENTS)})"
        )
    try:
        return _get_service().schema_source.fetch(name)
    except SchemaFetchError as exc:
        raise ResourceError(f"Failed to load {name} schema: {exc}") from exc


@mcp.resource("gemara://schema/layer/{layer}", mime_type="text/x-cue")
def layer_schema(layer: str) -> str:
    """CUE schema for a Gemara layer (1-6)."""
    try:
        number = int(layer)
    except ValueError:
        raise ResourceError(f"Layer must be a number, got '{layer}'") from None
    if number not in _SCHEMA_LAYERS:
        raise ResourceError(f"Layer must be between 1 and 6, got {number}")
    try:
        return _get_service().schema_source.fetch(f"layer-{number}")
    except SchemaFetchError as exc:
        raise ResourceError(f"Failed to load layer {number} schema: {exc}") from exc


# ---------------------------------------------------------------------------
# Validation & schema tools
# ---------------------------------------------------------------------------


@mcp.tool
def validate_gemara_yaml(yaml_content: str, layer: int) -> str:
    """Validate Gemara YAML against a layer's CUE schema without storing it.

    Returns a markdown report with the CUE errors and suggestions for
    common mistakes.

    Args:
        yaml_content: The complete YAML document.
        layer: Gemara layer 1-4 (1 guidance, 2 controls, 3 policy, 4 evaluation).
    """
    logger.info("validate_gemara_yaml called (layer=%s, yaml length=%d)", layer, len(yaml_content))
    if not yaml_content:
        raise ToolError("yaml_content is required")
    gemara_layer = _parse_layer(layer)
    service = _get_service()
    result = service.validate(yaml_content, gemara_layer)

    lines = [f"# Gemara Layer {gemara_layer.value} Validation Report", "", "## CUE Schema Validation", ""]
    if result.valid:
        lines.append("CUE validation PASSED")
        lines.append("")
        lines.append(
            f"The YAML content is valid according to the Layer {gemara_layer.value} CUE schema."
        )
    else:
        lines.append(f"CUE validation FAILED ({result.failure})")
        lines.append("")
        lines.append("```")
        lines.extend(_format_errors(result))
        lines.append("```")

    lines += [
        "",
        "## Schema Information",
        "",
        f"- **Schema**: `{service.schema_source.url_for(gemara_layer.schema_name)}`",
        f"- **Definition**: `{gemara_layer.definition}`",
        f"- **Schema Repository**: {SCHEMA_REPOSITORY_URL}",
    ]

    if not result.valid:
        lines += ["", "## Common Issues & Suggestions", ""]
        for i, suggestion in enumerate(service.suggestions(result), start=1):
            lines.append(f"{i}. **{suggestion.title}**")
            lines.append(f"   {suggestion.description}")
        lines += [
            "",
            "## Next Steps",
            "",
            "1. Review the validation errors above",
            f"2. Check required fields with `get_layer_schema_info(layer={gemara_layer.value})`",
            "3. Verify field types match the schema requirements",
            "4. Re-run `validate_gemara_yaml` until it passes",
        ]
    return "\n".join(lines) + "\n"


@mcp.tool
def get_layer_schema_info(layer: int) -> str:
    """Describe the structure and required fields of a Gemara layer (1-4).

    Call this before composing YAML for a layer.
    """
    gemara_layer = _parse_layer(layer)
    info = LAYER_SCHEMA_INFO[gemara_layer.value]
    uri = f"gemara://schema/layer/{gemara_layer.value}"
    return f"{info}\nFull CUE schema: resource `{uri}`\n"


@mcp.tool
def get_gemara_reference() -> str:
    """Get the Gemara overview: layers, artifact structure and workflow."""
    return GEMARA_REFERENCE


# ---------------------------------------------------------------------------
# Store tools
# ---------------------------------------------------------------------------


def _store(layer: Layer, yaml_content: str, kind: str) -> str:
    logger.info("store %s called (yaml length=%d)", layer.dir_name, len(yaml_content))
    if not yaml_content:
        raise ToolError("yaml_content is required")
    service = _get_service()
    try:
        result = service.store_yaml(layer, yaml_content)
    except ArtifactValidationError as exc:
        logger.warning("store %s validation failed: %s", layer.dir_name, exc)
        lines = ["CUE validation failed:", *_format_errors(exc.result)]
        suggestions = service.suggestions(exc.result)
        if suggestions:
            lines.append("")
            lines.append("Suggestions:")
            lines.extend(f"- {s.title}: {s.description}" for s in suggestions)
        raise ToolError("\n".join(lines)) from exc
    except StorageUnavailableError as exc:
        raise ToolError(str(exc)) from exc
    except (StorageError, ValueError) as exc:
        raise ToolError(f"Failed to store YAML: {exc}") from exc

    return (
        f"Successfully stored and validated {layer.label} {kind}:\n"
        f"- ID: {result.artifact_id}\n"
        f"- CUE Validation: PASSED\n"
        f"\n{kind} stored and available for querying.\n"
    )


@mcp.tool
def store_layer1_yaml(yaml_content: str) -> str:
    """Validate and store a Layer 1 Guidance document from raw YAML.

    The YAML is stored exactly as given (no data loss) after passing CUE
    validation.  It must include ``metadata.id``.
    """
    return _store(Layer.GUIDANCE, yaml_content, "Guidance")


@mcp.tool
def store_layer2_yaml(yaml_content: str) -> str:
    """Validate and store a Layer 2 Control Catalog from raw YAML.

    The YAML is stored exactly as given (no data loss) after passing CUE
    validation.  It must include ``metadata.id``.
    """
    return _store(Layer.CONTROLS, yaml_content, "Catalog")


@mcp.tool
def store_layer3_yaml(yaml_content: str) -> str:
    """Validate and store a Layer 3 Policy document from raw YAML.

    The YAML is stored exactly as given (no data loss) after passing CUE
    validation.  It must include ``metadata.id``.
    """
    return _store(Layer.POLICY, yaml_content, "Policy")


# ---------------------------------------------------------------------------
# Load-from-file tools
# ---------------------------------------------------------------------------


def _load(layer: Layer, file_path: str) -> str:
    logger.info("load %s from %s", layer.dir_name, file_path)
    if not file_path:
        raise ToolError("file_path is required")
    try:
        result = _get_service().load_from_file(layer, file_path)
    except (OSError, ValueError) as exc:
        raise ToolError(f"Failed to load {layer.label} artifact from file: {exc}") from exc

    parts = [
        f"Successfully loaded {layer.label} artifact:",
        f"- ID: {result.artifact_id}",
    ]
    if result.title:
        parts.append(f"- Title: {result.title}")
    parts.append(f"- Persisted: {'yes' if result.persisted else 'no'}")
    for warning in result.warnings:
        parts.append(f"- Warning: {warning}")
    return "\n".join(parts) + "\n"


@mcp.tool
def load_layer1_from_file(file_path: str) -> str:
    """Load a Layer 1 Guidance document from a YAML file (path, file:// or https:// URL)."""
    return _load(Layer.GUIDANCE, file_path)


@mcp.tool
def load_layer2_from_file(file_path: str) -> str:
    """Load a Layer 2 Control Catalog from a YAML or JSON file (path, file:// or https:// URL)."""
    return _load(Layer.CONTROLS, file_path)


@mcp.tool
def load_layer3_from_file(file_path: str) -> str:
    """Load a Layer 3 Policy from a YAML or JSON file (path, file:// or https:// URL)."""
    return _load(Layer.POLICY, file_path)


# ---------------------------------------------------------------------------
# Layer 1 query tools
# ---------------------------------------------------------------------------


@mcp.tool
def list_layer1_guidance(output_format: str = "yaml") -> str:
    """List all Layer 1 Guidance documents with ids, titles and authors.

    Use these ids as ``reference-id`` values in Layer 2 guideline mappings.
    """
    items = _get_service().list_guidance()
    if not items:
        return (
            "No Layer 1 Guidance documents available.\n\n"
            "Use store_layer1_yaml or load_layer1_from_file to add guidance."
        )
    return _render([asdict(g) for g in items], output_format)


@mcp.tool
def get_layer1_guidance(guidance_id: str, output_format: str = "yaml") -> str:
    """Get a Layer 1 Guidance document by id.

    With ``output_format="yaml"`` the stored YAML is returned unchanged.
    """
    service = _get_service()
    try:
        if output_format.lower() == "yaml":
            return service.get_document_text(Layer.GUIDANCE, guidance_id)
        artifact = service.get_artifact(Layer.GUIDANCE, guidance_id)
    except ArtifactNotFoundError as exc:
        raise ToolError(str(exc)) from exc
    except StorageError as exc:
        raise ToolError(f"Failed to read guidance: {exc}") from exc
    return _render(artifact.to_document(), output_format)


@mcp.tool
def search_layer1_guidance(search_term: str, output_format: str = "yaml") -> str:
    """Search Layer 1 Guidance by title, description or author (case-insensitive)."""
    if not search_term:
        raise ToolError("search_term is required")
    items = _get_service().search_guidance(search_term)
    if not items:
        return f"No Layer 1 Guidance documents match '{search_term}'."
    return _render([asdict(g) for g in items], output_format)


# ---------------------------------------------------------------------------
# Layer 2 query tools
# ---------------------------------------------------------------------------


@mcp.tool
def list_layer2_controls(
    technology: str | None = None,
    layer1_reference: str | None = None,
    output_format: str = "yaml",
) -> str:
    """List Layer 2 controls across all catalogs.

    Args:
        technology: Keep controls whose catalog or assessment requirements
            mention this technology.
        layer1_reference: Keep controls mapping to this Layer 1 guidance id.
        output_format: ``yaml`` (default) or ``json``.
    """
    items = _get_service().list_controls(layer1_reference=layer1_reference, technology=technology)
    if not items:
        filters = []
        if layer1_reference:
            filters.append(f"referencing Layer 1 guidance '{layer1_reference}'")
        if technology:
            filters.append(f"for technology '{technology}'")
        suffix = f" {' and '.join(filters)}" if filters else ""
        return f"No Layer 2 Controls found{suffix}."
    return _render([asdict(c) for c in items], output_format)


@mcp.tool
def get_layer2_control(control_id: str, output_format: str = "yaml") -> str:
    """Get a Layer 2 control definition by control id (searched across catalogs)."""
    try:
        catalog_id, control = _get_service().find_control(control_id)
    except ArtifactNotFoundError as exc:
        raise ToolError(str(exc)) from exc
    return _render({"catalog_id": catalog_id, **control.to_document()}, output_format)


@mcp.tool
def search_layer2_controls(
    search_term: str, technology: str | None = None, output_format: str = "yaml"
) -> str:
    """Search Layer 2 controls by title, objective or id (case-insensitive)."""
    if not search_term:
        raise ToolError("search_term is required")
    items = _get_service().search_controls(search_term, technology=technology)
    if not items:
        return f"No Layer 2 Controls match '{search_term}'."
    return _render([asdict(c) for c in items], output_format)


@mcp.tool
def get_layer2_guideline_mappings(
    control_id: str,
    include_guidance_details: bool = False,
    output_format: str = "yaml",
) -> str:
    """Show the Layer 1 guideline mappings of a Layer 2 control.

    Each mapping lists its entries with strength and remarks and whether the
    referenced guidance exists.  ``include_guidance_details`` adds the
    guidance title, version and author.
    """
    try:
        result = _get_service().guideline_mappings(control_id, include_guidance_details)
    except ArtifactNotFoundError as exc:
        raise ToolError(
            f"{exc}\n\nUse list_layer2_controls to see all available controls."
        ) from exc
    if not result.mappings:
        return (
            f"Control '{control_id}' ({result.control_title}) has no Layer 1 guideline mappings."
        )
    return _render(asdict(result), output_format)


# ---------------------------------------------------------------------------
# Layer 3 query tools
# ---------------------------------------------------------------------------


@mcp.tool
def list_layer3_policies(output_format: str = "yaml") -> str:
    """List all Layer 3 Policy documents with ids, titles and objectives."""
    items = _get_service().list_policies()
    if not items:
        return (
            "No Layer 3 Policies available.\n\n"
            "Use store_layer3_yaml or load_layer3_from_file to add policies."
        )
    return _render([asdict(p) for p in items], output_format)


@mcp.tool
def get_layer3_policy(policy_id: str, output_format: str = "yaml") -> str:
    """Get a Layer 3 Policy by id.

    With ``output_format="yaml"`` the stored YAML is returned unchanged.
    """
    service = _get_service()
    try:
        if output_format.lower() == "yaml":
            return service.get_document_text(Layer.POLICY, policy_id)
        artifact = service.get_artifact(Layer.POLICY, policy_id)
    except ArtifactNotFoundError as exc:
        raise ToolError(str(exc)) from exc
    except StorageError as exc:
        raise ToolError(f"Failed to read policy: {exc}") from exc
    return _render(artifact.to_document(), output_format)


@mcp.tool
def search_layer3_policies(search_term: str, output_format: str = "yaml") -> str:
    """Search Layer 3 Policies by title, objective or id (case-insensitive)."""
    if not search_term:
        raise ToolError("search_term is required")
    items = _get_service().search_policies(search_term)
    if not items:
        return f"No Layer 3 Policies match '{search_term}'."
    return _render([asdict(p) for p in items], output_format)


# ---------------------------------------------------------------------------
# Cross-layer tools
# ---------------------------------------------------------------------------


@mcp.tool
def get_artifact_relationships(
    artifact_id: str, artifact_type: str, output_format: str = "yaml"
) -> str:
    """Show which artifacts an artifact references and which reference it.

    Missing targets are listed with ``NOT FOUND`` instead of failing.

    Args:
        artifact_id: Guidance id (layer1), control id (layer2) or policy id (layer3).
        artifact_type: ``layer1``, ``layer2`` or ``layer3``.
        output_format: ``yaml`` (default) or ``json``.
    """
    if not artifact_id:
        raise ToolError("artifact_id is required")
    layer = _parse_layer(artifact_type, allowed=(Layer.GUIDANCE, Layer.CONTROLS, Layer.POLICY))
    try:
        node = _get_service().relationships(artifact_id, layer)
    except (ArtifactNotFoundError, StorageError) as exc:
        raise ToolError(f"failed to build relationships: {exc}") from exc
    return _render(node.summary(), output_format)


@mcp.tool
def find_applicable_artifacts(
    boundaries: list[str] | None = None,
    technologies: list[str] | None = None,
    providers: list[str] | None = None,
    output_format: str = "yaml",
) -> str:
    """Find Layer 1 guidance and Layer 2 controls applicable to a policy scope.

    Guidance matches on its applicability metadata (jurisdictions, technology
    domains, industry sectors); controls match on assessment-requirement
    applicability.
    """
    try:
        result = _get_service().find_applicable_artifacts(boundaries, technologies, providers)
    except ValueError as exc:
        raise ToolError(str(exc)) from exc
    return _render(asdict(result), output_format)


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------


@mcp.prompt
def create_layer1_guidance() -> str:
    """Guide for authoring a Layer 1 Guidance document."""
    return f"""\
{LAYER_SCHEMA_INFO[1]}
## Steps

1. Check existing guidance with `list_layer1_guidance()` so you do not reuse an id.
2. Draft the document; every category needs `id`, `title` and `guidelines`.
3. Run `validate_gemara_yaml(yaml_content, layer=1)` and fix reported errors.
4. Store it with `store_layer1_yaml(yaml_content)`.
"""


@mcp.prompt
def create_layer2_controls() -> str:
    """Guide for authoring a Layer 2 Control Catalog mapped to guidance."""
    return f"""\
{LAYER_SCHEMA_INFO[2]}
## Steps

1. Find the guidance to map to with `search_layer1_guidance(term)`.
2. Give every control a `guideline-mappings` entry whose `reference-id` is a
   Layer 1 guidance id; list the specific guideline ids in `entries` with a
   `strength` from 1 to 10.
3. Run `validate_gemara_yaml(yaml_content, layer=2)`, then
   `store_layer2_yaml(yaml_content)`.
4. Confirm the links with `get_artifact_relationships(control_id, "layer2")`.
"""


@mcp.prompt
def create_layer3_policies() -> str:
    """Guide for authoring a Layer 3 Policy from guidance and controls."""
    return f"""\
{LAYER_SCHEMA_INFO[3]}
## Steps

1. Scope the policy with `find_applicable_artifacts(boundaries, technologies, providers)`.
2. Reference guidance ids in `guidance-references` and control ids in
   `control-references`.
3. Run `validate_gemara_yaml(yaml_content, layer=3)`, then
   `store_layer3_yaml(yaml_content)`.
4. `get_artifact_relationships(policy_id, "layer3")` lists any reference
   marked NOT FOUND.
"""


@mcp.prompt
def gemara_quick_start() -> str:
    """Quick start for authoring Gemara artifacts with this server."""
    return GEMARA_REFERENCE


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Run the MCP server using settings from environment / .env file."""
    settings = Settings()

    logging.basicConfig(level=settings.log_level.upper())
    logger.info(
        "Gemara Authoring MCP Server v%s starting (transport=%s)",
        __version__,
        settings.mcp_transport,
    )

    global _service  # noqa: PLW0603
    _service = ArtifactService.from_settings(settings)
    if settings.load_artifacts_on_startup:
        _service.load_artifacts_dir()

    try:
        if settings.mcp_transport == "stdio":
            mcp.run(transport="stdio")
        else:
            mcp.run(
                transport=settings.mcp_transport,
                host=settings.mcp_server_host,
                port=settings.mcp_server_port,
                log_level=settings.log_level.lower(),
            )
    finally:
        _service.close()


if __name__ == "__main__":
    main()
