"""Hints for common authoring mistakes, derived from validation error text."""

from __future__ import annotations

from dataclasses import dataclass

from gemara_authoring.models.errors import ValidationResult


@dataclass
class Suggestion:
    title: str
    description: str


def _mentions(text: str, *needles: str) -> bool:
    return any(needle in text for needle in needles)


def suggest_fixes(result: ValidationResult, layer: int) -> list[Suggestion]:
    """Match the error text of a failed validation against known mistakes.

    Always returns at least one suggestion for a failed result.
    """
    if result.valid:
        return []

    text = " ".join([result.error or "", *result.messages]).lower()
    suggestions: list[Suggestion] = []

    if _mentions(text, "missing", "required", "not found", "incomplete"):
        if _mentions(text, "metadata.id", "id:"):
            suggestions.append(
                Suggestion(
                    "Missing metadata.id",
                    "Every Gemara artifact must have a unique `metadata.id` field. Use "
                    "lowercase letters, numbers, hyphens, and underscores only "
                    "(e.g., `my-guidance-v1`).",
                )
            )
        if _mentions(text, "title"):
            suggestions.append(
                Suggestion(
                    "Missing metadata.title",
                    "The `metadata.title` field is required. Provide a human-readable "
                    "title for your artifact.",
                )
            )
        if layer == 1 and _mentions(text, "categories", "category"):
            suggestions.append(
                Suggestion(
                    "Missing categories",
                    "Layer 1 Guidance documents must have at least one `category` with at "
                    "least one `guideline`. Each category needs an `id` and `title`, and "
                    "each guideline needs an `id` and `title`.",
                )
            )
        if layer == 2 and _mentions(text, "controls", "control"):
            suggestions.append(
                Suggestion(
                    "Missing controls",
                    "Layer 2 Control Catalogs need `control-families`, each with at least "
                    "one `control` carrying an `id`, `title` and `objective`.",
                )
            )

    if _mentions(text, "date", "publication-date"):
        suggestions.append(
            Suggestion(
                "Invalid date format",
                "Dates must be in ISO 8601 format: `YYYY-MM-DD` (e.g., `2024-01-15`).",
            )
        )

    if _mentions(text, "document-type", "document type"):
        suggestions.append(
            Suggestion(
                "Invalid document-type",
                "The `metadata.document-type` field must be one of: `Framework`, "
                "`Standard`, or `Guideline`. Check spelling and capitalization.",
            )
        )

    if _mentions(text, "conflicting values", "mismatched types", "cannot use", "incompatible"):
        suggestions.append(
            Suggestion(
                "Type mismatch",
                "Check that field types match the schema: quote text values, use `-` "
                "items for lists, and make sure nested objects are indented correctly.",
            )
        )

    if _mentions(text, "yaml", "parse", "syntax") and result.failure in (
        "YAML_PARSE_ERROR",
        "YAML_SAFETY_ERROR",
    ):
        suggestions.append(
            Suggestion(
                "YAML syntax error",
                "Check your YAML syntax: indent with spaces (not tabs), quote strings "
                "containing special characters, and use `-` for list items.",
            )
        )

    if _mentions(text, "reference-id", "guideline-mappings", "control-references", "guidance-references"):
        suggestions.append(
            Suggestion(
                "Invalid reference",
                "References need a `reference-id` naming an existing artifact. Use "
                "`list_layer1_guidance` or `list_layer2_controls` to see available ids, "
                "and `get_artifact_relationships` to check what resolves.",
            )
        )

    if _mentions(text, "applicability", "jurisdiction", "technology-domain", "industry-sector"):
        suggestions.append(
            Suggestion(
                "Applicability field issues",
                "`metadata.applicability` holds lists of strings: `jurisdictions`, "
                "`technology-domains`, and `industry-sectors`.",
            )
        )

    if not suggestions:
        suggestions.append(
            Suggestion(
                "General validation error",
                f"Review the errors above. `get_layer_schema_info(layer={layer})` shows the "
                "schema requirements and the `create_layer*` prompts include examples.",
            )
        )
    return suggestions
