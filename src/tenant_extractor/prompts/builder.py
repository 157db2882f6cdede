"""Dynamic prompt builder for extraction."""

import json
import re
from typing import Any

from tenant_extractor.core.config import TagDefinition
from tenant_extractor.core.resolver import ResolvedConfig


def resolve_tag_instruction(tag: TagDefinition) -> str:
    """Substitute ``{{param}}`` placeholders with the tag's parameter values.

    Resolved tags already carry tenant parameter overrides as their defaults.
    """
    instruction = tag.instruction
    for name, param in tag.parameters.items():
        instruction = re.sub(
            r"\{\{" + re.escape(name) + r"\}\}", lambda _, v=param.default: str(v), instruction
        )
    return instruction


class PromptBuilder:
    """Builds extraction prompts from a resolved tenant configuration."""

    DEFAULT_PREAMBLE = (
        "Analyze this document and extract the following information in JSON format:"
    )
    DEFAULT_GENERAL_RULES = (
        'If any field cannot be determined, use "Unknown" for text fields, "0" for amounts, '
        "false for booleans, or [] for arrays."
    )
    DEFAULT_SUFFIX = "Always return valid JSON that can be parsed directly."
    SUMMARY_HINT = "Brief summary of the document including key items, services, or products"

    def __init__(self, include_summary: bool | None = None) -> None:
        """Initialize the prompt builder.

        Args:
            include_summary: Force the summary field on or off. ``None`` follows
                the resolved output settings.
        """
        self.include_summary = include_summary

    def build_json_structure(self, config: ResolvedConfig) -> dict[str, Any]:
        """Build the example JSON object the model is asked to fill."""
        structure: dict[str, Any] = {}
        for field in config.enabled_fields:
            structure[field.key] = field.schema_hint

        if self._wants_summary(config):
            structure["summary"] = self.SUMMARY_HINT

        tags = config.enabled_tags
        if tags:
            structure["tags"] = {tag.id: "boolean" for tag in tags}
        return structure

    def build_rules(self, config: ResolvedConfig) -> str:
        """Build the per-field and per-tag instruction list."""
        lines = [f"- For {field.key}, {field.instruction}" for field in config.enabled_fields]
        if self._wants_summary(config):
            lines.append(
                "- For summary, provide a concise description of what this document is for "
                "(2-3 sentences max)"
            )
        rules = "\n".join(lines)

        tags = config.enabled_tags
        if tags:
            tag_lines = [
                f"- For tags.{tag.id} ({tag.label}): {resolve_tag_instruction(tag)}" for tag in tags
            ]
            rules += (
                "\n\nFor each tag below, set to true if the condition applies, false otherwise:\n"
                + "\n".join(tag_lines)
            )
        return rules

    def build_extraction_prompt(self, config: ResolvedConfig) -> str:
        """Build the full prompt sent alongside the document bytes.

        Args:
            config: The tenant's resolved configuration.

        Returns:
            The formatted extraction prompt.
        """
        template = config.prompt
        preamble = template.preamble or self.DEFAULT_PREAMBLE
        general_rules = template.general_rules or self.DEFAULT_GENERAL_RULES
        suffix = template.suffix or self.DEFAULT_SUFFIX

        json_example = json.dumps(self.build_json_structure(config), indent=2)

        return (
            f"{preamble}\n"
            f"{json_example}\n\n"
            f"Important extraction rules:\n"
            f"{self.build_rules(config)}\n\n"
            f"{general_rules}\n"
            f"{suffix}"
        )

    def _wants_summary(self, config: ResolvedConfig) -> bool:
        if self.include_summary is not None:
            return self.include_summary
        return config.output.include_summary
