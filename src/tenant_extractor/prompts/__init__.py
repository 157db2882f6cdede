"""Prompt construction and response parsing."""

from tenant_extractor.prompts.builder import PromptBuilder, resolve_tag_instruction
from tenant_extractor.prompts.parser import normalize_extraction, parse_response

__all__ = [
    "PromptBuilder",
    "normalize_extraction",
    "parse_response",
    "resolve_tag_instruction",
]
