"""Parse and normalize raw model responses."""

import json
import re
from typing import Any

from tenant_extractor.core.exceptions import TerminalGatewayError
from tenant_extractor.core.resolver import ResolvedConfig
from tenant_extractor.results.types import MAX_RAW_RESPONSE_LENGTH, Extraction, TokenUsage

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


def parse_response(text: str) -> dict[str, Any]:
    """Decode a JSON object from the model's text, tolerating markdown fences.

    Raises:
        TerminalGatewayError: If the text is not a JSON object.
    """
    cleaned = _FENCE.sub("", text.strip()).strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise TerminalGatewayError(
            f"Failed to parse response as JSON: {e}",
            raw_response=text[:MAX_RAW_RESPONSE_LENGTH],
        ) from e
    if not isinstance(data, dict):
        raise TerminalGatewayError(
            f"Expected a JSON object, got {type(data).__name__}",
            raw_response=text[:MAX_RAW_RESPONSE_LENGTH],
        )
    return data


def normalize_extraction(
    data: dict[str, Any],
    config: ResolvedConfig,
    token_usage: TokenUsage | None = None,
    raw_response: str | None = None,
) -> Extraction:
    """Coerce each enabled field to its type and default missing values.

    Every enabled tag gets a boolean; anything else the model returned under
    ``tags`` is dropped.
    """
    fields: dict[str, Any] = {}
    for field in config.enabled_fields:
        fields[field.key] = field.type.coerce(data.get(field.key))

    raw_tags = data.get("tags")
    raw_tags = raw_tags if isinstance(raw_tags, dict) else {}
    tags = {
        tag.id: raw_tags.get(tag.id) if isinstance(raw_tags.get(tag.id), bool) else False
        for tag in config.enabled_tags
    }

    summary = data.get("summary")
    return Extraction(
        fields=fields,
        tags=tags,
        summary=str(summary) if summary is not None else None,
        token_usage=token_usage or TokenUsage(),
        raw_response=raw_response,
    )
