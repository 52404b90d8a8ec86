"""
Recovering and validating the agent's structured listing output.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from pydantic import ValidationError

from agent.errors import ExtractionError, OutputValidationError
from models.schemas import ListingAgentOutput

log = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?([\s\S]*?)\n?```")


def extract_json(text: str) -> Any:
    """Pull a single JSON object out of free-form model text.

    Tried in order, first success wins:
      1. the whole (trimmed) text
      2. the interior of a ``` / ```json fenced block
      3. the span from the first '{' to the last '}'
    """
    stripped = text.strip()
    try:
        return json.loads(stripped)
    except json.JSONDecodeError:
        pass

    match = _FENCE_RE.search(stripped)
    if match:
        try:
            return json.loads(match.group(1).strip())
        except json.JSONDecodeError:
            pass

    start = stripped.find("{")
    end = stripped.rfind("}")
    if start != -1 and end > start:
        try:
            return json.loads(stripped[start:end + 1])
        except json.JSONDecodeError:
            pass

    log.error("Could not extract JSON from agent response: %s", stripped[:500])
    raise ExtractionError("Could not extract JSON from agent response")


def _describe(err: ValidationError) -> str:
    parts = []
    for e in err.errors():
        loc = ".".join(str(p) for p in e["loc"]) or "<root>"
        parts.append(f"{loc}: {e['msg']}")
    return "; ".join(parts)


def validate_listing_output(value: Any) -> ListingAgentOutput:
    """Validate parsed JSON against the listing contract. Never partially accepts."""
    try:
        return ListingAgentOutput.model_validate(value)
    except ValidationError as e:
        raise OutputValidationError(f"Agent output validation failed: {_describe(e)}") from e


def parse_listing_output(text: str) -> ListingAgentOutput:
    """Extraction ladder followed by validation."""
    return validate_listing_output(extract_json(text))
