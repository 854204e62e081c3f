"""Normalization of model replies into JSON objects.

Models wrap their JSON in markdown fences, prose, or both. Every
model-calling stage runs the reply through :func:`extract_json_object`
before reading any keys.
"""

import json
import math
import re
from typing import Any

from docintel.errors import MalformedResponse

_FENCE_RE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)


def clean_json_response(content: str) -> str:
    """Strip markdown fencing and surrounding prose from a model reply.

    Args:
        content: Raw reply text.

    Returns:
        The span from the first ``{`` to the last ``}``, or the stripped
        text when no such span exists.
    """
    content = _FENCE_RE.sub("", content).strip()
    first = content.find("{")
    last = content.rfind("}")
    if first != -1 and last > first:
        return content[first : last + 1]
    return content


def extract_json_object(content: str | None) -> dict[str, Any]:
    """Parse the first JSON object embedded in a model reply.

    Args:
        content: Raw reply text, possibly wrapped in markdown or prose.

    Returns:
        The parsed object.

    Raises:
        MalformedResponse: If the reply is empty, not JSON, or not an object.
    """
    if not content or not content.strip():
        raise MalformedResponse("Empty model reply")

    cleaned = clean_json_response(content)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise MalformedResponse(f"Model reply is not valid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise MalformedResponse(
            f"Expected a JSON object, got {type(data).__name__}"
        )
    return data


def clamp_confidence(value: Any, default: float) -> float:
    """Coerce a model-reported confidence into the ``[0, 1]`` range.

    Args:
        value: Reported value, of any type.
        default: Value used when the report is missing or not numeric.

    Returns:
        Confidence between 0.0 and 1.0.
    """
    if isinstance(value, bool) or value is None:
        return default
    try:
        score = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(score):
        return default
    return min(max(score, 0.0), 1.0)
