from __future__ import annotations

import json
import re
from typing import Any

_FENCE_RE = re.compile(r"^```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?```\s*$", re.DOTALL)


def strip_code_fences(raw: str) -> str:
    """Remove a surrounding ```json ... ``` block, which models add unprompted."""
    text = raw.strip()
    match = _FENCE_RE.match(text)
    return match.group(1).strip() if match else text


def parse_json_object(raw: str, error_cls: type[Exception]) -> dict[str, Any]:
    """Extract JSON object from a raw model string, raising error_cls on failure.

    Strips code fences, tries a full-string parse, then falls back to the
    outermost {...} block. The original exception is chained.
    """
    text = strip_code_fences(raw or "")
    try:
        data = json.loads(text)
        if isinstance(data, dict):
            return data
        raise error_cls("Expected JSON object in model output")
    except json.JSONDecodeError as exc:
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end == -1 or end < start:
            raise error_cls("No JSON detected in model output") from exc
        try:
            data = json.loads(text[start : end + 1])
            if isinstance(data, dict):
                return data
            raise error_cls("Expected JSON object in model output")
        except json.JSONDecodeError as exc2:
            raise error_cls("Malformed JSON in model output") from exc2
