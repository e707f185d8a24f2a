"""Extract JSON objects embedded in noisy text."""

from __future__ import annotations

import json
from typing import Any, Dict, Optional


def extract_balanced_object(text: str, marker: str = "") -> Optional[str]:
    """Return the first balanced ``{...}`` substring at or after ``marker``.

    Braces inside JSON strings are ignored. Returns ``None`` when the marker
    is missing, no object starts after it, or the object is never closed.
    """
    start_from = 0
    if marker:
        idx = text.find(marker)
        if idx < 0:
            return None
        start_from = idx + len(marker)

    start = text.find("{", start_from)
    if start < 0:
        return None

    depth = 0
    in_string = False
    escaped = False
    for pos in range(start, len(text)):
        char = text[pos]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : pos + 1]
    return None


def parse_balanced_object(text: str, marker: str = "") -> Optional[Dict[str, Any]]:
    """Like :func:`extract_balanced_object` but parsed; invalid JSON yields ``None``."""
    candidate = extract_balanced_object(text, marker)
    if candidate is None:
        return None
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


__all__ = ["extract_balanced_object", "parse_balanced_object"]
