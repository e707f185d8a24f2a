"""Output shaping for text forwarded to the host."""

from __future__ import annotations

from typing import Any, Dict, Optional

MAX_ERROR_LENGTH = 1000
MAX_TOOL_RESULT_CHARS = 20000
HEAD_RATIO = 0.65

ERROR_PREFIXES = ("API Error", "API error", "Error:", "Error ")


def truncate_string(text: Optional[str], limit: int = MAX_ERROR_LENGTH) -> Optional[str]:
    if not text or len(text) <= limit:
        return text
    return f"{text[:limit]}... [truncated, total {len(text)} chars]"


def looks_like_error(text: Any) -> bool:
    return isinstance(text, str) and text.startswith(ERROR_PREFIXES)


def truncate_error_content(text: Any, limit: int = MAX_ERROR_LENGTH) -> Any:
    """Cap error-looking text; anything else passes through."""
    if looks_like_error(text) and len(text) > limit:
        return truncate_string(text, limit)
    return text


def truncate_tail(text: str, limit: int = MAX_TOOL_RESULT_CHARS) -> str:
    """Keep the head and the tail of ``text`` around a marker naming its length."""
    if len(text) <= limit:
        return text
    head = int(limit * HEAD_RATIO)
    tail = limit - head
    return (
        f"{text[:head]}\n...\n(truncated, original length: {len(text)} chars)\n...\n"
        f"{text[-tail:]}"
    )


def truncate_tool_result_block(
    block: Dict[str, Any], limit: int = MAX_TOOL_RESULT_CHARS
) -> Dict[str, Any]:
    """Copy of a ``tool_result`` block with oversized text content shortened."""
    if not isinstance(block, dict):
        return block
    content = block.get("content")
    if isinstance(content, str):
        if len(content) <= limit:
            return block
        return {**block, "content": truncate_tail(content, limit)}
    if isinstance(content, list):
        changed = False
        items = []
        for item in content:
            text = item.get("text") if isinstance(item, dict) else None
            if (
                isinstance(item, dict)
                and item.get("type") == "text"
                and isinstance(text, str)
                and len(text) > limit
            ):
                item = {**item, "text": truncate_tail(text, limit)}
                changed = True
            items.append(item)
        if changed:
            return {**block, "content": items}
    return block


def usage_payload(usage: Any) -> Dict[str, int]:
    """The four token counters reported with ``[USAGE]``."""

    def pick(key: str) -> int:
        if isinstance(usage, dict):
            value = usage.get(key)
        else:
            value = getattr(usage, key, None)
        return int(value or 0)

    return {
        "input_tokens": pick("input_tokens"),
        "output_tokens": pick("output_tokens"),
        "cache_creation_input_tokens": pick("cache_creation_input_tokens"),
        "cache_read_input_tokens": pick("cache_read_input_tokens"),
    }


__all__ = [
    "MAX_ERROR_LENGTH",
    "MAX_TOOL_RESULT_CHARS",
    "looks_like_error",
    "truncate_error_content",
    "truncate_string",
    "truncate_tail",
    "truncate_tool_result_block",
    "usage_payload",
]
