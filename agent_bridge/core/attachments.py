"""Attachment handling for user turns."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from agent_bridge.utils.log import get_logger

logger = get_logger()


def load_attachments(stdin_data: Any) -> List[Dict[str, Any]]:
    """Attachments from the stdin payload, else from ``CLAUDE_ATTACHMENTS_FILE``.

    The payload may be the bare list or an object with an ``attachments`` key.
    """
    if isinstance(stdin_data, list):
        return stdin_data
    if isinstance(stdin_data, dict) and isinstance(stdin_data.get("attachments"), list):
        return stdin_data["attachments"]

    file_path = os.getenv("CLAUDE_ATTACHMENTS_FILE")
    if not file_path:
        return []
    try:
        data = json.loads(Path(file_path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError, UnicodeDecodeError) as exc:
        logger.warning(
            "[attachments] Failed to load attachments file: %s: %s",
            type(exc).__name__,
            exc,
            extra={"path": file_path},
        )
        return []
    return data if isinstance(data, list) else []


def build_content_blocks(
    attachments: List[Dict[str, Any]], message: Optional[str]
) -> List[Dict[str, Any]]:
    """User message blocks: one per attachment, then the text.

    Images become base64 ``image`` blocks; any other type is referenced by
    name only.
    """
    blocks: List[Dict[str, Any]] = []
    for attachment in attachments:
        media_type = attachment.get("mediaType")
        media_type = media_type if isinstance(media_type, str) else ""
        if media_type.startswith("image/"):
            blocks.append(
                {
                    "type": "image",
                    "source": {
                        "type": "base64",
                        "media_type": media_type,
                        "data": attachment.get("data"),
                    },
                }
            )
        else:
            name = attachment.get("fileName") or "Attachment"
            blocks.append({"type": "text", "text": f"[Attachment: {name}]"})

    text = message or ""
    if not text.strip():
        images = sum(1 for block in blocks if block["type"] == "image")
        if images:
            text = f"[Uploaded {images} image(s)]"
        elif blocks:
            text = "[Uploaded attachment(s)]"
        else:
            text = "[Empty message]"
    blocks.append({"type": "text", "text": text})
    return blocks


__all__ = ["build_content_blocks", "load_attachments"]
