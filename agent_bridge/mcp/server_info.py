"""Pull ``serverInfo`` out of an MCP server's raw stdout."""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from agent_bridge.utils.json_scan import parse_balanced_object
from agent_bridge.utils.log import get_logger

logger = get_logger()

MAX_LINE_LENGTH = 10000
SERVER_INFO_MARKER = '"serverInfo"'


def _from_line(line: str) -> Optional[Dict[str, Any]]:
    try:
        message = json.loads(line)
    except json.JSONDecodeError:
        message = None
    if isinstance(message, dict):
        result = message.get("result")
        if isinstance(result, dict) and isinstance(result.get("serverInfo"), dict):
            return result["serverInfo"]
    # Lines with a log prefix or trailing noise still carry the object.
    return parse_balanced_object(line, SERVER_INFO_MARKER)


def parse_server_info(stdout: str) -> Optional[Dict[str, Any]]:
    """Best-effort ``serverInfo`` from the initialize response, if present."""
    for line in stdout.splitlines():
        if len(line) > MAX_LINE_LENGTH:
            logger.debug("[mcp] Skipping oversized stdout line", extra={"length": len(line)})
            continue
        if SERVER_INFO_MARKER not in line:
            continue
        info = _from_line(line)
        if info is not None:
            return info
    return None


def has_valid_response(stdout: str) -> bool:
    return '"jsonrpc"' in stdout or '"result"' in stdout


__all__ = ["MAX_LINE_LENGTH", "has_valid_response", "parse_server_info"]
