"""Timeout constants shared by the bridge and the MCP probes."""

from __future__ import annotations

import os


def _env_ms(name: str, default_ms: int) -> float:
    """Read a millisecond env override and return seconds."""
    raw = os.getenv(name)
    try:
        value = int(raw) if raw else 0
    except ValueError:
        value = 0
    return (value or default_ms) / 1000.0


MCP_HTTP_VERIFY_TIMEOUT_SEC = _env_ms("MCP_HTTP_VERIFY_TIMEOUT", 6000)
MCP_SSE_VERIFY_TIMEOUT_SEC = _env_ms("MCP_SSE_VERIFY_TIMEOUT", 10000)
MCP_SSE_TOOLS_TIMEOUT_SEC = _env_ms("MCP_SSE_TOOLS_TIMEOUT", 30000)
MCP_STDIO_VERIFY_TIMEOUT_SEC = _env_ms("MCP_STDIO_VERIFY_TIMEOUT", 8000)
MCP_TOOLS_TIMEOUT_SEC = _env_ms("MCP_TOOLS_TIMEOUT", 45000)

REWIND_TIMEOUT_SEC = 45.0
RESUME_FILE_WAIT_SEC = 2.5
RESUME_FILE_POLL_SEC = 0.1
PERMISSION_TIMEOUT_SEC = float(os.getenv("AGENT_BRIDGE_PERMISSION_TIMEOUT", "300"))
PERMISSION_POLL_SEC = 0.1
STDIN_READ_TIMEOUT_SEC = 5.0

__all__ = [
    "MCP_HTTP_VERIFY_TIMEOUT_SEC",
    "MCP_SSE_TOOLS_TIMEOUT_SEC",
    "MCP_SSE_VERIFY_TIMEOUT_SEC",
    "MCP_STDIO_VERIFY_TIMEOUT_SEC",
    "MCP_TOOLS_TIMEOUT_SEC",
    "PERMISSION_POLL_SEC",
    "PERMISSION_TIMEOUT_SEC",
    "RESUME_FILE_POLL_SEC",
    "RESUME_FILE_WAIT_SEC",
    "REWIND_TIMEOUT_SEC",
    "STDIN_READ_TIMEOUT_SEC",
]
