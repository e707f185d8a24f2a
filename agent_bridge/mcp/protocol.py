"""JSON-RPC framing shared by the MCP probes."""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Optional

from agent_bridge import __version__

PROTOCOL_VERSION = "2024-11-05"
CLIENT_NAME = "agent-bridge"
INITIALIZE_ID = 1
ACCEPT_HEADER = "application/json, text/event-stream"


def client_info() -> Dict[str, str]:
    return {"name": CLIENT_NAME, "version": __version__}


def initialize_request(request_id: int = INITIALIZE_ID) -> Dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "method": "initialize",
        "params": {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {},
            "clientInfo": client_info(),
        },
    }


def encode_line(message: Dict[str, Any]) -> bytes:
    return (json.dumps(message) + "\n").encode("utf-8")


def iter_sse_data(text: str) -> Iterable[str]:
    """Yield the ``data:`` payloads of an SSE body, one per event."""
    buffer: List[str] = []
    for line in text.splitlines():
        if line.startswith("data:"):
            buffer.append(line[5:].lstrip())
        elif not line.strip() and buffer:
            yield "\n".join(buffer)
            buffer = []
    if buffer:
        yield "\n".join(buffer)


def parse_rpc_body(text: str) -> Optional[Dict[str, Any]]:
    """First JSON-RPC object in a plain JSON or SSE-framed body."""
    stripped = text.strip()
    if not stripped:
        return None
    try:
        parsed = json.loads(stripped)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, dict):
        return parsed
    for data in iter_sse_data(stripped):
        try:
            parsed = json.loads(data)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed
    return None


def rpc_error_message(error: Any) -> str:
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str) and message:
            return message
    return json.dumps(error) if not isinstance(error, str) else error


__all__ = [
    "ACCEPT_HEADER",
    "CLIENT_NAME",
    "INITIALIZE_ID",
    "PROTOCOL_VERSION",
    "client_info",
    "encode_line",
    "initialize_request",
    "iter_sse_data",
    "parse_rpc_body",
    "rpc_error_message",
]
