"""Tool enumeration through the MCP client SDK."""

from __future__ import annotations

from typing import Any, Dict, List

import mcp.types as mcp_types
from mcp.client.session import ClientSession

from agent_bridge.mcp.protocol import client_info


def tool_to_dict(tool: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "name": tool.name,
        "description": tool.description or "",
        "inputSchema": tool.inputSchema,
    }
    annotations = getattr(tool, "annotations", None)
    if annotations is not None:
        payload["annotations"] = annotations.model_dump(exclude_none=True)
    return payload


def describe_error(exc: BaseException) -> str:
    """Readable message for ``exc``, unwrapping task-group exception groups."""
    while isinstance(exc, BaseExceptionGroup) and exc.exceptions:
        exc = exc.exceptions[0]
    return str(exc) or type(exc).__name__


async def list_tools_over(read_stream: Any, write_stream: Any) -> List[Dict[str, Any]]:
    """Run ``initialize`` then ``tools/list`` on an open transport."""
    async with ClientSession(
        read_stream,
        write_stream,
        client_info=mcp_types.Implementation(**client_info()),
    ) as session:
        await session.initialize()
        result = await session.list_tools()
    return [tool_to_dict(tool) for tool in result.tools]


__all__ = ["describe_error", "list_tools_over", "tool_to_dict"]
