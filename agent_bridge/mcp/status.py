"""Aggregate MCP server status and per-server tool listings."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Tuple

from agent_bridge.mcp.config import (
    TRANSPORT_HTTP,
    TRANSPORT_SSE,
    McpServerConfig,
    load_all_servers_info,
)
from agent_bridge.mcp.http import list_http_tools, verify_http_server
from agent_bridge.mcp.models import ServerStatus, ToolsResult
from agent_bridge.mcp.sse import list_sse_tools, verify_sse_server
from agent_bridge.mcp.stdio import list_stdio_tools, verify_stdio_server
from agent_bridge.mcp.tools import describe_error
from agent_bridge.utils.log import get_logger

logger = get_logger()

MAX_CONCURRENT_PROBES = 8
DISABLED_ERROR = "Server is disabled"


async def verify_server(server: McpServerConfig) -> ServerStatus:
    if server.transport == TRANSPORT_HTTP:
        return await verify_http_server(server)
    if server.transport == TRANSPORT_SSE:
        return await verify_sse_server(server)
    return await verify_stdio_server(server)


async def list_server_tools(server: McpServerConfig) -> Tuple[List[Dict[str, Any]], Optional[str]]:
    if server.transport == TRANSPORT_HTTP:
        return await list_http_tools(server)
    if server.transport == TRANSPORT_SSE:
        return await list_sse_tools(server)
    return await list_stdio_tools(server)


async def get_servers_status(
    cwd: Optional[str] = None, concurrency: int = MAX_CONCURRENT_PROBES
) -> List[Dict[str, Any]]:
    """Probe enabled servers concurrently; disabled and invalid ones are reported without I/O."""
    info = load_all_servers_info(cwd)
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def probe(server: McpServerConfig) -> ServerStatus:
        async with semaphore:
            try:
                return await verify_server(server)
            except Exception as exc:
                logger.warning(
                    "[mcp] Probe crashed: %s: %s",
                    type(exc).__name__,
                    exc,
                    extra={"server": server.name},
                )
                return ServerStatus.failed(server.name, describe_error(exc))

    statuses: List[ServerStatus] = list(
        await asyncio.gather(*(probe(server) for server in info.enabled))
    )
    statuses.extend(ServerStatus.failed(server.name, DISABLED_ERROR) for server in info.disabled)
    statuses.extend(
        ServerStatus.failed(entry.name, f"Invalid config: {entry.reason}") for entry in info.invalid
    )
    logger.debug(
        "[mcp] Status summary",
        extra={
            "cwd": cwd,
            "connected": [s.name for s in statuses if s.status == "connected"],
            "failed": [s.name for s in statuses if s.status == "failed"],
            "pending": [s.name for s in statuses if s.status == "pending"],
        },
    )
    return [status.to_dict() for status in statuses]


async def get_server_tools(server_id: str, cwd: Optional[str] = None) -> Dict[str, Any]:
    server = next(
        (entry for entry in load_all_servers_info(cwd).enabled if entry.name == server_id), None
    )
    if server is None:
        return {"success": False, "serverId": server_id, "error": f"Server not found: {server_id}"}

    tools, error = await list_server_tools(server)
    logger.debug(
        "[mcp] Listed tools",
        extra={"server": server.name, "count": len(tools), "error_message": error},
    )
    return ToolsResult(server_id, server.name, tools, error).to_dict()


__all__ = ["get_server_tools", "get_servers_status", "list_server_tools", "verify_server"]
