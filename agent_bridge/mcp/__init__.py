"""MCP server configuration and connectivity probes."""

from agent_bridge.mcp.config import (
    McpServerConfig,
    McpServersInfo,
    load_all_servers_info,
    load_enabled_servers,
)
from agent_bridge.mcp.models import ServerStatus, ToolsResult
from agent_bridge.mcp.server_info import parse_server_info
from agent_bridge.mcp.status import get_server_tools, get_servers_status, verify_server

__all__ = [
    "McpServerConfig",
    "McpServersInfo",
    "ServerStatus",
    "ToolsResult",
    "get_server_tools",
    "get_servers_status",
    "load_all_servers_info",
    "load_enabled_servers",
    "parse_server_info",
    "verify_server",
]
