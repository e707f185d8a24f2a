"""Probes for MCP servers using the legacy SSE transport.

The handshake is strictly ordered: open the event stream, wait for the
``endpoint`` event, POST ``initialize`` to that endpoint, then read the
``message`` event answering it.
"""

from __future__ import annotations

import asyncio
import json
from contextlib import aclosing
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple
from urllib.parse import urljoin

import httpx
from mcp.client.sse import sse_client

from agent_bridge.mcp.config import McpServerConfig
from agent_bridge.mcp.http import prepare_request
from agent_bridge.mcp.models import ServerStatus
from agent_bridge.mcp.protocol import INITIALIZE_ID, initialize_request, rpc_error_message
from agent_bridge.mcp.tools import describe_error, list_tools_over
from agent_bridge.protocol.timeouts import MCP_SSE_TOOLS_TIMEOUT_SEC, MCP_SSE_VERIFY_TIMEOUT_SEC
from agent_bridge.utils.log import get_logger

logger = get_logger()

SseEvent = Tuple[str, str]


async def iter_sse_events(response: httpx.Response) -> AsyncIterator[SseEvent]:
    """Yield ``(event, data)`` pairs; the event name defaults to ``message``."""
    event = ""
    data: List[str] = []
    async for line in response.aiter_lines():
        if not line:
            if data:
                yield event or "message", "\n".join(data)
            event, data = "", []
        elif line.startswith("event:"):
            event = line[6:].strip()
        elif line.startswith("data:"):
            data.append(line[5:].lstrip())
    if data:
        yield event or "message", "\n".join(data)


def _status_from_reply(name: str, message: Dict[str, Any]) -> ServerStatus:
    if message.get("error") is not None:
        return ServerStatus.failed(name, rpc_error_message(message["error"]))
    result = message.get("result")
    info = result.get("serverInfo") if isinstance(result, dict) else None
    return ServerStatus.connected(name, info if isinstance(info, dict) else None)


async def _handshake(
    client: httpx.AsyncClient, name: str, url: str, headers: Dict[str, str]
) -> ServerStatus:
    async with client.stream(
        "GET", url, headers={"Accept": "text/event-stream", **headers}
    ) as response:
        if not response.is_success:
            return ServerStatus.failed(name, f"HTTP {response.status_code}: {response.reason_phrase}")

        async with aclosing(iter_sse_events(response)) as events:
            return await _initialize_over(client, name, url, headers, events)


async def _initialize_over(
    client: httpx.AsyncClient,
    name: str,
    url: str,
    headers: Dict[str, str],
    events: AsyncIterator[SseEvent],
) -> ServerStatus:
    endpoint: Optional[str] = None
    async for event, data in events:
        if event == "endpoint":
            endpoint = urljoin(url, data.strip())
            break
    if endpoint is None:
        return ServerStatus.failed(name, "SSE stream closed before endpoint event")

    logger.debug("[mcp] SSE endpoint discovered", extra={"server": name, "endpoint": endpoint})
    post = await client.post(
        endpoint,
        json=initialize_request(),
        headers={"Content-Type": "application/json", **headers},
    )
    if not post.is_success:
        return ServerStatus.failed(name, f"HTTP {post.status_code}: {post.reason_phrase}")

    async for event, data in events:
        if event != "message":
            continue
        try:
            message = json.loads(data)
        except json.JSONDecodeError:
            continue
        if isinstance(message, dict) and message.get("id") == INITIALIZE_ID:
            return _status_from_reply(name, message)
    return ServerStatus.failed(name, "SSE stream closed before initialize response")


async def verify_sse_server(
    server: McpServerConfig,
    timeout: float = MCP_SSE_VERIFY_TIMEOUT_SEC,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ServerStatus:
    url, headers = prepare_request(server.url or "", server.headers)
    try:
        async with asyncio.timeout(timeout):
            async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
                return await _handshake(client, server.name, url, headers)
    except (TimeoutError, httpx.TimeoutException):
        logger.debug("[mcp] SSE probe timed out", extra={"server": server.name, "timeout": timeout})
        return ServerStatus.pending(server.name)
    except httpx.HTTPError as exc:
        logger.warning(
            "[mcp] SSE probe failed: %s: %s",
            type(exc).__name__,
            exc,
            extra={"server": server.name},
        )
        return ServerStatus.failed(server.name, str(exc) or type(exc).__name__)


async def list_sse_tools(
    server: McpServerConfig, timeout: float = MCP_SSE_TOOLS_TIMEOUT_SEC
) -> Tuple[List[Dict[str, Any]], Optional[str]]:
    url, headers = prepare_request(server.url or "", server.headers)
    try:
        async with asyncio.timeout(timeout):
            async with sse_client(url, headers=headers or None) as (read_stream, write_stream):
                tools = await list_tools_over(read_stream, write_stream)
    except TimeoutError:
        return [], f"Timed out listing tools after {int(timeout * 1000)}ms"
    except Exception as exc:
        logger.warning(
            "[mcp] Failed to list SSE tools: %s: %s",
            type(exc).__name__,
            exc,
            extra={"server": server.name},
        )
        return [], describe_error(exc)
    return tools, None


__all__ = ["iter_sse_events", "list_sse_tools", "verify_sse_server"]
