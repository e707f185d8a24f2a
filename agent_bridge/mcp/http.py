"""Probes for MCP servers reached over streamable HTTP."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx
from mcp.client.streamable_http import streamablehttp_client

from agent_bridge.core.retry import is_retryable
from agent_bridge.mcp.config import McpServerConfig
from agent_bridge.mcp.models import ServerStatus
from agent_bridge.mcp.protocol import (
    ACCEPT_HEADER,
    initialize_request,
    parse_rpc_body,
    rpc_error_message,
)
from agent_bridge.mcp.tools import describe_error, list_tools_over
from agent_bridge.protocol.timeouts import MCP_HTTP_VERIFY_TIMEOUT_SEC, MCP_TOOLS_TIMEOUT_SEC
from agent_bridge.utils.log import get_logger

logger = get_logger()

MAX_TOOLS_RETRIES = 2
TOOLS_RETRY_DELAY_SEC = 0.5
SESSION_ERROR_MARKERS = ("session", "mcp-session-id")


def prepare_request(url: str, headers: Optional[Mapping[str, str]] = None) -> Tuple[str, Dict[str, str]]:
    """Move an ``Authorization`` query parameter into the request headers."""
    merged = dict(headers or {})
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    kept = []
    for key, value in query:
        if key.lower() == "authorization":
            merged.setdefault("Authorization", value)
        else:
            kept.append((key, value))
    if len(kept) == len(query):
        return url, merged
    return urlunsplit(parts._replace(query=urlencode(kept))), merged


async def verify_http_server(
    server: McpServerConfig,
    timeout: float = MCP_HTTP_VERIFY_TIMEOUT_SEC,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ServerStatus:
    """POST ``initialize`` and read the first JSON-RPC reply (plain or SSE framed)."""
    url, headers = prepare_request(server.url or "", server.headers)
    headers = {"Content-Type": "application/json", "Accept": ACCEPT_HEADER, **headers}
    try:
        async with asyncio.timeout(timeout):
            async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
                async with client.stream(
                    "POST", url, json=initialize_request(), headers=headers
                ) as response:
                    if not response.is_success:
                        return ServerStatus.failed(
                            server.name, f"HTTP {response.status_code}: {response.reason_phrase}"
                        )
                    body = ""
                    message = None
                    async for chunk in response.aiter_text():
                        body += chunk
                        message = parse_rpc_body(body)
                        if message is not None:
                            break
    except (TimeoutError, httpx.TimeoutException):
        logger.debug("[mcp] HTTP probe timed out", extra={"server": server.name, "timeout": timeout})
        return ServerStatus.pending(server.name)
    except httpx.HTTPError as exc:
        logger.warning(
            "[mcp] HTTP probe failed: %s: %s",
            type(exc).__name__,
            exc,
            extra={"server": server.name},
        )
        return ServerStatus.failed(server.name, str(exc) or type(exc).__name__)

    if message is None:
        return ServerStatus.failed(server.name, "Invalid JSON-RPC response")
    if message.get("error") is not None:
        return ServerStatus.failed(server.name, rpc_error_message(message["error"]))
    result = message.get("result")
    if isinstance(result, dict):
        info = result.get("serverInfo")
        return ServerStatus.connected(server.name, info if isinstance(info, dict) else None)
    return ServerStatus.failed(server.name, "Invalid JSON-RPC response")


def _should_retry_tools(error: str) -> bool:
    lowered = error.lower()
    return any(marker in lowered for marker in SESSION_ERROR_MARKERS) or is_retryable(
        Exception(error)
    )


async def list_http_tools(
    server: McpServerConfig,
    timeout: float = MCP_TOOLS_TIMEOUT_SEC,
    retry_delay: float = TOOLS_RETRY_DELAY_SEC,
) -> Tuple[List[Dict[str, Any]], Optional[str]]:
    """List tools; the client SDK tracks ``Mcp-Session-Id`` across requests."""
    url, headers = prepare_request(server.url or "", server.headers)
    error: Optional[str] = None
    for attempt in range(MAX_TOOLS_RETRIES + 1):
        try:
            async with asyncio.timeout(timeout):
                async with streamablehttp_client(url=url, headers=headers or None) as (
                    read_stream,
                    write_stream,
                    _get_session_id,
                ):
                    return await list_tools_over(read_stream, write_stream), None
        except TimeoutError:
            return [], f"Timed out listing tools after {int(timeout * 1000)}ms"
        except Exception as exc:
            error = describe_error(exc)
            logger.warning(
                "[mcp] Failed to list HTTP tools: %s: %s",
                type(exc).__name__,
                error,
                extra={"server": server.name, "attempt": attempt + 1},
            )
            if attempt >= MAX_TOOLS_RETRIES or not _should_retry_tools(error):
                break
            await asyncio.sleep(retry_delay * (attempt + 1))
    return [], error


__all__ = ["list_http_tools", "prepare_request", "verify_http_server"]
