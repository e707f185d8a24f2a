"""Probes for MCP servers launched as local processes."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Tuple

import anyio
from mcp.client.stdio import StdioServerParameters, stdio_client

from agent_bridge.core.errors import CommandRejectedError
from agent_bridge.mcp.config import McpServerConfig
from agent_bridge.mcp.models import ServerStatus
from agent_bridge.mcp.protocol import encode_line, initialize_request
from agent_bridge.mcp.server_info import has_valid_response, parse_server_info
from agent_bridge.mcp.tools import describe_error, list_tools_over
from agent_bridge.protocol.timeouts import MCP_STDIO_VERIFY_TIMEOUT_SEC, MCP_TOOLS_TIMEOUT_SEC
from agent_bridge.utils.log import get_logger
from agent_bridge.utils.process import ProcessSupervisor, build_safe_env, validate_command

logger = get_logger()

PREVIEW_CHARS = 500
NO_RESPONSE = "No response from server"
STDERR_GRACE_SEC = 0.2


async def _drain(stream: Any, sink: List[str]) -> None:
    if stream is None:
        return
    try:
        async for chunk in stream:
            sink.append(chunk.decode("utf-8", errors="replace"))
    except (anyio.BrokenResourceError, anyio.ClosedResourceError):
        return


def _status_on_exit(name: str, returncode: Optional[int], stdout: str, stderr: str) -> ServerStatus:
    if has_valid_response(stdout) or "MCP" in stdout:
        return ServerStatus.connected(name, parse_server_info(stdout))
    if returncode not in (None, 0):
        return ServerStatus.failed(
            name,
            f"Process exited with code {returncode}. "
            f"stderr: {stderr[:PREVIEW_CHARS]}. stdout: {stdout[:PREVIEW_CHARS]}",
        )
    return ServerStatus.pending(name, stderr.strip() or NO_RESPONSE)


async def _handshake(process: Any, name: str) -> ServerStatus:
    stdout_parts: List[str] = []
    stderr_parts: List[str] = []
    stderr_task = asyncio.create_task(_drain(process.stderr, stderr_parts))
    try:
        try:
            await process.stdin.send(encode_line(initialize_request()))
            await process.stdin.aclose()
        except (anyio.BrokenResourceError, anyio.ClosedResourceError, OSError) as exc:
            logger.debug(
                "[mcp] Could not write initialize request: %s: %s",
                type(exc).__name__,
                exc,
                extra={"server": name},
            )

        async for chunk in process.stdout:
            stdout_parts.append(chunk.decode("utf-8", errors="replace"))
            stdout = "".join(stdout_parts)
            if has_valid_response(stdout):
                return ServerStatus.connected(name, parse_server_info(stdout))

        returncode = await process.wait()
        await asyncio.wait({stderr_task}, timeout=STDERR_GRACE_SEC)
        return _status_on_exit(name, returncode, "".join(stdout_parts), "".join(stderr_parts))
    finally:
        stderr_task.cancel()


async def verify_stdio_server(
    server: McpServerConfig,
    supervisor: Optional[ProcessSupervisor] = None,
    timeout: float = MCP_STDIO_VERIFY_TIMEOUT_SEC,
) -> ServerStatus:
    """Spawn the server, send ``initialize`` and judge it from its output."""
    verdict = validate_command(server.command)
    if not verdict.valid:
        logger.warning(
            "[mcp] Rejected server command",
            extra={"server": server.name, "command": server.command, "reason": verdict.reason},
        )
        return ServerStatus.failed(server.name, verdict.reason or "Command rejected")

    supervisor = supervisor or ProcessSupervisor()
    try:
        process = await supervisor.spawn(
            server.command or "", server.args, env=build_safe_env(server.env)
        )
    except (CommandRejectedError, OSError) as exc:
        logger.warning(
            "[mcp] Failed to start server: %s: %s",
            type(exc).__name__,
            exc,
            extra={"server": server.name},
        )
        return ServerStatus.failed(server.name, str(exc) or type(exc).__name__)

    try:
        async with asyncio.timeout(timeout):
            return await _handshake(process, server.name)
    except TimeoutError:
        logger.debug("[mcp] Stdio probe timed out", extra={"server": server.name, "timeout": timeout})
        return ServerStatus.pending(server.name)
    finally:
        supervisor.kill(process, server.name)


async def list_stdio_tools(
    server: McpServerConfig, timeout: float = MCP_TOOLS_TIMEOUT_SEC
) -> Tuple[List[Dict[str, Any]], Optional[str]]:
    verdict = validate_command(server.command)
    if not verdict.valid:
        return [], verdict.reason or "Command rejected"

    params = StdioServerParameters(
        command=server.command or "",
        args=list(server.args),
        env=build_safe_env(server.env),
    )
    try:
        async with asyncio.timeout(timeout):
            async with stdio_client(params) as (read_stream, write_stream):
                tools = await list_tools_over(read_stream, write_stream)
    except TimeoutError:
        return [], f"Timed out listing tools after {int(timeout * 1000)}ms"
    except Exception as exc:
        logger.warning(
            "[mcp] Failed to list stdio tools: %s: %s",
            type(exc).__name__,
            exc,
            extra={"server": server.name},
        )
        return [], describe_error(exc)
    return tools, None


__all__ = ["list_stdio_tools", "verify_stdio_server"]
