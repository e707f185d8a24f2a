"""Main CLI entry point for the agent bridge.

Every command prints its IPC lines on stdout and finishes with one JSON line
the host parses as the command's result.
"""

import asyncio
import json
import sys
from typing import Any, Dict, Optional

import click

from agent_bridge import __version__
from agent_bridge.core.attachments import load_attachments
from agent_bridge.core.bridge import SessionBridge, TurnInput
from agent_bridge.core.errors import BridgeError
from agent_bridge.core.permissions import PERMISSION_MODES
from agent_bridge.core.providers import PROVIDER_NAMES, get_provider
from agent_bridge.core.rewind import RewindResolver
from agent_bridge.core.session_store import SessionStore
from agent_bridge.mcp.status import get_server_tools, get_servers_status
from agent_bridge.protocol.ipc import IpcEmitter
from agent_bridge.protocol.stdin import read_stdin_payload
from agent_bridge.utils.log import get_logger
from agent_bridge.utils.path_utils import is_safe_session_id

logger = get_logger()


def _parse_json_option(value: Optional[str], option: str) -> Optional[Dict[str, Any]]:
    if not value:
        return None
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as exc:
        raise click.BadParameter(f"invalid JSON: {exc}", param_hint=option) from exc
    if not isinstance(parsed, dict):
        raise click.BadParameter("expected a JSON object", param_hint=option)
    return parsed


def _apply_stdin_payload(turn: TurnInput, payload: Any) -> None:
    """Fill turn fields the host chose to send on stdin instead of argv."""
    if not isinstance(payload, dict):
        return
    message = payload.get("message")
    if isinstance(message, str) and message:
        turn.message = message
    if isinstance(payload.get("openedFiles"), dict):
        turn.opened_files = payload["openedFiles"]
    if isinstance(payload.get("agentPrompt"), str):
        turn.agent_prompt = payload["agentPrompt"]
    if isinstance(payload.get("streaming"), bool):
        turn.streaming = payload["streaming"]


async def _send(turn: TurnInput, provider: Optional[str]) -> Dict[str, Any]:
    bridge = SessionBridge(provider_factory=lambda: get_provider(provider))
    try:
        return await bridge.send_turn(turn)
    finally:
        await bridge.aclose()


def _turn_options(func: Any) -> Any:
    options = [
        click.option("--session", "session_id", type=str, help="Session id to resume"),
        click.option("--cwd", type=str, help="Working directory of the agent"),
        click.option(
            "--permission-mode",
            type=click.Choice(sorted(PERMISSION_MODES)),
            default=None,
            help="Tool permission mode",
        ),
        click.option("--model", type=str, help="Model id; the family is derived from it"),
        click.option("--opened-files", type=str, help="IDE state as a JSON object"),
        click.option("--agent-prompt", type=str, help="Custom agent instructions"),
        click.option(
            "--streaming/--no-streaming",
            default=None,
            help="Stream deltas (defaults to settings.json)",
        ),
        click.option(
            "--provider",
            type=click.Choice(PROVIDER_NAMES),
            default="auto",
            show_default=True,
            help="Backend that runs the turn",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _build_turn(message: str, **kwargs: Any) -> TurnInput:
    return TurnInput(
        message=message,
        resume_session_id=kwargs["session_id"] or None,
        cwd=kwargs["cwd"],
        permission_mode=kwargs["permission_mode"],
        model=kwargs["model"],
        opened_files=_parse_json_option(kwargs["opened_files"], "--opened-files"),
        agent_prompt=kwargs["agent_prompt"],
        streaming=kwargs["streaming"],
    )


@click.group()
@click.version_option(version=__version__)
def cli() -> None:
    """Agent Bridge - supervised agent sessions over a line protocol"""


@cli.command(name="send")
@click.argument("message", required=False, default="")
@_turn_options
def send_cmd(message: str, provider: str, **kwargs: Any) -> None:
    """Send one user message and stream the agent's reply."""
    turn = _build_turn(message, **kwargs)

    async def run() -> Dict[str, Any]:
        _apply_stdin_payload(turn, await read_stdin_payload())
        return await _send(turn, provider)

    result = asyncio.run(run())
    sys.exit(0 if result.get("success") else 1)


@cli.command(name="send-with-attachments")
@click.argument("message", required=False, default="")
@_turn_options
def send_with_attachments_cmd(message: str, provider: str, **kwargs: Any) -> None:
    """Send a message with attachments read from stdin or CLAUDE_ATTACHMENTS_FILE."""
    turn = _build_turn(message, **kwargs)

    async def run() -> Dict[str, Any]:
        payload = await read_stdin_payload()
        _apply_stdin_payload(turn, payload)
        turn.attachments = load_attachments(payload)
        logger.debug(
            "[cli] Loaded attachments",
            extra={"count": len(turn.attachments), "session_id": turn.resume_session_id},
        )
        return await _send(turn, provider)

    result = asyncio.run(run())
    sys.exit(0 if result.get("success") else 1)


@cli.command(name="get-session")
@click.argument("session_id")
@click.option("--cwd", type=str, help="Project directory the session belongs to")
def get_session_cmd(session_id: str, cwd: Optional[str]) -> None:
    """Print every transcript record of a session."""
    emitter = IpcEmitter()
    if not is_safe_session_id(session_id):
        emitter.result({"success": False, "error": "Invalid session ID"})
        sys.exit(1)
    store = SessionStore()
    if not store.exists(session_id, cwd):
        emitter.result({"success": False, "error": "Session file not found"})
        sys.exit(1)
    emitter.result({"success": True, "messages": store.read_all(session_id, cwd)})


@cli.command(name="mcp-status")
@click.option("--cwd", type=str, help="Project directory for project-scoped servers")
def mcp_status_cmd(cwd: Optional[str]) -> None:
    """Probe every configured MCP server."""
    emitter = IpcEmitter()
    try:
        statuses = asyncio.run(get_servers_status(cwd))
    except Exception as exc:
        logger.warning("[cli] MCP status failed: %s: %s", type(exc).__name__, exc)
        statuses = []
    emitter.mcp_server_status(statuses)


@cli.command(name="mcp-tools")
@click.argument("server_id")
@click.option("--cwd", type=str, help="Project directory for project-scoped servers")
def mcp_tools_cmd(server_id: str, cwd: Optional[str]) -> None:
    """List the tools one MCP server exposes."""
    emitter = IpcEmitter()
    try:
        result = asyncio.run(get_server_tools(server_id, cwd))
    except Exception as exc:
        logger.warning(
            "[cli] MCP tools failed: %s: %s",
            type(exc).__name__,
            exc,
            extra={"server": server_id},
        )
        result = {"success": False, "serverId": server_id, "error": str(exc)}
    emitter.mcp_server_tools(result)
    emitter.result(result)
    sys.exit(0 if result.get("success") else 1)


@cli.command(name="rewind")
@click.argument("session_id")
@click.argument("message_id")
@click.option("--cwd", type=str, help="Project directory the session belongs to")
def rewind_cmd(session_id: str, message_id: str, cwd: Optional[str]) -> None:
    """Restore files to their state before MESSAGE_ID."""
    emitter = IpcEmitter()
    if not is_safe_session_id(session_id):
        emitter.result({"success": False, "error": "Invalid session ID"})
        sys.exit(1)

    async def run() -> Dict[str, Any]:
        resolver = RewindResolver()
        try:
            return await resolver.rewind(session_id, message_id, cwd)
        finally:
            await resolver.registry.close_all()

    result = asyncio.run(run())
    emitter.result(result)
    sys.exit(0 if result.get("success") else 1)


@cli.command(name="slash-commands")
@click.option("--cwd", type=str, help="Working directory of the agent")
@click.option(
    "--provider",
    type=click.Choice(PROVIDER_NAMES),
    default="auto",
    show_default=True,
    help="Backend to ask",
)
def slash_commands_cmd(cwd: Optional[str], provider: str) -> None:
    """List the slash commands the backend offers."""
    emitter = IpcEmitter()
    commands = asyncio.run(get_provider(provider).list_tools(cwd))
    emitter.slash_commands(commands)
    emitter.result({"success": True, "commands": commands})


def main() -> None:
    """Main entry point."""
    try:
        cli()
    except KeyboardInterrupt:
        IpcEmitter().result({"success": False, "error": "Interrupted"})
        sys.exit(130)
    except SystemExit:
        raise
    except (
        BridgeError,
        RuntimeError,
        ValueError,
        TypeError,
        OSError,
        ConnectionError,
    ) as e:
        IpcEmitter().result({"success": False, "error": str(e)})
        logger.warning(
            "[cli] Fatal error in main CLI entrypoint: %s: %s",
            type(e).__name__,
            e,
        )
        sys.exit(1)


if __name__ == "__main__":
    main()
