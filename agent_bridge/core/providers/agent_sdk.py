"""Provider backed by the Claude Agent SDK (the full agentic CLI)."""

from __future__ import annotations

import asyncio
import dataclasses
import os
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from claude_agent_sdk import (
    AssistantMessage,
    ClaudeAgentOptions,
    ClaudeSDKClient,
    HookMatcher,
    ResultMessage,
    SystemMessage,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
    UserMessage,
)
from claude_agent_sdk.types import PermissionResultAllow, PermissionResultDeny, StreamEvent

from agent_bridge.core.config import apply_credentials_to_env, resolve_credentials
from agent_bridge.core.models import map_model_to_sdk_name
from agent_bridge.core.permissions import (
    INTERACTIVE_TOOLS,
    HookDecision,
    PermissionCollaborator,
    PermissionStateMachine,
)
from agent_bridge.core.providers.base import (
    DEFAULT_SLASH_COMMANDS,
    Provider,
    TurnRequest,
    WireMessage,
)
from agent_bridge.utils.log import get_logger

logger = get_logger()

MAX_TURNS = 100
SETTING_SOURCES = ["user", "project", "local"]
LIST_TOOLS_TIMEOUT_SEC = 15.0

ClientFactory = Callable[[ClaudeAgentOptions], Any]


def _block_to_dict(block: Any) -> Dict[str, Any]:
    if isinstance(block, dict):
        return block
    if isinstance(block, TextBlock):
        return {"type": "text", "text": block.text}
    if isinstance(block, ThinkingBlock):
        return {"type": "thinking", "thinking": block.thinking, "signature": block.signature}
    if isinstance(block, ToolUseBlock):
        return {"type": "tool_use", "id": block.id, "name": block.name, "input": block.input}
    if isinstance(block, ToolResultBlock):
        payload: Dict[str, Any] = {
            "type": "tool_result",
            "tool_use_id": block.tool_use_id,
            "content": block.content,
        }
        if block.is_error is not None:
            payload["is_error"] = block.is_error
        return payload
    if dataclasses.is_dataclass(block) and not isinstance(block, type):
        return dataclasses.asdict(block)
    return {"type": "unknown", "value": str(block)}


def _content_to_wire(content: Any) -> Any:
    if isinstance(content, list):
        return [_block_to_dict(block) for block in content]
    return content


def to_wire(message: Any) -> WireMessage:
    """Normalize an SDK message object into the JSON wire shape."""
    if isinstance(message, dict):
        return message
    if isinstance(message, StreamEvent):
        return {
            "type": "stream_event",
            "event": message.event,
            "session_id": message.session_id,
            "uuid": message.uuid,
            "parent_tool_use_id": message.parent_tool_use_id,
        }
    if isinstance(message, AssistantMessage):
        inner: Dict[str, Any] = {
            "role": "assistant",
            "model": message.model,
            "content": _content_to_wire(message.content),
        }
        usage = getattr(message, "usage", None)
        if usage:
            inner["usage"] = usage
        return {
            "type": "assistant",
            "message": inner,
            "parent_tool_use_id": message.parent_tool_use_id,
        }
    if isinstance(message, UserMessage):
        return {
            "type": "user",
            "message": {"role": "user", "content": _content_to_wire(message.content)},
            "parent_tool_use_id": message.parent_tool_use_id,
        }
    if isinstance(message, SystemMessage):
        return {**(message.data or {}), "type": "system", "subtype": message.subtype}
    if isinstance(message, ResultMessage):
        return {
            "type": "result",
            "subtype": message.subtype,
            "is_error": message.is_error,
            "duration_ms": message.duration_ms,
            "duration_api_ms": message.duration_api_ms,
            "num_turns": message.num_turns,
            "session_id": message.session_id,
            "total_cost_usd": message.total_cost_usd,
            "usage": message.usage,
            "result": message.result,
        }
    if dataclasses.is_dataclass(message) and not isinstance(message, type):
        return {"type": type(message).__name__, **dataclasses.asdict(message)}
    return {"type": "unknown", "value": str(message)}


def hook_output(decision: HookDecision, tool_name: Optional[str]) -> Dict[str, Any]:
    """Translate a gate decision into the SDK's ``PreToolUse`` hook reply.

    Interactive tools are approved without an explicit decision so the SDK
    still routes them through ``can_use_tool``, where the answers are
    collected.
    """
    if decision.kind == "approve" and tool_name not in INTERACTIVE_TOOLS:
        output: Dict[str, Any] = {"hookEventName": "PreToolUse", "permissionDecision": "allow"}
        if decision.updated_input is not None:
            output["updatedInput"] = decision.updated_input
        return {"hookSpecificOutput": output}
    if decision.kind == "block":
        return {
            "hookSpecificOutput": {
                "hookEventName": "PreToolUse",
                "permissionDecision": "deny",
                "permissionDecisionReason": decision.reason,
            }
        }
    return {}


def make_pre_tool_use_hook(gate: PermissionStateMachine) -> Callable[..., Any]:
    async def pre_tool_use(input_data: Any, tool_use_id: Optional[str], context: Any) -> Dict[str, Any]:
        data = input_data if isinstance(input_data, dict) else {}
        tool_name = data.get("tool_name")
        tool_input = data.get("tool_input")
        decision = await gate.evaluate(tool_name, tool_input if isinstance(tool_input, dict) else {})
        return hook_output(decision, tool_name)

    return pre_tool_use


def make_can_use_tool(collaborator: PermissionCollaborator) -> Callable[..., Any]:
    async def can_use_tool(tool_name: str, tool_input: Dict[str, Any], context: Any) -> Any:
        verdict = await collaborator.can_use_tool(tool_name, tool_input)
        if verdict.behavior == "allow":
            return PermissionResultAllow(updated_input=verdict.updated_input)
        return PermissionResultDeny(message=verdict.message or "Permission denied")

    return can_use_tool


def additional_directories(cwd: str) -> List[str]:
    dirs: List[str] = []
    for candidate in (cwd, os.getenv("IDEA_PROJECT_PATH"), os.getenv("PROJECT_PATH")):
        if candidate and candidate not in dirs:
            dirs.append(candidate)
    return dirs


async def _deny_all(tool_name: str, tool_input: Dict[str, Any], context: Any) -> Any:
    return PermissionResultDeny(message="Config loading only")


async def _deny_rewind(tool_name: str, tool_input: Dict[str, Any], context: Any) -> Any:
    return PermissionResultDeny(message="Rewind operation")


class AgentSdkProvider(Provider):
    """Runs turns through ``ClaudeSDKClient``; the connected client is the handle."""

    name = "agent-sdk"

    def __init__(self, client_factory: Optional[ClientFactory] = None) -> None:
        super().__init__()
        self._client_factory: ClientFactory = client_factory or (
            lambda options: ClaudeSDKClient(options=options)
        )

    def prepare_environment(self) -> None:
        credentials = resolve_credentials()
        apply_credentials_to_env(credentials)
        logger.debug(
            "[agent_sdk] Credentials applied",
            extra={"auth_type": credentials.auth_type, "key_source": credentials.api_key_source},
        )

    def build_options(self, request: TurnRequest) -> ClaudeAgentOptions:
        os.environ.setdefault("CLAUDE_CODE_ENTRYPOINT", "sdk-ts")
        system_prompt: Dict[str, Any] = {"type": "preset", "preset": "claude_code"}
        if request.system_prompt_append:
            system_prompt["append"] = request.system_prompt_append

        kwargs: Dict[str, Any] = {
            "cwd": request.cwd,
            "permission_mode": request.permission_mode,
            "model": map_model_to_sdk_name(request.model),
            "max_turns": MAX_TURNS,
            "enable_file_checkpointing": True,
            "add_dirs": additional_directories(request.cwd),
            "setting_sources": list(SETTING_SOURCES),
            "system_prompt": system_prompt,
        }
        if request.thinking_budget is not None:
            kwargs["max_thinking_tokens"] = request.thinking_budget
        if request.streaming:
            kwargs["include_partial_messages"] = True
        if request.resume_session_id:
            kwargs["resume"] = request.resume_session_id
        if request.gate is not None:
            kwargs["hooks"] = {
                "PreToolUse": [HookMatcher(matcher=None, hooks=[make_pre_tool_use_hook(request.gate)])]
            }
        if request.collaborator is not None:
            kwargs["can_use_tool"] = make_can_use_tool(request.collaborator)
        if request.on_stderr is not None:
            kwargs["stderr"] = request.on_stderr
        return ClaudeAgentOptions(**kwargs)

    async def stream_turn(self, request: TurnRequest) -> AsyncIterator[WireMessage]:
        client = self._client_factory(self.build_options(request))
        self.handle = client
        await client.connect()
        if request.input_channel is not None:
            await client.query(request.input_channel)
        else:
            await client.query(request.prompt)
        async for message in client.receive_response():
            yield to_wire(message)

    async def resume_for_rewind(
        self, session_id: str, cwd: str, on_stderr: Optional[Callable[[str], None]] = None
    ) -> Any:
        """Connect a client to an existing session with checkpointing enabled.

        The client runs no turns; every tool request is denied.
        """
        os.environ.setdefault("CLAUDE_CODE_ENTRYPOINT", "sdk-ts")
        kwargs: Dict[str, Any] = {
            "resume": session_id,
            "cwd": cwd,
            "permission_mode": "default",
            "enable_file_checkpointing": True,
            "max_turns": 1,
            "setting_sources": list(SETTING_SOURCES),
            "add_dirs": additional_directories(cwd),
            "can_use_tool": _deny_rewind,
        }
        if on_stderr is not None:
            kwargs["stderr"] = on_stderr
        client = self._client_factory(ClaudeAgentOptions(**kwargs))
        await client.connect()
        self.handle = client
        return client

    async def list_tools(self, cwd: Optional[str] = None) -> List[Dict[str, Any]]:
        os.environ.setdefault("CLAUDE_CODE_ENTRYPOINT", "sdk-ts")
        options = ClaudeAgentOptions(
            cwd=cwd or os.getcwd(),
            permission_mode="default",
            setting_sources=list(SETTING_SOURCES),
            can_use_tool=_deny_all,
        )
        client = self._client_factory(options)
        try:
            async with asyncio.timeout(LIST_TOOLS_TIMEOUT_SEC):
                await client.connect()
                info = await client.get_server_info()
        except Exception as exc:  # any SDK failure falls back to the default list
            logger.warning(
                "[agent_sdk] Failed to load slash commands: %s: %s",
                type(exc).__name__,
                exc,
            )
            info = None
        finally:
            try:
                await client.disconnect()
            except Exception as exc:  # best-effort cleanup
                logger.debug(
                    "[agent_sdk] Disconnect after command listing failed: %s: %s",
                    type(exc).__name__,
                    exc,
                )

        commands = (info or {}).get("commands") if isinstance(info, dict) else None
        if not isinstance(commands, list) or not commands:
            return [dict(command) for command in DEFAULT_SLASH_COMMANDS]
        return [
            {
                "name": str(command.get("name", "")),
                "description": str(command.get("description", "")),
            }
            for command in commands
            if isinstance(command, dict) and command.get("name")
        ]


__all__ = [
    "AgentSdkProvider",
    "additional_directories",
    "hook_output",
    "make_can_use_tool",
    "make_pre_tool_use_hook",
    "to_wire",
]
