from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest
from claude_agent_sdk import SystemMessage, TextBlock, ToolUseBlock
from claude_agent_sdk.types import PermissionResultAllow, PermissionResultDeny

from agent_bridge.core.permissions import (
    HookDecision,
    PermissionStateMachine,
    PermissionVerdict,
    PlanApproval,
)
from agent_bridge.core.providers.agent_sdk import (
    AgentSdkProvider,
    hook_output,
    make_can_use_tool,
    make_pre_tool_use_hook,
    to_wire,
)
from agent_bridge.core.providers.base import DEFAULT_SLASH_COMMANDS, TurnRequest
from agent_bridge.utils.async_channel import AsyncChannel


class StaticCollaborator:
    def __init__(self, verdict: PermissionVerdict) -> None:
        self.verdict = verdict

    async def can_use_tool(self, tool_name: str, tool_input: Dict[str, Any]) -> PermissionVerdict:
        return self.verdict

    async def request_plan_approval(self, tool_input: Dict[str, Any]) -> PlanApproval:
        return PlanApproval(True, "default")


class FakeClient:
    def __init__(self, options: Any, messages: Optional[List[Any]] = None, info: Any = None) -> None:
        self.options = options
        self.messages = messages or []
        self.info = info
        self.queries: List[Any] = []
        self.connected = False
        self.disconnected = False
        self.connect_error: Optional[Exception] = None

    async def connect(self) -> None:
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    async def query(self, prompt: Any) -> None:
        self.queries.append(prompt)

    async def receive_response(self) -> Any:
        for message in self.messages:
            yield message

    async def get_server_info(self) -> Any:
        return self.info

    async def disconnect(self) -> None:
        self.disconnected = True


def test_to_wire_normalizes_sdk_objects() -> None:
    system = to_wire(SystemMessage(subtype="init", data={"session_id": "s1", "model": "sonnet"}))
    assert system == {"session_id": "s1", "model": "sonnet", "type": "system", "subtype": "init"}

    raw = {"type": "result", "is_error": False}
    assert to_wire(raw) is raw


def test_block_normalization_through_user_message() -> None:
    from agent_bridge.core.providers.agent_sdk import _content_to_wire

    blocks = _content_to_wire(
        [TextBlock(text="hi"), ToolUseBlock(id="t1", name="Read", input={"file_path": "a"})]
    )
    assert blocks == [
        {"type": "text", "text": "hi"},
        {"type": "tool_use", "id": "t1", "name": "Read", "input": {"file_path": "a"}},
    ]


def test_hook_output_shapes() -> None:
    assert hook_output(HookDecision.approve({"x": 1}), "Bash") == {
        "hookSpecificOutput": {
            "hookEventName": "PreToolUse",
            "permissionDecision": "allow",
            "updatedInput": {"x": 1},
        }
    }
    assert hook_output(HookDecision.block("no"), "Bash") == {
        "hookSpecificOutput": {
            "hookEventName": "PreToolUse",
            "permissionDecision": "deny",
            "permissionDecisionReason": "no",
        }
    }
    assert hook_output(HookDecision.approve(), "AskUserQuestion") == {}
    assert hook_output(HookDecision.no_opinion(), "Bash") == {}


@pytest.mark.asyncio
async def test_pre_tool_use_hook_runs_the_gate() -> None:
    gate = PermissionStateMachine.for_mode("plan", StaticCollaborator(PermissionVerdict.allow()))
    hook = make_pre_tool_use_hook(gate)

    blocked = await hook({"tool_name": "NotebookEdit", "tool_input": {}}, "tu_1", None)
    assert blocked["hookSpecificOutput"]["permissionDecision"] == "deny"

    allowed = await hook({"tool_name": "Read", "tool_input": {"file_path": "a"}}, "tu_2", None)
    assert allowed["hookSpecificOutput"]["permissionDecision"] == "allow"


@pytest.mark.asyncio
async def test_can_use_tool_callback() -> None:
    allow = make_can_use_tool(StaticCollaborator(PermissionVerdict.allow({"command": "ls"})))
    result = await allow("Bash", {"command": "ls"}, None)
    assert isinstance(result, PermissionResultAllow)
    assert result.updated_input == {"command": "ls"}

    deny = make_can_use_tool(StaticCollaborator(PermissionVerdict.deny("nope")))
    result = await deny("Bash", {}, None)
    assert isinstance(result, PermissionResultDeny)
    assert result.message == "nope"


def test_build_options(tmp_path: Any) -> None:
    collaborator = StaticCollaborator(PermissionVerdict.allow())
    request = TurnRequest(
        prompt="hi",
        cwd=str(tmp_path),
        resume_session_id="s1",
        permission_mode="acceptEdits",
        model="claude-opus-4-1",
        system_prompt_append="## Extra",
        thinking_budget=2048,
        streaming=True,
        gate=PermissionStateMachine.for_mode("acceptEdits", collaborator),
        collaborator=collaborator,
    )

    options = AgentSdkProvider().build_options(request)

    assert options.resume == "s1"
    assert options.model == "opus"
    assert options.permission_mode == "acceptEdits"
    assert options.system_prompt == {"type": "preset", "preset": "claude_code", "append": "## Extra"}
    assert options.max_thinking_tokens == 2048
    assert options.include_partial_messages is True
    assert options.enable_file_checkpointing is True
    assert str(tmp_path) in options.add_dirs
    assert len(options.hooks["PreToolUse"]) == 1
    assert options.can_use_tool is not None


@pytest.mark.asyncio
async def test_stream_turn_uses_channel_and_exposes_handle(tmp_path: Any) -> None:
    clients: List[FakeClient] = []

    def factory(options: Any) -> FakeClient:
        client = FakeClient(options, messages=[{"type": "system", "session_id": "s9"}])
        clients.append(client)
        return client

    provider = AgentSdkProvider(client_factory=factory)
    channel: AsyncChannel[Dict[str, Any]] = AsyncChannel()
    request = TurnRequest(prompt="ignored", cwd=str(tmp_path), input_channel=channel)

    messages = [msg async for msg in provider.stream_turn(request)]

    assert messages == [{"type": "system", "session_id": "s9"}]
    assert clients[0].connected is True
    assert clients[0].queries == [channel]
    assert provider.handle is clients[0]


@pytest.mark.asyncio
async def test_list_tools_maps_commands_and_falls_back(tmp_path: Any) -> None:
    info = {"commands": [{"name": "/review", "description": "Review"}, {"description": "nameless"}]}
    provider = AgentSdkProvider(client_factory=lambda options: FakeClient(options, info=info))
    assert await provider.list_tools(str(tmp_path)) == [{"name": "/review", "description": "Review"}]

    broken: List[FakeClient] = []

    def failing(options: Any) -> FakeClient:
        client = FakeClient(options)
        client.connect_error = RuntimeError("CLI not found")
        broken.append(client)
        return client

    commands = await AgentSdkProvider(client_factory=failing).list_tools(str(tmp_path))
    assert commands == DEFAULT_SLASH_COMMANDS
    assert broken[0].disconnected is True


@pytest.mark.asyncio
async def test_resume_for_rewind_connects(tmp_path: Any) -> None:
    created: List[FakeClient] = []

    def factory(options: Any) -> FakeClient:
        created.append(FakeClient(options))
        return created[-1]

    handle = await AgentSdkProvider(client_factory=factory).resume_for_rewind("s1", str(tmp_path))

    assert handle is created[0]
    assert handle.connected is True
    assert handle.options.resume == "s1"
    assert handle.options.enable_file_checkpointing is True
