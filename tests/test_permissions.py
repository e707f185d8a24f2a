from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest

from agent_bridge.core.permissions import (
    MODE_ACCEPT_EDITS,
    MODE_BYPASS,
    MODE_DEFAULT,
    MODE_PLAN,
    HookDecision,
    NeedsPermission,
    NeedsPlanApproval,
    PermissionState,
    PermissionStateMachine,
    PermissionVerdict,
    PlanApproval,
    classify,
    on_plan_approval,
)


class ScriptedCollaborator:
    def __init__(
        self,
        verdict: Optional[PermissionVerdict] = None,
        approval: Optional[PlanApproval] = None,
        error: Optional[Exception] = None,
    ) -> None:
        self.verdict = verdict or PermissionVerdict.allow()
        self.approval = approval or PlanApproval(True, "acceptEdits")
        self.error = error
        self.calls: List[str] = []

    async def can_use_tool(self, tool_name: str, tool_input: Dict[str, Any]) -> PermissionVerdict:
        self.calls.append(tool_name)
        if self.error:
            raise self.error
        return self.verdict

    async def request_plan_approval(self, tool_input: Dict[str, Any]) -> PlanApproval:
        self.calls.append("plan")
        if self.error:
            raise self.error
        return self.approval


def test_classify_default_mode() -> None:
    state = PermissionState(MODE_DEFAULT)
    assert classify(state, "AskUserQuestion") == HookDecision.approve()
    assert isinstance(classify(state, "Write"), NeedsPermission)


def test_classify_accept_edits_and_bypass() -> None:
    assert classify(PermissionState(MODE_ACCEPT_EDITS), "Edit") == HookDecision.approve()
    assert isinstance(classify(PermissionState(MODE_ACCEPT_EDITS), "Bash"), NeedsPermission)
    assert classify(PermissionState(MODE_BYPASS), "Bash") == HookDecision.approve()


def test_classify_plan_mode() -> None:
    state = PermissionState(MODE_PLAN)
    assert classify(state, "Read") == HookDecision.approve()
    assert classify(state, "mcp__github__search_issues") == HookDecision.approve()
    assert isinstance(classify(state, "Bash"), NeedsPermission)
    assert isinstance(classify(state, "ExitPlanMode"), NeedsPlanApproval)

    blocked = classify(state, "NotebookEdit")
    assert isinstance(blocked, HookDecision)
    assert blocked.kind == "block"
    assert 'Tool "NotebookEdit" is not allowed in plan mode' in (blocked.reason or "")

    mcp_write = classify(state, "mcp__fs__Write_file")
    assert isinstance(mcp_write, HookDecision) and mcp_write.kind == "block"


def test_plan_approval_transitions_mode() -> None:
    state, decision = on_plan_approval(
        PermissionState(MODE_PLAN), {"plan": "x"}, PlanApproval(True, None)
    )
    assert state.mode == MODE_DEFAULT
    assert decision.updated_input == {"plan": "x", "approved": True, "targetMode": "default"}

    state, decision = on_plan_approval(PermissionState(MODE_PLAN), {}, PlanApproval(False))
    assert state.mode == MODE_PLAN
    assert decision.to_dict() == {"decision": "block", "reason": "Plan was rejected by user"}


@pytest.mark.asyncio
async def test_state_machine_leaves_plan_mode_after_approval() -> None:
    collaborator = ScriptedCollaborator(approval=PlanApproval(True, MODE_ACCEPT_EDITS))
    gate = PermissionStateMachine.for_mode(MODE_PLAN, collaborator)

    decision = await gate.evaluate("ExitPlanMode", {})
    assert decision.kind == "approve"
    assert gate.mode == MODE_ACCEPT_EDITS

    # Now in acceptEdits: edits no longer reach the collaborator.
    assert (await gate.evaluate("Edit", {"file_path": "a.py"})).kind == "approve"
    assert collaborator.calls == ["plan"]


@pytest.mark.asyncio
async def test_state_machine_default_mode_verdicts() -> None:
    allow = PermissionStateMachine.for_mode(
        None, ScriptedCollaborator(PermissionVerdict.allow({"command": "ls -la"}))
    )
    decision = await allow.evaluate("Bash", {"command": "ls"})
    assert decision.to_dict() == {"decision": "approve", "updatedInput": {"command": "ls -la"}}

    deny = PermissionStateMachine.for_mode(
        MODE_DEFAULT, ScriptedCollaborator(PermissionVerdict.deny("nope"))
    )
    assert (await deny.evaluate("Bash", {})).to_dict() == {"decision": "block", "reason": "nope"}

    undecided = PermissionStateMachine.for_mode(
        MODE_DEFAULT, ScriptedCollaborator(PermissionVerdict(None))
    )
    assert (await undecided.evaluate("Bash", {})).to_dict() == {}


@pytest.mark.asyncio
async def test_collaborator_failure_blocks() -> None:
    gate = PermissionStateMachine.for_mode(
        MODE_DEFAULT, ScriptedCollaborator(error=OSError("disk full"))
    )
    decision = await gate.evaluate("Write", {})
    assert decision.kind == "block"
    assert decision.reason == "Permission check failed: disk full"

    plan_gate = PermissionStateMachine.for_mode(
        MODE_PLAN, ScriptedCollaborator(error=OSError("disk full"))
    )
    decision = await plan_gate.evaluate("ExitPlanMode", {})
    assert decision.reason == "Plan approval failed: disk full"
    assert plan_gate.mode == MODE_PLAN


@pytest.mark.asyncio
async def test_plan_mode_allow_keeps_original_input() -> None:
    gate = PermissionStateMachine.for_mode(MODE_PLAN, ScriptedCollaborator(PermissionVerdict.allow()))
    decision = await gate.evaluate("Bash", {"command": "git status"})
    assert decision.updated_input == {"command": "git status"}
