"""Permission gating for agent tool calls.

The gate is a small state machine. Its only state is the current permission
mode; the only transition is ``plan -> <target>`` after an approved
``ExitPlanMode``. Decisions are computed by pure functions of
``(state, event)``. Events are the tool request itself plus, where needed, the
reply of an external collaborator (permission prompt or plan approval).
:class:`PermissionStateMachine` drives those functions and performs the
collaborator calls.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, Tuple, Union

from agent_bridge.utils.log import get_logger

logger = get_logger()

MODE_DEFAULT = "default"
MODE_PLAN = "plan"
MODE_ACCEPT_EDITS = "acceptEdits"
MODE_BYPASS = "bypassPermissions"
PERMISSION_MODES = {MODE_DEFAULT, MODE_PLAN, MODE_ACCEPT_EDITS, MODE_BYPASS}

ASK_USER_QUESTION = "AskUserQuestion"
EXIT_PLAN_MODE = "ExitPlanMode"

# Tools that always need a human in the loop, even when bypassing permissions.
INTERACTIVE_TOOLS = frozenset({ASK_USER_QUESTION})

ACCEPT_EDITS_AUTO_APPROVE_TOOLS = frozenset(
    {"Write", "Edit", "MultiEdit", "CreateDirectory", "MoveFile", "CopyFile", "Rename"}
)

PLAN_MODE_GATED_TOOLS = frozenset({"Edit", "Bash"})

PLAN_MODE_ALLOWED_TOOLS = frozenset(
    {
        # read-only
        "Read",
        "Glob",
        "Grep",
        "WebFetch",
        "WebSearch",
        "ListMcpResources",
        "ListMcpResourcesTool",
        "ReadMcpResource",
        "ReadMcpResourceTool",
        # planning
        "TodoWrite",
        "Skill",
        "TaskOutput",
        "Task",
        "Write",
        "Edit",
        "Bash",
        "AskUserQuestion",
        "EnterPlanMode",
        "ExitPlanMode",
        # MCP read tools
        "mcp__ace-tool__search_context",
        "mcp__context7__resolve-library-id",
        "mcp__context7__query-docs",
        "mcp__conductor__GetWorkspaceDiff",
        "mcp__conductor__GetTerminalOutput",
        "mcp__conductor__AskUserQuestion",
        "mcp__conductor__DiffComment",
        "mcp__time__get_current_time",
        "mcp__time__convert_time",
    }
)


def normalize_mode(mode: Optional[str]) -> str:
    return mode if mode else MODE_DEFAULT


@dataclass(frozen=True)
class HookDecision:
    """Three-valued hook outcome: approve, block, or no opinion."""

    kind: str  # "approve" | "block" | "none"
    reason: Optional[str] = None
    updated_input: Optional[Dict[str, Any]] = None

    @classmethod
    def approve(cls, updated_input: Optional[Dict[str, Any]] = None) -> "HookDecision":
        return cls("approve", updated_input=updated_input)

    @classmethod
    def block(cls, reason: str) -> "HookDecision":
        return cls("block", reason=reason)

    @classmethod
    def no_opinion(cls) -> "HookDecision":
        return cls("none")

    def to_dict(self) -> Dict[str, Any]:
        if self.kind == "approve":
            payload: Dict[str, Any] = {"decision": "approve"}
            if self.updated_input is not None:
                payload["updatedInput"] = self.updated_input
            return payload
        if self.kind == "block":
            return {"decision": "block", "reason": self.reason}
        return {}


@dataclass(frozen=True)
class PermissionVerdict:
    """Reply from the permission-decision collaborator."""

    behavior: Optional[str]  # "allow" | "deny" | None
    updated_input: Optional[Dict[str, Any]] = None
    message: Optional[str] = None

    @classmethod
    def allow(cls, updated_input: Optional[Dict[str, Any]] = None) -> "PermissionVerdict":
        return cls("allow", updated_input=updated_input)

    @classmethod
    def deny(cls, message: str) -> "PermissionVerdict":
        return cls("deny", message=message)


@dataclass(frozen=True)
class PlanApproval:
    approved: bool
    target_mode: Optional[str] = None
    message: Optional[str] = None


class PermissionCollaborator(Protocol):
    """Host-side decision maker reached from inside a tool hook."""

    async def can_use_tool(self, tool_name: str, tool_input: Dict[str, Any]) -> PermissionVerdict:
        ...

    async def request_plan_approval(self, tool_input: Dict[str, Any]) -> PlanApproval:
        ...


@dataclass(frozen=True)
class PermissionState:
    mode: str = MODE_DEFAULT


@dataclass(frozen=True)
class NeedsPermission:
    """The decision depends on the permission collaborator's verdict."""


@dataclass(frozen=True)
class NeedsPlanApproval:
    """The decision depends on the plan-approval collaborator."""


Step = Union[HookDecision, NeedsPermission, NeedsPlanApproval]
Transition = Tuple[PermissionState, HookDecision]


def should_auto_approve(mode: str, tool_name: Optional[str]) -> bool:
    if not tool_name or tool_name in INTERACTIVE_TOOLS:
        return False
    if mode == MODE_BYPASS:
        return True
    if mode == MODE_ACCEPT_EDITS:
        return tool_name in ACCEPT_EDITS_AUTO_APPROVE_TOOLS
    return False


def classify(state: PermissionState, tool_name: Optional[str]) -> Step:
    """First transition: decide directly, or name the collaborator to consult."""
    name = tool_name or ""
    if state.mode == MODE_PLAN:
        if name == ASK_USER_QUESTION:
            return HookDecision.approve()
        if name in PLAN_MODE_GATED_TOOLS:
            return NeedsPermission()
        if name == EXIT_PLAN_MODE:
            return NeedsPlanApproval()
        if name in PLAN_MODE_ALLOWED_TOOLS:
            return HookDecision.approve()
        if name.startswith("mcp__") and "Write" not in name and "Edit" not in name:
            return HookDecision.approve()
        return HookDecision.block(
            f'Tool "{name}" is not allowed in plan mode. Only read-only tools are permitted. '
            "Use ExitPlanMode to exit plan mode."
        )

    if name == ASK_USER_QUESTION:
        return HookDecision.approve()
    if should_auto_approve(state.mode, name):
        return HookDecision.approve()
    return NeedsPermission()


def on_permission_verdict(
    state: PermissionState,
    tool_input: Optional[Dict[str, Any]],
    verdict: PermissionVerdict,
) -> Transition:
    if state.mode == MODE_PLAN:
        if verdict.behavior == "allow":
            updated = verdict.updated_input if verdict.updated_input is not None else tool_input
            return state, HookDecision.approve(updated)
        return state, HookDecision.block(verdict.message or "Permission denied")

    if verdict.behavior == "allow":
        return state, HookDecision.approve(verdict.updated_input)
    if verdict.behavior == "deny":
        return state, HookDecision.block(verdict.message or "Permission denied")
    return state, HookDecision.no_opinion()


def on_permission_failure(state: PermissionState, error: BaseException) -> Transition:
    return state, HookDecision.block(f"Permission check failed: {error}")


def on_plan_approval(
    state: PermissionState,
    tool_input: Optional[Dict[str, Any]],
    approval: PlanApproval,
) -> Transition:
    if approval.approved:
        next_mode = approval.target_mode or MODE_DEFAULT
        updated = {**(tool_input or {}), "approved": True, "targetMode": next_mode}
        return PermissionState(mode=next_mode), HookDecision.approve(updated)
    return state, HookDecision.block(approval.message or "Plan was rejected by user")


def on_plan_approval_failure(state: PermissionState, error: BaseException) -> Transition:
    return state, HookDecision.block(f"Plan approval failed: {error}")


@dataclass
class PermissionStateMachine:
    """Per-turn permission gate installed as the provider's pre-tool-use hook."""

    collaborator: PermissionCollaborator
    state: PermissionState = field(default_factory=PermissionState)

    @classmethod
    def for_mode(
        cls, mode: Optional[str], collaborator: PermissionCollaborator
    ) -> "PermissionStateMachine":
        return cls(collaborator=collaborator, state=PermissionState(mode=normalize_mode(mode)))

    @property
    def mode(self) -> str:
        return self.state.mode

    async def evaluate(
        self, tool_name: Optional[str], tool_input: Optional[Dict[str, Any]] = None
    ) -> HookDecision:
        tool_input = tool_input or {}
        step = classify(self.state, tool_name)
        if isinstance(step, HookDecision):
            decision = step
        elif isinstance(step, NeedsPlanApproval):
            try:
                approval = await self.collaborator.request_plan_approval(tool_input)
            except Exception as exc:  # collaborator failures become a block decision
                logger.warning(
                    "[permissions] Plan approval failed: %s: %s",
                    type(exc).__name__,
                    exc,
                )
                self.state, decision = on_plan_approval_failure(self.state, exc)
            else:
                self.state, decision = on_plan_approval(self.state, tool_input, approval)
        else:
            try:
                verdict = await self.collaborator.can_use_tool(tool_name or "", tool_input)
            except Exception as exc:  # collaborator failures become a block decision
                logger.warning(
                    "[permissions] Permission check failed: %s: %s",
                    type(exc).__name__,
                    exc,
                    extra={"tool": tool_name},
                )
                self.state, decision = on_permission_failure(self.state, exc)
            else:
                self.state, decision = on_permission_verdict(self.state, tool_input, verdict)

        logger.debug(
            "[permissions] Hook decision",
            extra={"tool": tool_name, "mode": self.state.mode, "decision": decision.kind},
        )
        return decision


__all__ = [
    "ACCEPT_EDITS_AUTO_APPROVE_TOOLS",
    "HookDecision",
    "INTERACTIVE_TOOLS",
    "MODE_ACCEPT_EDITS",
    "MODE_BYPASS",
    "MODE_DEFAULT",
    "MODE_PLAN",
    "PERMISSION_MODES",
    "PLAN_MODE_ALLOWED_TOOLS",
    "PermissionCollaborator",
    "PermissionState",
    "PermissionStateMachine",
    "PermissionVerdict",
    "PlanApproval",
    "classify",
    "normalize_mode",
    "on_permission_verdict",
    "on_plan_approval",
    "should_auto_approve",
]
