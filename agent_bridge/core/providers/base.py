"""Shared abstractions for agent providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from agent_bridge.core.permissions import (
    MODE_DEFAULT,
    PermissionCollaborator,
    PermissionStateMachine,
)
from agent_bridge.utils.async_channel import AsyncChannel
from agent_bridge.utils.log import get_logger

logger = get_logger()

WireMessage = Dict[str, Any]
StderrCallback = Callable[[str], None]

DEFAULT_SLASH_COMMANDS: List[Dict[str, str]] = [
    {"name": "/help", "description": "Get help with using Claude Code"},
    {"name": "/clear", "description": "Clear conversation history"},
    {"name": "/compact", "description": "Toggle compact mode"},
    {"name": "/config", "description": "View or modify configuration"},
    {"name": "/cost", "description": "Show current session cost"},
    {"name": "/doctor", "description": "Run diagnostic checks"},
    {"name": "/init", "description": "Initialize a new project"},
    {"name": "/login", "description": "Log in to your account"},
    {"name": "/logout", "description": "Log out of your account"},
    {"name": "/memory", "description": "View or manage memory"},
    {"name": "/model", "description": "Change the current model"},
    {"name": "/permissions", "description": "View or modify permissions"},
    {"name": "/review", "description": "Review changes before applying"},
    {"name": "/status", "description": "Show current status"},
    {"name": "/terminal-setup", "description": "Set up terminal integration"},
    {"name": "/vim", "description": "Toggle vim mode"},
]


@dataclass
class TurnRequest:
    """Everything a provider needs to run one attempt of a user turn.

    ``prompt`` is the plain message text. When ``input_channel`` is set the
    provider reads the user message from it instead (attachment turns).
    """

    prompt: str
    cwd: str
    resume_session_id: Optional[str] = None
    permission_mode: str = MODE_DEFAULT
    model: Optional[str] = None
    system_prompt_append: str = ""
    thinking_budget: Optional[int] = None
    streaming: bool = False
    gate: Optional[PermissionStateMachine] = None
    collaborator: Optional[PermissionCollaborator] = None
    on_stderr: Optional[StderrCallback] = None
    input_channel: Optional[AsyncChannel[WireMessage]] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def resuming(self) -> bool:
        return bool(self.resume_session_id)


class Provider(ABC):
    """Opaque async message source for one user turn.

    ``stream_turn`` yields wire messages as plain dicts shaped like the agent
    SDK's JSON output (``type`` plus ``message``/``event``/``session_id``...).
    ``handle`` is the live connection of the current attempt, if the backend
    keeps one; the bridge registers it under the session id.
    """

    name: str = "provider"

    def __init__(self) -> None:
        self.handle: Optional[Any] = None

    def prepare_environment(self) -> None:
        """Validate credentials and export whatever the backend reads from the env."""

    @abstractmethod
    def stream_turn(self, request: TurnRequest) -> AsyncIterator[WireMessage]:
        """Run one attempt and yield its messages in arrival order."""

    @abstractmethod
    async def list_tools(self, cwd: Optional[str] = None) -> List[Dict[str, Any]]:
        """Slash commands or tools the backend exposes to the user."""


__all__ = [
    "DEFAULT_SLASH_COMMANDS",
    "Provider",
    "StderrCallback",
    "TurnRequest",
    "WireMessage",
]
