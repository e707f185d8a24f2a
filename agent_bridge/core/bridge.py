"""Session bridge: runs one user turn against a provider and speaks IPC.

A turn is a loop of provider attempts. Each attempt streams wire messages
through a :class:`StreamTranslator` and ends in an :class:`AttemptOutcome`;
:func:`next_delay` decides whether another attempt follows. Whatever happens,
the host sees exactly one ``[MESSAGE_END]`` and one final JSON line.
"""

from __future__ import annotations

import asyncio
import os
from collections import deque
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Set

from agent_bridge.core.attachments import build_content_blocks
from agent_bridge.core.config import (
    ClaudeSettings,
    get_settings,
    resolve_streaming,
    resolve_thinking_budget,
)
from agent_bridge.core.error_payload import build_config_error_payload
from agent_bridge.core.errors import BridgeError, ResultError, TurnInProgressError
from agent_bridge.core.handles import SessionHandleRegistry
from agent_bridge.core.models import set_model_environment
from agent_bridge.core.permission_channel import FilePermissionChannel
from agent_bridge.core.permissions import (
    PermissionCollaborator,
    PermissionStateMachine,
    normalize_mode,
)
from agent_bridge.core.prompts import build_ide_context_prompt, build_quick_fix_prompt
from agent_bridge.core.providers import get_provider
from agent_bridge.core.providers.base import Provider, TurnRequest, WireMessage
from agent_bridge.core.retry import (
    AttemptOutcome,
    RetryPolicy,
    is_no_conversation_found,
    next_delay,
)
from agent_bridge.core.session_store import wait_for_session_file
from agent_bridge.core.stream import StreamTranslator
from agent_bridge.protocol.ipc import IpcEmitter
from agent_bridge.protocol.timeouts import RESUME_FILE_POLL_SEC, RESUME_FILE_WAIT_SEC
from agent_bridge.utils.async_channel import AsyncChannel
from agent_bridge.utils.log import get_logger
from agent_bridge.utils.path_utils import is_safe_session_id

logger = get_logger()

MAX_STDERR_LINES = 50
DEFAULT_ERROR_MESSAGE = "API request failed"

ProviderFactory = Callable[[], Provider]
CollaboratorFactory = Callable[[str], PermissionCollaborator]
Sleep = Callable[[float], Awaitable[Any]]


@dataclass
class TurnInput:
    """One user turn as received from the host."""

    message: str
    resume_session_id: Optional[str] = None
    cwd: Optional[str] = None
    permission_mode: Optional[str] = None
    model: Optional[str] = None
    opened_files: Optional[Dict[str, Any]] = None
    agent_prompt: Optional[str] = None
    streaming: Optional[bool] = None
    # None means a plain text turn; a list (even empty) feeds the message
    # through an input channel as content blocks.
    attachments: Optional[List[Dict[str, Any]]] = None


def build_system_prompt(turn: TurnInput) -> str:
    opened_files = turn.opened_files if isinstance(turn.opened_files, dict) else None
    if opened_files and opened_files.get("isQuickFix"):
        return build_quick_fix_prompt(opened_files, turn.message)
    return build_ide_context_prompt(opened_files, turn.agent_prompt)


def user_input_message(blocks: List[Dict[str, Any]]) -> WireMessage:
    return {
        "type": "user",
        "session_id": "",
        "parent_tool_use_id": None,
        "message": {"role": "user", "content": blocks},
    }


class SessionBridge:
    """Orchestrates user turns and owns the live-handle registry."""

    def __init__(
        self,
        emitter: Optional[IpcEmitter] = None,
        registry: Optional[SessionHandleRegistry] = None,
        provider_factory: Optional[ProviderFactory] = None,
        collaborator_factory: Optional[CollaboratorFactory] = None,
        policy: Optional[RetryPolicy] = None,
        sleep: Optional[Sleep] = None,
    ) -> None:
        self.emitter = emitter or IpcEmitter()
        self.registry = registry or SessionHandleRegistry()
        self._provider_factory: ProviderFactory = provider_factory or get_provider
        self._collaborator_factory: CollaboratorFactory = collaborator_factory or (
            lambda cwd: FilePermissionChannel(project_root=cwd)
        )
        self.policy = policy or RetryPolicy()
        self._sleep: Sleep = sleep or asyncio.sleep
        self._active_sessions: Set[str] = set()
        self.stderr_lines: Deque[str] = deque(maxlen=MAX_STDERR_LINES)

    def _on_stderr(self, data: str) -> None:
        text = (data or "").rstrip()
        if not text:
            return
        self.stderr_lines.append(text)
        self.emitter.sdk_stderr(text)

    def _claim(self, session_id: Optional[str], claimed: Set[str]) -> None:
        if not session_id or session_id in claimed:
            return
        if session_id in self._active_sessions:
            raise TurnInProgressError(session_id)
        self._active_sessions.add(session_id)
        claimed.add(session_id)

    async def send_turn(self, turn: TurnInput) -> Dict[str, Any]:
        """Run ``turn`` to completion and return the final payload."""
        self.emitter.message_start()
        self.stderr_lines.clear()
        claimed: Set[str] = set()
        translator: Optional[StreamTranslator] = None
        session_id: Optional[str] = turn.resume_session_id or None
        try:
            if session_id and not is_safe_session_id(session_id):
                raise BridgeError(f"Invalid session ID: {session_id}")
            self._claim(session_id, claimed)
            settings = get_settings()
            translator = StreamTranslator(self.emitter, resolve_streaming(turn.streaming, settings))
            session_id = await self._run_turn(turn, translator, settings, claimed)
        except Exception as exc:
            logger.warning(
                "[bridge] Turn failed: %s: %s",
                type(exc).__name__,
                exc,
                extra={"session_id": session_id},
            )
            if translator is not None:
                translator.finish()
            payload = build_config_error_payload(exc, list(self.stderr_lines))
            self.emitter.send_error(payload)
            self.emitter.message_end()
            self.emitter.result(payload)
            return payload
        finally:
            self._active_sessions.difference_update(claimed)

        translator.finish()
        self.emitter.message_end()
        result = {"success": True, "sessionId": session_id}
        self.emitter.result(result)
        return result

    async def _run_turn(
        self,
        turn: TurnInput,
        translator: StreamTranslator,
        settings: ClaudeSettings,
        claimed: Set[str],
    ) -> Optional[str]:
        cwd = turn.cwd or os.getcwd()
        provider = self._provider_factory()
        provider.prepare_environment()
        set_model_environment(turn.model)

        resume_id = turn.resume_session_id or None
        if resume_id:
            await wait_for_session_file(
                resume_id, cwd, timeout=RESUME_FILE_WAIT_SEC, interval=RESUME_FILE_POLL_SEC
            )

        collaborator = self._collaborator_factory(cwd)
        blocks = (
            build_content_blocks(turn.attachments, turn.message)
            if turn.attachments is not None
            else None
        )
        base = dict(
            prompt=turn.message,
            cwd=cwd,
            resume_session_id=resume_id,
            permission_mode=normalize_mode(turn.permission_mode),
            model=turn.model,
            system_prompt_append=build_system_prompt(turn),
            thinking_budget=resolve_thinking_budget(settings),
            streaming=translator.streaming,
            collaborator=collaborator,
            on_stderr=self._on_stderr,
        )
        logger.debug(
            "[bridge] Starting turn",
            extra={
                "provider": provider.name,
                "cwd": cwd,
                "resume": resume_id,
                "mode": base["permission_mode"],
                "streaming": translator.streaming,
            },
        )

        seen_ids: Set[str] = set()
        attempt = 0
        while True:
            request = TurnRequest(
                **base,
                gate=PermissionStateMachine.for_mode(turn.permission_mode, collaborator),
            )
            if blocks is not None:
                channel: AsyncChannel[WireMessage] = AsyncChannel()
                channel.enqueue(user_input_message(blocks))
                channel.close()
                request.input_channel = channel
                request.extra["content_blocks"] = blocks

            outcome = await self._run_attempt(provider, request, translator, seen_ids, claimed)
            if outcome.succeeded:
                if provider.handle is not None and not seen_ids:
                    await self.registry.release(provider.handle)
                return outcome.session_id

            delay = next_delay(self.policy, outcome, attempt)
            if delay is None:
                if outcome.error is None:
                    raise BridgeError("Provider attempt failed without an error")
                raise outcome.error
            attempt += 1
            logger.warning(
                "[bridge] Retrying turn: %s: %s",
                type(outcome.error).__name__,
                outcome.error,
                extra={"attempt": attempt, "delay": delay, "message_count": outcome.message_count},
            )
            if resume_id and is_no_conversation_found(outcome.error):
                await wait_for_session_file(
                    resume_id, cwd, timeout=RESUME_FILE_WAIT_SEC, interval=RESUME_FILE_POLL_SEC
                )
            translator.reset_for_retry()
            await self._sleep(delay)

    async def _run_attempt(
        self,
        provider: Provider,
        request: TurnRequest,
        translator: StreamTranslator,
        seen_ids: Set[str],
        claimed: Set[str],
    ) -> AttemptOutcome:
        message_count = 0
        session_id = request.resume_session_id
        provider.handle = None
        try:
            async with aclosing(provider.stream_turn(request)) as messages:
                async for msg in messages:
                    message_count += 1
                    translator.translate(msg)
                    msg_type = msg.get("type")
                    if msg_type == "system" and msg.get("session_id"):
                        session_id = str(msg["session_id"])
                        await self._observe_session(provider, session_id, seen_ids, claimed)
                    elif msg_type == "result" and msg.get("is_error"):
                        raise ResultError(
                            msg.get("result") or msg.get("message") or DEFAULT_ERROR_MESSAGE
                        )
        except asyncio.CancelledError:
            await self.registry.release(provider.handle)
            provider.handle = None
            raise
        except Exception as exc:
            await self.registry.release(provider.handle)
            provider.handle = None
            return AttemptOutcome.failure(exc, message_count, session_id)
        return AttemptOutcome.success(message_count, session_id)

    async def _observe_session(
        self, provider: Provider, session_id: str, seen_ids: Set[str], claimed: Set[str]
    ) -> None:
        if session_id not in seen_ids:
            self._claim(session_id, claimed)
            seen_ids.add(session_id)
            self.emitter.session_id(session_id)
        if provider.handle is not None:
            await self.registry.put(session_id, provider.handle)

    async def aclose(self) -> None:
        await self.registry.close_all()


__all__ = ["SessionBridge", "TurnInput", "build_system_prompt", "user_input_message"]
