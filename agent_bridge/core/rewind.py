"""Restore files to the checkpoint taken before a transcript message."""

from __future__ import annotations

import asyncio
import inspect
import os
from typing import Any, Callable, Dict, Iterable, List, Optional

from agent_bridge.core.errors import RewindError, is_missing_checkpoint_error
from agent_bridge.core.handles import SessionHandleRegistry
from agent_bridge.core.retry import is_no_conversation_found
from agent_bridge.core.session_store import SessionStore, wait_for_session_file
from agent_bridge.protocol.timeouts import (
    RESUME_FILE_POLL_SEC,
    RESUME_FILE_WAIT_SEC,
    REWIND_TIMEOUT_SEC,
)
from agent_bridge.utils.log import get_logger

logger = get_logger()

MAX_CANDIDATES = 8
REWIND_UNAVAILABLE = (
    "rewindFiles method not available. "
    "File checkpointing may not be enabled or SDK version too old."
)
SUCCESS_MESSAGE = "Files restored successfully"

Resumer = Callable[..., Any]


def is_user_text_record(record: Optional[Dict[str, Any]]) -> bool:
    """True for a user record carrying typed text (not a bare tool result)."""
    if not isinstance(record, dict) or record.get("type") != "user":
        return False
    message = record.get("message")
    content = message.get("content") if isinstance(message, dict) else None
    if isinstance(content, str):
        return bool(content.strip())
    if isinstance(content, list):
        return any(
            isinstance(block, dict)
            and block.get("type") == "text"
            and isinstance(block.get("text"), str)
            and bool(block["text"].strip())
            for block in content
        )
    return False


def resolve_rewind_candidates(
    records: Iterable[Dict[str, Any]], target_id: str, limit: int = MAX_CANDIDATES
) -> List[str]:
    """Message ids worth trying when ``target_id`` has no checkpoint.

    Walks parent links from the target up to the nearest user-text message,
    then adds the last user-text message of the transcript.
    """
    records = list(records)
    by_uuid: Dict[str, Dict[str, Any]] = {}
    for record in records:
        uuid = record.get("uuid")
        if isinstance(uuid, str) and uuid:
            by_uuid[uuid] = record

    candidates: List[str] = []
    visited = set()
    current: Optional[str] = target_id
    while current and current not in visited:
        visited.add(current)
        candidates.append(current)
        record = by_uuid.get(current)
        if record is None:
            break
        if is_user_text_record(record):
            break
        parent = record.get("parentUuid")
        current = parent if isinstance(parent, str) else None

    for record in reversed(records):
        if is_user_text_record(record) and isinstance(record.get("uuid"), str):
            candidates.append(record["uuid"])
            break

    unique: List[str] = []
    for candidate in candidates:
        if candidate and candidate not in unique:
            unique.append(candidate)
    return unique[:limit]


async def _call_rewind(handle: Any, message_id: str, timeout: float) -> None:
    try:
        async with asyncio.timeout(timeout):
            result = handle.rewind_files(message_id)
            if inspect.isawaitable(result):
                await result
    except asyncio.TimeoutError as exc:
        raise RewindError(f"Rewind timeout ({int(timeout * 1000)}ms)") from exc


class RewindResolver:
    """Runs a rewind against a live or freshly resumed session handle."""

    def __init__(
        self,
        registry: Optional[SessionHandleRegistry] = None,
        store: Optional[SessionStore] = None,
        resumer: Optional[Resumer] = None,
        timeout: float = REWIND_TIMEOUT_SEC,
    ) -> None:
        self.registry = registry or SessionHandleRegistry()
        self.store = store or SessionStore()
        self._resumer = resumer
        self.timeout = timeout

    def _resume(self, session_id: str, cwd: Optional[str]) -> Any:
        if self._resumer is None:
            from agent_bridge.core.providers.agent_sdk import AgentSdkProvider

            self._resumer = AgentSdkProvider().resume_for_rewind
        return self._resumer(session_id, cwd)

    async def _open_handle(self, session_id: str, cwd: Optional[str]) -> Any:
        await wait_for_session_file(
            session_id, cwd, timeout=RESUME_FILE_WAIT_SEC, interval=RESUME_FILE_POLL_SEC
        )
        try:
            return await self._resume(session_id, cwd)
        except Exception as exc:
            if not is_no_conversation_found(exc):
                raise
            logger.debug(
                "[rewind] Session not ready, retrying resume",
                extra={"session_id": session_id},
            )
            await wait_for_session_file(
                session_id, cwd, timeout=RESUME_FILE_WAIT_SEC, interval=RESUME_FILE_POLL_SEC
            )
            return await self._resume(session_id, cwd)

    async def rewind(
        self, session_id: str, target_message_id: str, cwd: Optional[str] = None
    ) -> Dict[str, Any]:
        """Restore files; returns the JSON payload for the host."""
        cwd = cwd or os.getcwd()
        handle = self.registry.get(session_id)
        if handle is None:
            try:
                handle = await self._open_handle(session_id, cwd)
            except Exception as exc:
                logger.warning(
                    "[rewind] Failed to resume session: %s: %s",
                    type(exc).__name__,
                    exc,
                    extra={"session_id": session_id},
                )
                return {
                    "success": False,
                    "error": f"Failed to resume session {session_id}: {exc}",
                }

        try:
            if not callable(getattr(handle, "rewind_files", None)):
                return {"success": False, "error": REWIND_UNAVAILABLE}
            used_id = await self._rewind_with_fallback(handle, session_id, target_message_id, cwd)
            logger.info(
                "[rewind] Files restored",
                extra={"session_id": session_id, "message_id": used_id},
            )
            return {
                "success": True,
                "message": SUCCESS_MESSAGE,
                "sessionId": session_id,
                "targetMessageId": used_id,
            }
        except Exception as exc:
            logger.warning(
                "[rewind] Rewind failed: %s: %s",
                type(exc).__name__,
                exc,
                extra={"session_id": session_id, "message_id": target_message_id},
            )
            return {"success": False, "error": str(exc) or type(exc).__name__}
        finally:
            await self.registry.release(handle)

    async def _rewind_with_fallback(
        self, handle: Any, session_id: str, target_message_id: str, cwd: Optional[str]
    ) -> str:
        try:
            await _call_rewind(handle, target_message_id, self.timeout)
            return target_message_id
        except Exception as exc:
            if not is_missing_checkpoint_error(exc):
                raise
            last_error: BaseException = exc

        candidates = resolve_rewind_candidates(self.store.read_all(session_id, cwd), target_message_id)
        logger.debug(
            "[rewind] No checkpoint for target, trying candidates",
            extra={"session_id": session_id, "candidates": candidates},
        )
        for candidate in candidates:
            if candidate == target_message_id:
                continue
            try:
                await _call_rewind(handle, candidate, self.timeout)
                return candidate
            except Exception as exc:
                if not is_missing_checkpoint_error(exc):
                    raise
                last_error = exc
        raise last_error


__all__ = [
    "MAX_CANDIDATES",
    "RewindResolver",
    "is_user_text_record",
    "resolve_rewind_candidates",
]
