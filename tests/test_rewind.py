from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

import pytest

from agent_bridge.core.handles import SessionHandleRegistry
from agent_bridge.core.rewind import (
    REWIND_UNAVAILABLE,
    RewindResolver,
    is_user_text_record,
    resolve_rewind_candidates,
)
from agent_bridge.utils.path_utils import session_file_path


def _user(uuid: str, parent: Optional[str], content: Any) -> Dict[str, Any]:
    return {"type": "user", "uuid": uuid, "parentUuid": parent, "message": {"role": "user", "content": content}}


def _assistant(uuid: str, parent: Optional[str]) -> Dict[str, Any]:
    return {
        "type": "assistant",
        "uuid": uuid,
        "parentUuid": parent,
        "message": {"role": "assistant", "content": [{"type": "text", "text": "ok"}]},
    }


TRANSCRIPT = [
    _user("A", None, "first question"),
    _assistant("B", "A"),
    _user("C", "B", [{"type": "text", "text": "second question"}]),
    _assistant("D", "C"),
]


def _write_transcript(session_id: str, cwd: str, records: List[Dict[str, Any]]) -> None:
    path = session_file_path(session_id, cwd)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(json.dumps(r) + "\n" for r in records), encoding="utf-8")


class CheckpointHandle:
    def __init__(self, checkpoints: Set[str], error: Optional[Exception] = None) -> None:
        self.checkpoints = checkpoints
        self.error = error
        self.calls: List[str] = []
        self.disconnected = False

    async def rewind_files(self, message_id: str) -> None:
        self.calls.append(message_id)
        if self.error is not None:
            raise self.error
        if message_id not in self.checkpoints:
            raise RuntimeError(f"No file checkpoint found for message {message_id}")

    async def disconnect(self) -> None:
        self.disconnected = True


def test_user_text_records() -> None:
    assert is_user_text_record(TRANSCRIPT[0])
    assert is_user_text_record(TRANSCRIPT[2])
    assert not is_user_text_record(TRANSCRIPT[1])
    assert not is_user_text_record(_user("E", None, [{"type": "tool_result", "content": "x"}]))
    assert not is_user_text_record(_user("F", None, "   "))


def test_candidates_walk_to_nearest_user_text() -> None:
    assert resolve_rewind_candidates(TRANSCRIPT, "D") == ["D", "C"]


def test_candidates_skip_tool_result_users() -> None:
    records = [
        _user("A", None, "question"),
        _assistant("B", "A"),
        _user("C", "B", [{"type": "tool_result", "tool_use_id": "t", "content": "out"}]),
        _assistant("D", "C"),
    ]
    assert resolve_rewind_candidates(records, "D") == ["D", "C", "B", "A"]


def test_candidates_for_unknown_target_and_cycles() -> None:
    assert resolve_rewind_candidates(TRANSCRIPT, "zzz") == ["zzz", "C"]

    cyclic = [_assistant("X", "Y"), _assistant("Y", "X")]
    assert resolve_rewind_candidates(cyclic, "X") == ["X", "Y"]


def test_candidates_are_capped() -> None:
    chain = [_assistant(str(i), str(i - 1) if i else None) for i in range(20)]
    assert len(resolve_rewind_candidates(chain, "19", limit=8)) == 8


@pytest.mark.asyncio
async def test_rewind_uses_registered_handle(tmp_path: Path) -> None:
    registry = SessionHandleRegistry()
    handle = CheckpointHandle({"D"})
    await registry.put("s1", handle)

    async def never_resume(session_id: str, cwd: Optional[str]) -> Any:
        raise AssertionError("should not resume")

    resolver = RewindResolver(registry=registry, resumer=never_resume)
    result = await resolver.rewind("s1", "D", str(tmp_path))

    assert result == {
        "success": True,
        "message": "Files restored successfully",
        "sessionId": "s1",
        "targetMessageId": "D",
    }
    assert handle.disconnected is True
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_rewind_falls_back_to_user_message(tmp_path: Path) -> None:
    cwd = str(tmp_path)
    _write_transcript("s2", cwd, TRANSCRIPT)
    handle = CheckpointHandle({"C"})
    resumed: List[str] = []

    async def resume(session_id: str, cwd: Optional[str]) -> Any:
        resumed.append(session_id)
        return handle

    result = await RewindResolver(resumer=resume).rewind("s2", "D", cwd)

    assert result["success"] is True
    assert result["targetMessageId"] == "C"
    assert handle.calls == ["D", "C"]
    assert resumed == ["s2"]
    assert handle.disconnected is True


@pytest.mark.asyncio
async def test_rewind_reports_last_checkpoint_error(tmp_path: Path) -> None:
    cwd = str(tmp_path)
    _write_transcript("s3", cwd, TRANSCRIPT)
    handle = CheckpointHandle(set())

    async def resume(session_id: str, cwd: Optional[str]) -> Any:
        return handle

    result = await RewindResolver(resumer=resume).rewind("s3", "D", cwd)

    assert result == {"success": False, "error": "No file checkpoint found for message C"}


@pytest.mark.asyncio
async def test_other_rewind_errors_abort_fallback(tmp_path: Path) -> None:
    cwd = str(tmp_path)
    _write_transcript("s4", cwd, TRANSCRIPT)
    handle = CheckpointHandle({"C"}, error=RuntimeError("permission denied"))

    async def resume(session_id: str, cwd: Optional[str]) -> Any:
        return handle

    result = await RewindResolver(resumer=resume).rewind("s4", "D", cwd)

    assert result == {"success": False, "error": "permission denied"}
    assert handle.calls == ["D"]


@pytest.mark.asyncio
async def test_rewind_unavailable_on_old_handle(tmp_path: Path) -> None:
    _write_transcript("s5", str(tmp_path), TRANSCRIPT)

    class OldHandle:
        async def disconnect(self) -> None:
            pass

    async def resume(session_id: str, cwd: Optional[str]) -> Any:
        return OldHandle()

    result = await RewindResolver(resumer=resume).rewind("s5", "D", str(tmp_path))
    assert result == {"success": False, "error": REWIND_UNAVAILABLE}


@pytest.mark.asyncio
async def test_resume_failure_is_reported(tmp_path: Path) -> None:
    _write_transcript("s6", str(tmp_path), TRANSCRIPT)

    async def resume(session_id: str, cwd: Optional[str]) -> Any:
        raise RuntimeError("CLI not found")

    result = await RewindResolver(resumer=resume).rewind("s6", "D", str(tmp_path))
    assert result == {"success": False, "error": "Failed to resume session s6: CLI not found"}


@pytest.mark.asyncio
async def test_rewind_timeout(tmp_path: Path) -> None:
    registry = SessionHandleRegistry()

    class SlowHandle:
        async def rewind_files(self, message_id: str) -> None:
            await asyncio.sleep(5)

    await registry.put("s7", SlowHandle())
    result = await RewindResolver(registry=registry, timeout=0.05).rewind("s7", "D", str(tmp_path))

    assert result == {"success": False, "error": "Rewind timeout (50ms)"}
