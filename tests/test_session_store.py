from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from agent_bridge.core.session_store import SessionStore, wait_for_session_file
from agent_bridge.utils.path_utils import (
    is_safe_session_id,
    sanitize_project_path,
    session_file_path,
)


def test_session_file_path_layout(isolated_home: Path) -> None:
    path = session_file_path("abc-123", "/work/my.project")
    assert path == isolated_home / ".claude" / "projects" / "-work-my-project" / "abc-123.jsonl"


def test_config_dir_override(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CLAUDE_CONFIG_DIR", str(tmp_path / "cfg"))
    assert session_file_path("s", "/p").parent.parent == tmp_path / "cfg" / "projects"


def test_unsafe_session_ids() -> None:
    assert sanitize_project_path("C:\\Users\\me") == "C--Users-me"
    assert not is_safe_session_id("../etc/passwd")
    assert not is_safe_session_id("a\\b")
    assert not is_safe_session_id("")
    with pytest.raises(ValueError):
        session_file_path("a/b", "/p")


def test_append_chains_parent_uuids(tmp_path: Path) -> None:
    store = SessionStore()
    cwd = str(tmp_path / "proj")
    first = store.append("s1", cwd, {"type": "user", "message": {"role": "user", "content": "hi"}})
    second = store.append(
        "s1", cwd, {"type": "assistant", "message": {"role": "assistant", "content": "hello"}}
    )

    assert first is not None and second is not None
    assert first["parentUuid"] is None
    assert second["parentUuid"] == first["uuid"]
    assert first["sessionId"] == "s1"
    assert first["timestamp"].endswith("Z")

    records = store.read_all("s1", cwd)
    assert [r["uuid"] for r in records] == [first["uuid"], second["uuid"]]


def test_parent_uuid_resumes_from_existing_file(tmp_path: Path) -> None:
    cwd = str(tmp_path)
    first = SessionStore().append("s2", cwd, {"type": "user", "message": {"content": "a"}})
    assert first is not None

    fresh = SessionStore().append("s2", cwd, {"type": "user", "message": {"content": "b"}})
    assert fresh is not None
    assert fresh["parentUuid"] == first["uuid"]


def test_read_all_skips_garbage_lines(tmp_path: Path) -> None:
    store = SessionStore()
    path = store.path_for("s3", str(tmp_path))
    path.parent.mkdir(parents=True)
    path.write_text('{"uuid": "a"}\nnot json\n\n[1, 2]\n{"uuid": "b"}\n', encoding="utf-8")

    assert [r["uuid"] for r in store.read_all("s3", str(tmp_path))] == ["a", "b"]


def test_load_history_drops_trailing_user_turn(tmp_path: Path) -> None:
    store = SessionStore()
    cwd = str(tmp_path)
    store.append("s4", cwd, {"type": "user", "message": {"content": "q1"}})
    store.append("s4", cwd, {"type": "assistant", "message": {"content": "a1"}})
    store.append("s4", cwd, {"type": "system", "subtype": "init"})
    store.append("s4", cwd, {"type": "user", "message": {"content": "q2"}})

    assert store.load_history("s4", cwd) == [
        {"role": "user", "content": "q1"},
        {"role": "assistant", "content": "a1"},
    ]


def test_exists(tmp_path: Path) -> None:
    store = SessionStore()
    assert not store.exists("s5", str(tmp_path))
    store.append("s5", str(tmp_path), {"type": "user", "message": {"content": "x"}})
    assert store.exists("s5", str(tmp_path))
    assert not store.exists("../s5", str(tmp_path))


@pytest.mark.asyncio
async def test_wait_for_session_file_sees_late_file(tmp_path: Path) -> None:
    cwd = str(tmp_path)
    path = session_file_path("late", cwd)

    async def create_later() -> None:
        await asyncio.sleep(0.05)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps({"uuid": "x"}) + "\n", encoding="utf-8")

    writer = asyncio.create_task(create_later())
    assert await wait_for_session_file("late", cwd, timeout=1.0, interval=0.01)
    await writer


@pytest.mark.asyncio
async def test_wait_for_session_file_gives_up(tmp_path: Path) -> None:
    assert not await wait_for_session_file("never", str(tmp_path), timeout=0.05, interval=0.01)
