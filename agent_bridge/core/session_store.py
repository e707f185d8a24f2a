"""Append-only JSONL transcripts under ``~/.claude/projects``."""

from __future__ import annotations

import asyncio
import json
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from agent_bridge.utils.log import get_logger
from agent_bridge.utils.path_utils import PathLike, has_session_file, session_file_path


logger = get_logger()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _has_content(record: Dict[str, Any]) -> bool:
    message = record.get("message")
    return isinstance(message, dict) and bool(message.get("content"))


class SessionStore:
    """Transcript persistence keyed by (project, session id).

    A single writer per session is assumed; appends are not locked.
    """

    def __init__(self) -> None:
        self._last_uuid: Dict[Path, Optional[str]] = {}

    def path_for(self, session_id: str, cwd: Optional[PathLike] = None) -> Path:
        return session_file_path(session_id, cwd)

    def _tail_uuid(self, path: Path) -> Optional[str]:
        if path in self._last_uuid:
            return self._last_uuid[path]
        last: Optional[str] = None
        for record in self._iter_records(path):
            value = record.get("uuid")
            if isinstance(value, str):
                last = value
        self._last_uuid[path] = last
        return last

    def append(
        self, session_id: str, cwd: Optional[PathLike], message: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """Persist ``message`` enriched with a fresh uuid, session id and timestamp.

        Returns the written record, or ``None`` when the write failed. A failed
        write is logged and does not abort the turn.
        """
        path = self.path_for(session_id, cwd)
        record = {
            "parentUuid": None,
            **message,
            "uuid": str(uuid.uuid4()),
            "sessionId": session_id,
            "timestamp": _now_iso(),
        }
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            if record.get("parentUuid") is None:
                record["parentUuid"] = self._tail_uuid(path)
            with path.open("a", encoding="utf-8") as fh:
                fh.write(json.dumps(record, ensure_ascii=False, separators=(",", ":")))
                fh.write("\n")
        except (OSError, TypeError, ValueError) as exc:
            logger.warning(
                "Failed to append message to session transcript: %s: %s",
                type(exc).__name__,
                exc,
                extra={"session_id": session_id, "path": str(path)},
            )
            return None
        self._last_uuid[path] = record["uuid"]
        return record

    def _iter_records(self, path: Path) -> List[Dict[str, Any]]:
        if not path.exists():
            return []
        records: List[Dict[str, Any]] = []
        try:
            with path.open("r", encoding="utf-8") as fh:
                for line in fh:
                    if not line.strip():
                        continue
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError as exc:
                        logger.debug(
                            "[session_store] Skipping unparsable transcript line: %s: %s",
                            type(exc).__name__,
                            exc,
                        )
                        continue
                    if isinstance(data, dict):
                        records.append(data)
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning(
                "[session_store] Failed to read session transcript: %s: %s",
                type(exc).__name__,
                exc,
                extra={"path": str(path)},
            )
        return records

    def read_all(self, session_id: str, cwd: Optional[PathLike] = None) -> List[Dict[str, Any]]:
        """Every parseable record of the transcript, in file order."""
        return self._iter_records(self.path_for(session_id, cwd))

    def load_history(
        self, session_id: str, cwd: Optional[PathLike] = None
    ) -> List[Dict[str, Any]]:
        """Replayable ``{role, content}`` history without the trailing user turn.

        Callers persist the current user message before asking for history,
        so a trailing user record would otherwise be sent twice.
        """
        history: List[Dict[str, Any]] = []
        for record in self.read_all(session_id, cwd):
            kind = record.get("type")
            if kind in ("user", "assistant") and _has_content(record):
                history.append({"role": kind, "content": record["message"]["content"]})
        if history and history[-1]["role"] == "user":
            history.pop()
        return history

    def exists(self, session_id: Optional[str], cwd: Optional[PathLike] = None) -> bool:
        return has_session_file(session_id, cwd)


async def wait_for_session_file(
    session_id: Optional[str],
    cwd: Optional[PathLike],
    timeout: float = 2.5,
    interval: float = 0.1,
) -> bool:
    """Poll until the transcript file is visible; the agent may not have flushed it yet."""
    if has_session_file(session_id, cwd):
        return True
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        await asyncio.sleep(interval)
        if has_session_file(session_id, cwd):
            return True
    logger.debug(
        "[session_store] Session file did not appear",
        extra={"session_id": session_id, "timeout": timeout},
    )
    return False


__all__ = ["SessionStore", "wait_for_session_file"]
