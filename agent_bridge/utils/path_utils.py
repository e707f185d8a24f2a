"""Filesystem path helpers for the agent's on-disk state."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional, Union

PathLike = Union[str, Path]


def claude_config_dir() -> Path:
    """Return the agent config root (``~/.claude`` unless overridden)."""
    override = os.getenv("CLAUDE_CONFIG_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".claude"


def sanitize_project_path(project_path: PathLike) -> str:
    """Replace every non-alphanumeric character of the path with ``-``.

    This mirrors the directory naming the agent CLI uses under ``projects/``,
    so the result must not be normalized or hashed.
    """
    return re.sub(r"[^a-zA-Z0-9]", "-", str(project_path))


def is_safe_session_id(session_id: Optional[str]) -> bool:
    """Session ids are used as file names; reject anything path-like."""
    if not session_id or not isinstance(session_id, str):
        return False
    return "/" not in session_id and "\\" not in session_id


def projects_root() -> Path:
    return claude_config_dir() / "projects"


def session_file_path(session_id: str, cwd: Optional[PathLike] = None) -> Path:
    """Return ``<projectsRoot>/<sanitizedCwd>/<sessionId>.jsonl``."""
    if not is_safe_session_id(session_id):
        raise ValueError(f"Invalid session id: {session_id!r}")
    project = cwd if cwd else os.getcwd()
    return projects_root() / sanitize_project_path(project) / f"{session_id}.jsonl"


def has_session_file(session_id: Optional[str], cwd: Optional[PathLike] = None) -> bool:
    if not is_safe_session_id(session_id):
        return False
    try:
        return session_file_path(str(session_id), cwd).exists()
    except OSError:
        return False


__all__ = [
    "claude_config_dir",
    "has_session_file",
    "is_safe_session_id",
    "projects_root",
    "sanitize_project_path",
    "session_file_path",
]
