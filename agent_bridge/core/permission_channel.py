"""File-based request/response channel to the host's permission dialogs.

Each request is a JSON file dropped into a shared directory; the host answers
by writing a matching ``*-response-*`` file which is polled for, read once and
deleted. Requests are namespaced by ``CLAUDE_SESSION_ID`` so several host
windows can share one directory.
"""

from __future__ import annotations

import asyncio
import json
import os
import secrets
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from agent_bridge.core.permissions import (
    ASK_USER_QUESTION,
    PermissionVerdict,
    PlanApproval,
)
from agent_bridge.protocol.timeouts import PERMISSION_POLL_SEC, PERMISSION_TIMEOUT_SEC
from agent_bridge.utils.log import get_logger

logger = get_logger()

AUTO_ALLOWED_TOOLS = frozenset({"Read", "Glob", "Grep"})
TEMP_PATH_PREFIXES = ("/tmp", "/var/tmp", "/private/tmp")


def default_permission_dir() -> Path:
    override = os.getenv("CLAUDE_PERMISSION_DIR")
    if override:
        return Path(override)
    return Path(tempfile.gettempdir()) / "claude-permission"


def _dangerous_prefixes(home: str) -> List[str]:
    prefixes = [
        "/etc/",
        "/System/",
        "/usr/",
        "/bin/",
        f"{home}/.ssh/",
        f"{home}/.aws/",
        f"{home}/.gnupg/",
        f"{home}/.kube/",
        f"{home}/.docker/",
    ]
    if os.name == "nt":
        prefixes += [
            "C:\\Windows\\",
            "C:\\Program Files\\",
            "C:\\Program Files (x86)\\",
            f"{home}\\.ssh\\",
            f"{home}\\.aws\\",
            f"{home}\\.gnupg\\",
            f"{home}\\.kube\\",
            f"{home}\\.docker\\",
        ]
    return prefixes


def is_dangerous_path(path: str, home: Optional[str] = None) -> bool:
    home = home if home is not None else str(Path.home())
    windows = os.name == "nt"
    candidate = path.lower() if windows else path
    for prefix in _dangerous_prefixes(home):
        if (prefix.lower() if windows else prefix) in candidate:
            return True
    return False


def rewrite_temp_paths(tool_input: Any, project_root: str) -> List[Dict[str, str]]:
    """Redirect ``file_path`` values under temp dirs into the project root, in place.

    Rewrites that would escape the project root are left untouched.
    """
    prefixes = list(TEMP_PATH_PREFIXES)
    if os.getenv("TMPDIR"):
        prefixes.append(os.environ["TMPDIR"])
    root = Path(project_root).resolve()
    rewrites: List[Dict[str, str]] = []

    def rewrite(value: str) -> str:
        matched = next((p for p in prefixes if p and value.startswith(p)), None)
        if matched is None:
            return value
        relative = value[len(matched) :].lstrip("/") or Path(value).name
        target = (root / relative).resolve()
        if target != root and root not in target.parents:
            logger.debug(
                "[permissions] Temp path rewrite escaped project root",
                extra={"from": value, "to": str(target)},
            )
            return value
        rewrites.append({"from": value, "to": str(target)})
        return str(target)

    def walk(node: Any) -> None:
        if isinstance(node, list):
            for item in node:
                walk(item)
        elif isinstance(node, dict):
            if isinstance(node.get("file_path"), str):
                node["file_path"] = rewrite(node["file_path"])
            for child in node.values():
                if isinstance(child, (dict, list)):
                    walk(child)

    walk(tool_input)
    return rewrites


class FilePermissionChannel:
    """Permission collaborator backed by files in a shared directory."""

    def __init__(
        self,
        directory: Optional[Path] = None,
        session_id: Optional[str] = None,
        timeout: float = PERMISSION_TIMEOUT_SEC,
        poll_interval: float = PERMISSION_POLL_SEC,
        project_root: Optional[str] = None,
    ) -> None:
        self.directory = directory or default_permission_dir()
        self.session_id = session_id or os.getenv("CLAUDE_SESSION_ID", "default")
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.project_root = (
            project_root
            or os.getenv("IDEA_PROJECT_PATH")
            or os.getenv("PROJECT_PATH")
            or os.getcwd()
        )
        self.directory.mkdir(parents=True, exist_ok=True)

    def _request_id(self, prefix: str = "") -> str:
        stamp = f"{int(time.time() * 1000)}-{secrets.token_hex(3)}"
        return f"{prefix}-{stamp}" if prefix else stamp

    async def _exchange(
        self, kind: str, request_id: str, payload: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """Write the request file and wait for the response; ``None`` on timeout."""
        suffix = f"{self.session_id}-{request_id}.json"
        if kind:
            request_file = self.directory / f"{kind}-{suffix}"
            response_file = self.directory / f"{kind}-response-{suffix}"
        else:
            request_file = self.directory / f"request-{suffix}"
            response_file = self.directory / f"response-{suffix}"

        request_file.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        logger.debug(
            "[permissions] Request written",
            extra={"request_file": str(request_file), "response_file": str(response_file)},
        )

        deadline = time.monotonic() + self.timeout
        while time.monotonic() < deadline:
            await asyncio.sleep(self.poll_interval)
            if not response_file.exists():
                continue
            try:
                data = json.loads(response_file.read_text(encoding="utf-8"))
            finally:
                try:
                    response_file.unlink()
                except OSError as exc:
                    logger.debug(
                        "[permissions] Failed to delete response file: %s: %s",
                        type(exc).__name__,
                        exc,
                    )
            return data if isinstance(data, dict) else {}

        logger.warning(
            "[permissions] Timed out waiting for host response",
            extra={"kind": kind or "permission", "request_id": request_id},
        )
        return None

    def _base_payload(self, request_id: str, tool_name: str) -> Dict[str, Any]:
        return {
            "requestId": request_id,
            "toolName": tool_name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "cwd": os.getcwd(),
        }

    async def ask_user_question(self, tool_input: Dict[str, Any]) -> Optional[Any]:
        request_id = self._request_id("ask")
        payload = self._base_payload(request_id, ASK_USER_QUESTION)
        payload["questions"] = tool_input.get("questions") or []
        try:
            response = await self._exchange("ask-user-question", request_id, payload)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning(
                "[permissions] AskUserQuestion exchange failed: %s: %s", type(exc).__name__, exc
            )
            return None
        if response is None:
            return None
        return response.get("answers")

    async def request_plan_approval(self, tool_input: Dict[str, Any]) -> PlanApproval:
        request_id = self._request_id("plan")
        payload = self._base_payload(request_id, "ExitPlanMode")
        payload["allowedPrompts"] = tool_input.get("allowedPrompts") or []
        try:
            response = await self._exchange("plan-approval", request_id, payload)
        except (OSError, json.JSONDecodeError):
            return PlanApproval(False, message="Failed to parse plan approval response")
        if response is None:
            return PlanApproval(False, message="Plan approval timed out")
        return PlanApproval(
            approved=response.get("approved") is True,
            target_mode=response.get("targetMode") or "default",
            message=response.get("message"),
        )

    async def request_permission(self, tool_name: str, tool_input: Dict[str, Any]) -> bool:
        target = tool_input.get("file_path") or tool_input.get("path")
        if isinstance(target, str) and is_dangerous_path(target):
            logger.warning(
                "[permissions] Denied access to protected path",
                extra={"tool": tool_name, "path": target},
            )
            return False

        request_id = self._request_id()
        payload = self._base_payload(request_id, tool_name)
        payload["inputs"] = tool_input
        try:
            response = await self._exchange("", request_id, payload)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning(
                "[permissions] Permission exchange failed: %s: %s", type(exc).__name__, exc
            )
            return False
        return bool(response and response.get("allow"))

    async def can_use_tool(self, tool_name: str, tool_input: Dict[str, Any]) -> PermissionVerdict:
        if tool_name == ASK_USER_QUESTION:
            answers = await self.ask_user_question(tool_input)
            if answers is None:
                return PermissionVerdict.deny("User did not provide answers")
            return PermissionVerdict.allow(
                {"questions": tool_input.get("questions") or [], "answers": answers}
            )

        if not tool_name:
            return PermissionVerdict.deny("Tool name is required")

        rewrites = rewrite_temp_paths(tool_input, self.project_root)
        if rewrites:
            logger.info(
                "[permissions] Rewrote temp paths", extra={"tool": tool_name, "rewrites": rewrites}
            )

        if tool_name in AUTO_ALLOWED_TOOLS:
            return PermissionVerdict.allow(tool_input)

        if await self.request_permission(tool_name, tool_input):
            return PermissionVerdict.allow(tool_input)
        return PermissionVerdict.deny(f"User denied permission for {tool_name} tool")


__all__ = [
    "FilePermissionChannel",
    "default_permission_dir",
    "is_dangerous_path",
    "rewrite_temp_paths",
]
