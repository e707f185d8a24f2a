"""Allow-listed process spawning and escalating termination."""

from __future__ import annotations

import asyncio
import os
import subprocess
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence

import anyio
from anyio.abc import Process

from agent_bridge.core.errors import CommandRejectedError
from agent_bridge.utils.log import get_logger

logger = get_logger()

ALLOWED_COMMANDS = frozenset(
    {
        "node",
        "npx",
        "npm",
        "pnpm",
        "yarn",
        "bunx",
        "bun",
        "python",
        "python3",
        "uvx",
        "uv",
        "deno",
        "docker",
        "cargo",
        "go",
    }
)

# Executable suffixes accepted on the basename (Windows launchers).
VALID_EXTENSIONS = ("", ".exe", ".cmd", ".bat")

ALLOWED_ENV_VARS = (
    "PATH",
    "HOME",
    "USER",
    "SHELL",
    "LANG",
    "LC_ALL",
    "LC_CTYPE",
    "TERM",
    "TMPDIR",
    "TMP",
    "TEMP",
    "NODE_ENV",
    "NODE_PATH",
    "NODE_OPTIONS",
    "PYTHONPATH",
    "PYTHONHOME",
    "VIRTUAL_ENV",
    "DENO_DIR",
    "CARGO_HOME",
    "GOPATH",
    "GOROOT",
    "USERPROFILE",
    "APPDATA",
    "LOCALAPPDATA",
    "PROGRAMFILES",
    "PROGRAMFILES(X86)",
    "SYSTEMROOT",
    "WINDIR",
    "COMSPEC",
    "XDG_CONFIG_HOME",
    "XDG_DATA_HOME",
    "XDG_CACHE_HOME",
)

KILL_GRACE_PERIOD_SEC = 0.5


@dataclass(frozen=True)
class CommandValidation:
    valid: bool
    reason: Optional[str] = None


def validate_command(command: Optional[str]) -> CommandValidation:
    """Check ``command`` against the allow-list.

    The basename must match exactly, or match after stripping one of the
    recognised executable extensions.
    """
    if not command or not isinstance(command, str):
        return CommandValidation(False, "Command is empty or invalid")

    base = command.split("/")[-1].split("\\")[-1]
    if base in ALLOWED_COMMANDS:
        return CommandValidation(True)

    dot = base.rfind(".")
    if dot > 0:
        name, ext = base[:dot], base[dot:].lower()
        if ext not in VALID_EXTENSIONS:
            allowed_ext = ", ".join(e for e in VALID_EXTENSIONS if e)
            return CommandValidation(
                False, f'Invalid command extension "{ext}". Allowed extensions: {allowed_ext}'
            )
        if name in ALLOWED_COMMANDS:
            return CommandValidation(True)

    allowed = ", ".join(sorted(ALLOWED_COMMANDS))
    return CommandValidation(
        False, f'Command "{base}" is not in the allowed list. Allowed: {allowed}'
    )


def _enhance_path(current: str) -> str:
    home = os.environ.get("HOME") or os.environ.get("USERPROFILE") or ""
    if not home:
        return current
    parts = current.split(os.pathsep) if current else []
    for extra in (f"{home}/.local/bin", f"{home}/.cargo/bin"):
        if extra not in parts:
            parts.append(extra)
    return os.pathsep.join(parts)


def build_safe_env(server_env: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Whitelisted process env with an extended PATH, overlaid by ``server_env``."""
    env = {key: os.environ[key] for key in ALLOWED_ENV_VARS if key in os.environ}
    env["PATH"] = _enhance_path(env.get("PATH", ""))
    for key, value in (server_env or {}).items():
        env[str(key)] = str(value)
    return env


class ProcessSupervisor:
    """Spawns allow-listed commands and tears them down with SIGTERM then SIGKILL."""

    def __init__(self, grace_period: float = KILL_GRACE_PERIOD_SEC) -> None:
        self.grace_period = grace_period

    async def spawn(
        self,
        command: str,
        args: Sequence[str] = (),
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[str] = None,
    ) -> Process:
        verdict = validate_command(command)
        if not verdict.valid:
            raise CommandRejectedError(command, verdict.reason or "Command rejected")

        argv: List[str] = [command, *[str(arg) for arg in args]]
        logger.debug("[process] Spawning", extra={"argv": argv, "cwd": cwd})
        return await anyio.open_process(
            argv,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            env=dict(env) if env is not None else None,
            cwd=cwd,
        )

    def kill(self, process: Optional[Process], label: str = "") -> None:
        """Terminate ``process`` without waiting for it.

        The SIGKILL escalation is a bare loop callback, so it never holds the
        event loop open once the caller is done.
        """
        if process is None or process.returncode is not None:
            return
        try:
            process.terminate()
        except ProcessLookupError:
            return
        except OSError as exc:
            logger.debug(
                "[process] SIGTERM failed: %s: %s",
                type(exc).__name__,
                exc,
                extra={"label": label},
            )
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        loop.call_later(self.grace_period, self._force_kill, process, label)

    @staticmethod
    def _force_kill(process: Process, label: str) -> None:
        if process.returncode is not None:
            return
        try:
            process.kill()
            logger.debug("[process] Force killed", extra={"label": label})
        except ProcessLookupError:
            pass
        except OSError as exc:
            logger.debug(
                "[process] SIGKILL failed: %s: %s",
                type(exc).__name__,
                exc,
                extra={"label": label},
            )


__all__ = [
    "ALLOWED_COMMANDS",
    "CommandValidation",
    "ProcessSupervisor",
    "VALID_EXTENSIONS",
    "build_safe_env",
    "validate_command",
]
