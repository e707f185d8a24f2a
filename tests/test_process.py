from __future__ import annotations

import pytest

from agent_bridge.core.errors import CommandRejectedError
from agent_bridge.utils.process import ProcessSupervisor, build_safe_env, validate_command


@pytest.mark.parametrize(
    "command",
    ["node", "node.exe", "npx.cmd", "/usr/local/bin/uvx", "C:\\tools\\python.exe", "docker.bat"],
)
def test_validate_command_accepts_allow_listed_basenames(command: str) -> None:
    assert validate_command(command).valid is True


def test_validate_command_rejects_unknown_command() -> None:
    verdict = validate_command("rm")
    assert verdict.valid is False
    assert 'Command "rm" is not in the allowed list' in (verdict.reason or "")


def test_validate_command_rejects_script_extension() -> None:
    verdict = validate_command("node.sh")
    assert verdict.valid is False
    assert '".sh"' in (verdict.reason or "")


def test_validate_command_rejects_empty() -> None:
    assert validate_command("").valid is False
    assert validate_command(None).valid is False


def test_build_safe_env_filters_and_overlays(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PATH", "/usr/bin")
    monkeypatch.setenv("SECRET_TOKEN", "leak")
    env = build_safe_env({"API_KEY": "abc"})

    assert "SECRET_TOKEN" not in env
    assert env["API_KEY"] == "abc"
    assert env["PATH"].startswith("/usr/bin")
    assert env["PATH"].endswith(".cargo/bin")


@pytest.mark.asyncio
async def test_supervisor_refuses_to_spawn_rejected_command() -> None:
    with pytest.raises(CommandRejectedError):
        await ProcessSupervisor().spawn("bash", ["-c", "echo hi"])


def test_kill_ignores_missing_or_finished_process() -> None:
    class Finished:
        returncode = 0

        def terminate(self) -> None:  # pragma: no cover - must not be called
            raise AssertionError("terminate called on finished process")

    supervisor = ProcessSupervisor()
    supervisor.kill(None)
    supervisor.kill(Finished())  # type: ignore[arg-type]
