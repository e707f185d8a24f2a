from __future__ import annotations

import asyncio

from agent_bridge.core.config import ClaudeSettings
from agent_bridge.core.error_payload import build_config_error_payload, is_abort_error


def test_payload_reports_key_source_and_preview() -> None:
    settings = ClaudeSettings(env={"ANTHROPIC_API_KEY": "sk-ant-0123456789abcdef"})
    payload = build_config_error_payload(RuntimeError("401 Unauthorized"), settings=settings)

    assert payload["success"] is False
    assert payload["error"].startswith("Claude Code error:\n- Error message: 401 Unauthorized")
    details = payload["details"]
    assert details["keySource"] == "~/.claude/settings.json: ANTHROPIC_API_KEY"
    assert details["keyPreview"] == "sk-ant-012... (length: 23 chars)"
    assert details["baseUrl"] == "https://api.anthropic.com"
    assert details["baseUrlSource"] == "Default (https://api.anthropic.com)"
    assert details["errorName"] == "RuntimeError"
    assert details["isAbortError"] is False
    assert "RuntimeError: 401 Unauthorized" in details["errorStack"]


def test_payload_with_empty_token_and_custom_base_url() -> None:
    settings = ClaudeSettings(
        env={"ANTHROPIC_AUTH_TOKEN": "", "ANTHROPIC_BASE_URL": "https://gw.example"}
    )
    details = build_config_error_payload(ValueError("boom"), settings=settings)["details"]

    assert details["keySource"] == "~/.claude/settings.json: ANTHROPIC_AUTH_TOKEN"
    assert details["keyPreview"] == "Not configured (value is empty or missing)"
    assert details["baseUrl"] == "https://gw.example"
    assert details["baseUrlSource"] == "~/.claude/settings.json: ANTHROPIC_BASE_URL"


def test_payload_without_credentials() -> None:
    details = build_config_error_payload(ValueError("x"), settings=ClaudeSettings())["details"]
    assert details["keySource"] == "Not configured"


def test_stderr_tail_is_prepended() -> None:
    lines = [f"line {i}" for i in range(15)]
    payload = build_config_error_payload(
        RuntimeError("exit 1"), stderr_lines=lines, settings=ClaudeSettings()
    )

    assert payload["error"].startswith("SDK-STDERR:\n```\nline 5\n")
    assert payload["details"]["sdkError"].splitlines() == lines[5:]


def test_abort_detection() -> None:
    assert is_abort_error(asyncio.CancelledError())
    assert is_abort_error(RuntimeError("The operation was aborted"))
    assert not is_abort_error(RuntimeError("nope"))

    payload = build_config_error_payload(
        RuntimeError("Claude Code process aborted by user"), settings=ClaudeSettings()
    )
    assert payload["error"].startswith("Claude Code was interrupted")
    assert payload["details"]["isAbortError"] is True


def test_long_error_is_truncated() -> None:
    payload = build_config_error_payload(RuntimeError("x" * 5000), settings=ClaudeSettings())
    assert payload["error"].endswith("chars]")
    assert payload["details"]["rawError"] == "x" * 5000
