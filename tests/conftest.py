"""Pytest configuration and fixtures for all tests."""

from __future__ import annotations

from pathlib import Path

import pytest

_ISOLATED_ENV = (
    "ANTHROPIC_API_KEY",
    "ANTHROPIC_AUTH_TOKEN",
    "ANTHROPIC_BASE_URL",
    "ANTHROPIC_DEFAULT_OPUS_MODEL",
    "ANTHROPIC_DEFAULT_SONNET_MODEL",
    "ANTHROPIC_DEFAULT_HAIKU_MODEL",
    "CLAUDE_ATTACHMENTS_FILE",
    "CLAUDE_CONFIG_DIR",
    "CLAUDE_CODE_USE_BEDROCK",
    "CLAUDE_SESSION_ID",
    "CLAUDE_USE_STDIN",
    "IDEA_PROJECT_PATH",
    "MAX_THINKING_TOKENS",
    "PROJECT_PATH",
)


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point ``~`` and the permission directory into the test's tmp dir.

    Settings, ``~/.claude.json`` and transcripts are all read relative to the
    home directory, so no test ever touches the real user's files.
    """
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setattr(Path, "home", lambda: home)
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("CLAUDE_PERMISSION_DIR", str(tmp_path / "permissions"))
    for name in _ISOLATED_ENV:
        monkeypatch.delenv(name, raising=False)
    return home
