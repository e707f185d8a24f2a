"""Read-only access to the agent's settings files.

The bridge never writes these files. It consumes:

- ``~/.claude/settings.json`` for credentials, base URL, thinking and
  streaming defaults (the ``env`` block is the single source of truth for
  credentials; the process environment is deliberately ignored).
- ``~/.claude.json`` for MCP server definitions.
"""

from __future__ import annotations

import json
import os
import platform
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from agent_bridge.utils.log import get_logger
from agent_bridge.utils.path_utils import claude_config_dir


logger = get_logger()

DEFAULT_BASE_URL = "https://api.anthropic.com"
DEFAULT_MAX_THINKING_TOKENS = 10000


class ClaudeSettings(BaseModel):
    """Subset of ``~/.claude/settings.json`` the bridge reads."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    env: Dict[str, Any] = Field(default_factory=dict)
    always_thinking_enabled: Optional[bool] = Field(default=None, alias="alwaysThinkingEnabled")
    max_thinking_tokens: Optional[int] = Field(default=None, alias="maxThinkingTokens")
    streaming_enabled: Optional[bool] = Field(default=None, alias="streamingEnabled")

    def env_value(self, key: str) -> Optional[str]:
        value = self.env.get(key)
        if value is None:
            return None
        return str(value)

    @property
    def bedrock_enabled(self) -> bool:
        value = self.env.get("CLAUDE_CODE_USE_BEDROCK")
        return value in (1, True, "1", "true")


class ProjectEntry(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    mcp_servers: Dict[str, Any] = Field(default_factory=dict, alias="mcpServers")
    disabled_mcp_servers: List[str] = Field(default_factory=list, alias="disabledMcpServers")


class ClaudeJsonConfig(BaseModel):
    """Subset of ``~/.claude.json`` the bridge reads."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    mcp_servers: Dict[str, Any] = Field(default_factory=dict, alias="mcpServers")
    disabled_mcp_servers: List[str] = Field(default_factory=list, alias="disabledMcpServers")
    projects: Dict[str, ProjectEntry] = Field(default_factory=dict)


@dataclass(frozen=True)
class Credentials:
    """Resolved authentication for a provider call."""

    auth_type: str  # auth_token | api_key | aws_bedrock | cli_session
    api_key: Optional[str]
    api_key_source: str
    base_url: Optional[str]
    base_url_source: str


class CredentialsNotConfiguredError(Exception):
    """Neither settings credentials nor a CLI login were found."""


class ConfigManager:
    """Loads settings files, caching each by modification time."""

    def __init__(self) -> None:
        self._cache: Dict[Path, Tuple[int, Any]] = {}

    @property
    def settings_path(self) -> Path:
        return claude_config_dir() / "settings.json"

    @property
    def claude_json_path(self) -> Path:
        return Path.home() / ".claude.json"

    @property
    def credentials_path(self) -> Path:
        return claude_config_dir() / ".credentials.json"

    def _read_json(self, path: Path) -> Optional[Any]:
        try:
            mtime = path.stat().st_mtime_ns
        except FileNotFoundError:
            self._cache.pop(path, None)
            return None
        except OSError as e:
            logger.warning(
                "Error reading config file: %s: %s",
                type(e).__name__,
                e,
                extra={"path": str(path)},
            )
            return None

        cached = self._cache.get(path)
        if cached is not None and cached[0] == mtime:
            return cached[1]

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
            logger.warning(
                "Error loading config file: %s: %s",
                type(e).__name__,
                e,
                extra={"path": str(path)},
            )
            return None
        self._cache[path] = (mtime, data)
        return data

    def get_settings(self) -> ClaudeSettings:
        data = self._read_json(self.settings_path)
        if not isinstance(data, dict):
            return ClaudeSettings()
        try:
            return ClaudeSettings.model_validate(data)
        except ValueError as e:
            logger.warning(
                "Error parsing settings: %s: %s",
                type(e).__name__,
                e,
                extra={"path": str(self.settings_path)},
            )
            return ClaudeSettings()

    def get_claude_json_raw(self) -> Optional[Dict[str, Any]]:
        """Raw ``~/.claude.json`` payload; structural validation is left to the caller."""
        data = self._read_json(self.claude_json_path)
        return data if isinstance(data, dict) else None

    def has_cli_session(self) -> bool:
        data = self._read_json(self.credentials_path)
        if not isinstance(data, dict):
            return False
        oauth = data.get("claudeAiOauth") or {}
        token = oauth.get("accessToken") if isinstance(oauth, dict) else None
        return bool(token)

    def resolve_credentials(self) -> Credentials:
        """Pick the auth method from settings, falling back to a CLI login."""
        settings = self.get_settings()
        base_url = settings.env_value("ANTHROPIC_BASE_URL")
        base_url_source = "settings.json" if base_url else "default"

        auth_token = settings.env_value("ANTHROPIC_AUTH_TOKEN")
        api_key = settings.env_value("ANTHROPIC_API_KEY")
        if auth_token:
            return Credentials(
                "auth_token",
                auth_token,
                "settings.json (ANTHROPIC_AUTH_TOKEN)",
                base_url,
                base_url_source,
            )
        if api_key:
            return Credentials(
                "api_key", api_key, "settings.json (ANTHROPIC_API_KEY)", base_url, base_url_source
            )
        if settings.bedrock_enabled:
            return Credentials(
                "aws_bedrock", None, "settings.json (AWS_BEDROCK)", base_url, base_url_source
            )
        if self.has_cli_session():
            source = (
                "CLI session (macOS Keychain)"
                if platform.system() == "Darwin"
                else "CLI session (~/.claude/.credentials.json)"
            )
            return Credentials("cli_session", None, source, base_url, base_url_source)

        raise CredentialsNotConfiguredError("API Key not configured and no CLI session found")


def apply_credentials_to_env(credentials: Credentials) -> None:
    """Export the resolved credentials for the agent subprocess.

    Only one of the two key variables is left set, so the agent cannot pick
    up a stale value from the user's shell.
    """
    if credentials.auth_type == "auth_token":
        os.environ["ANTHROPIC_AUTH_TOKEN"] = credentials.api_key or ""
        os.environ.pop("ANTHROPIC_API_KEY", None)
    elif credentials.auth_type == "api_key":
        os.environ["ANTHROPIC_API_KEY"] = credentials.api_key or ""
        os.environ.pop("ANTHROPIC_AUTH_TOKEN", None)
    else:
        os.environ.pop("ANTHROPIC_API_KEY", None)
        os.environ.pop("ANTHROPIC_AUTH_TOKEN", None)
    if credentials.base_url:
        os.environ["ANTHROPIC_BASE_URL"] = credentials.base_url


def resolve_thinking_budget(settings: ClaudeSettings) -> Optional[int]:
    """Token budget for extended thinking, or ``None`` to leave it to the provider."""
    enabled = settings.always_thinking_enabled
    if enabled is False:
        return None
    if settings.max_thinking_tokens:
        return int(settings.max_thinking_tokens)
    try:
        from_env = int(os.getenv("MAX_THINKING_TOKENS", "0") or 0)
    except ValueError:
        from_env = 0
    return from_env or DEFAULT_MAX_THINKING_TOKENS


def resolve_streaming(requested: Optional[bool], settings: ClaudeSettings) -> bool:
    if requested is not None:
        return bool(requested)
    return bool(settings.streaming_enabled) if settings.streaming_enabled is not None else False


config_manager = ConfigManager()


def get_settings() -> ClaudeSettings:
    return config_manager.get_settings()


def resolve_credentials() -> Credentials:
    return config_manager.resolve_credentials()


__all__ = [
    "ClaudeJsonConfig",
    "ClaudeSettings",
    "ConfigManager",
    "Credentials",
    "CredentialsNotConfiguredError",
    "DEFAULT_BASE_URL",
    "ProjectEntry",
    "apply_credentials_to_env",
    "config_manager",
    "get_settings",
    "resolve_credentials",
    "resolve_streaming",
    "resolve_thinking_budget",
]
