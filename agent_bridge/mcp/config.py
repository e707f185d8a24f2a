"""MCP server configuration read from ``~/.claude.json``."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from agent_bridge.core.config import ClaudeJsonConfig, ProjectEntry, config_manager
from agent_bridge.utils.log import get_logger

logger = get_logger()

TRANSPORT_STDIO = "stdio"
TRANSPORT_HTTP = "http"
TRANSPORT_SSE = "sse"
HTTP_TYPES = ("http", "streamable-http")


class McpServerConfig(BaseModel):
    """One entry of ``mcpServers``; unknown keys are kept."""

    model_config = ConfigDict(extra="allow")

    name: str
    type: Optional[str] = None
    command: Optional[str] = None
    args: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)
    url: Optional[str] = None
    headers: Dict[str, str] = Field(default_factory=dict)

    @property
    def transport(self) -> str:
        kind = (self.type or TRANSPORT_STDIO).strip().lower()
        if kind in HTTP_TYPES:
            return TRANSPORT_HTTP
        if kind == TRANSPORT_SSE:
            return TRANSPORT_SSE
        return TRANSPORT_STDIO


@dataclass
class InvalidServer:
    name: str
    reason: str
    raw: Any = None


@dataclass
class McpServersInfo:
    enabled: List[McpServerConfig] = field(default_factory=list)
    disabled: List[McpServerConfig] = field(default_factory=list)
    invalid: List[InvalidServer] = field(default_factory=list)

    def find(self, name: str) -> Optional[McpServerConfig]:
        for server in (*self.enabled, *self.disabled):
            if server.name == name:
                return server
        return None


def validate_server_config(raw: Any) -> Tuple[bool, Optional[str]]:
    """Return ``(valid, reason)`` for a raw server entry."""
    if not isinstance(raw, dict):
        return False, "Invalid config structure"
    has_command = isinstance(raw.get("command"), str) and bool(raw["command"])
    has_url = isinstance(raw.get("url"), str) and bool(raw["url"])
    if not has_command and not has_url:
        return False, "Missing command or url"
    if "args" in raw and not isinstance(raw["args"], list):
        return False, "Invalid config structure"
    if "env" in raw and not isinstance(raw["env"], dict):
        return False, "Invalid config structure"
    return True, None


def normalize_project_path(path: str) -> str:
    normalized = path.replace("\\", "/")
    return normalized[:-1] if normalized.endswith("/") and len(normalized) > 1 else normalized


def find_project_entry(config: ClaudeJsonConfig, cwd: Optional[str]) -> Optional[ProjectEntry]:
    """Project entry for ``cwd``, tolerating separator and leading-slash variants."""
    if not cwd:
        return None
    if cwd in config.projects:
        return config.projects[cwd]
    normalized = normalize_project_path(cwd)
    variants = {normalized, normalized.replace("/", "\\"), "/" + normalized.lstrip("/")}
    for key, entry in config.projects.items():
        if normalize_project_path(key) in variants:
            return entry
    return None


def load_claude_json() -> Optional[ClaudeJsonConfig]:
    """Parsed ``~/.claude.json``, or ``None`` when missing or structurally invalid."""
    raw = config_manager.get_claude_json_raw()
    if raw is None:
        return None
    if (
        not isinstance(raw.get("mcpServers", {}), dict)
        or not isinstance(raw.get("disabledMcpServers", []), list)
        or not isinstance(raw.get("projects", {}), dict)
    ):
        logger.error(
            "[mcp] Invalid ~/.claude.json structure",
            extra={"path": str(config_manager.claude_json_path)},
        )
        return None
    try:
        return ClaudeJsonConfig.model_validate(raw)
    except ValidationError as exc:
        logger.error(
            "[mcp] Failed to parse ~/.claude.json: %s: %s",
            type(exc).__name__,
            exc,
            extra={"path": str(config_manager.claude_json_path)},
        )
        return None


def _effective_servers(
    config: ClaudeJsonConfig, cwd: Optional[str]
) -> Tuple[Dict[str, Any], List[str]]:
    project = find_project_entry(config, cwd)
    if project is None or not project.mcp_servers:
        return dict(config.mcp_servers), list(config.disabled_mcp_servers)
    servers = dict(project.mcp_servers)
    for name, raw in config.mcp_servers.items():
        servers.setdefault(name, raw)
    logger.debug(
        "[mcp] Using project MCP servers",
        extra={"cwd": cwd, "project_servers": len(project.mcp_servers), "total": len(servers)},
    )
    return servers, list(project.disabled_mcp_servers)


def load_all_servers_info(cwd: Optional[str] = None) -> McpServersInfo:
    """Every configured server, split into enabled, disabled and invalid."""
    info = McpServersInfo()
    config = load_claude_json()
    if config is None:
        return info

    servers, disabled = _effective_servers(config, cwd)
    disabled_names = set(disabled)
    for name, raw in servers.items():
        valid, reason = validate_server_config(raw)
        if not valid:
            info.invalid.append(InvalidServer(name, reason or "Invalid config structure", raw))
            continue
        try:
            server = McpServerConfig.model_validate({**raw, "name": name})
        except ValidationError as exc:
            logger.warning(
                "[mcp] Skipping malformed server entry: %s: %s",
                type(exc).__name__,
                exc,
                extra={"server": name},
            )
            info.invalid.append(InvalidServer(name, "Invalid config structure", raw))
            continue
        if name in disabled_names:
            info.disabled.append(server)
        else:
            info.enabled.append(server)
    return info


def load_enabled_servers(cwd: Optional[str] = None) -> List[McpServerConfig]:
    return load_all_servers_info(cwd).enabled


__all__ = [
    "InvalidServer",
    "McpServerConfig",
    "McpServersInfo",
    "TRANSPORT_HTTP",
    "TRANSPORT_SSE",
    "TRANSPORT_STDIO",
    "find_project_entry",
    "load_all_servers_info",
    "load_claude_json",
    "load_enabled_servers",
    "normalize_project_path",
    "validate_server_config",
]
