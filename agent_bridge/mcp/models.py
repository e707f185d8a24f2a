"""Result types reported by the MCP probes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

STATUS_PENDING = "pending"
STATUS_CONNECTED = "connected"
STATUS_FAILED = "failed"


@dataclass
class ServerStatus:
    name: str
    status: str
    server_info: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @classmethod
    def connected(cls, name: str, server_info: Optional[Dict[str, Any]] = None) -> "ServerStatus":
        return cls(name, STATUS_CONNECTED, server_info=server_info)

    @classmethod
    def failed(cls, name: str, error: str) -> "ServerStatus":
        return cls(name, STATUS_FAILED, error=error)

    @classmethod
    def pending(cls, name: str, error: Optional[str] = None) -> "ServerStatus":
        return cls(name, STATUS_PENDING, error=error)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"name": self.name, "status": self.status}
        if self.server_info is not None:
            payload["serverInfo"] = self.server_info
        if self.error:
            payload["error"] = self.error
        return payload


@dataclass
class ToolsResult:
    """Tools one server exposes, plus the error that cut the listing short."""

    server_id: str
    server_name: str
    tools: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return not self.error or len(self.tools) > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "serverId": self.server_id,
            "serverName": self.server_name,
            "tools": self.tools,
            "error": self.error,
        }


__all__ = [
    "STATUS_CONNECTED",
    "STATUS_FAILED",
    "STATUS_PENDING",
    "ServerStatus",
    "ToolsResult",
]
