"""Line-oriented IPC writer.

Every event is a single ``[TAG] payload`` line. Stdout carries the turn
protocol consumed by the host; stderr carries diagnostics the host may show.
"""

from __future__ import annotations

import json
import sys
from typing import Any, Optional, TextIO


def to_json(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, default=str)


class IpcEmitter:
    """Writes tagged protocol lines, flushing after each one."""

    def __init__(self, out: Optional[TextIO] = None, err: Optional[TextIO] = None) -> None:
        self._out = out
        self._err = err

    @property
    def out(self) -> TextIO:
        return self._out if self._out is not None else sys.stdout

    @property
    def err(self) -> TextIO:
        return self._err if self._err is not None else sys.stderr

    def _write(self, stream: TextIO, line: str) -> None:
        stream.write(line + "\n")
        stream.flush()

    def line(self, text: str) -> None:
        self._write(self.out, text)

    def tag(self, name: str, payload: Optional[str] = None, *, sep: str = " ") -> None:
        if payload is None:
            self._write(self.out, f"[{name}]")
        else:
            self._write(self.out, f"[{name}]{sep}{payload}")

    def tag_json(self, name: str, payload: Any, *, sep: str = " ") -> None:
        self.tag(name, to_json(payload), sep=sep)

    def err_tag(self, name: str, payload: str) -> None:
        self._write(self.err, f"[{name}] {payload}")

    def result(self, payload: Any) -> None:
        """Final JSON line of a command."""
        self._write(self.out, to_json(payload))

    # Turn protocol

    def message_start(self) -> None:
        self.tag("MESSAGE_START")

    def message_end(self) -> None:
        self.tag("MESSAGE_END")

    def message(self, payload: Any) -> None:
        self.tag_json("MESSAGE", payload)

    def content(self, text: str) -> None:
        self.tag("CONTENT", text)

    def content_delta(self, delta: str) -> None:
        self.tag_json("CONTENT_DELTA", delta)

    def thinking(self, text: str) -> None:
        self.tag("THINKING", text)

    def thinking_delta(self, delta: str) -> None:
        self.tag_json("THINKING_DELTA", delta)

    def thinking_start(self) -> None:
        self.tag("THINKING_START")

    def tool_use(self, tool_id: Any, name: Any) -> None:
        self.tag_json("TOOL_USE", {"id": tool_id, "name": name})

    def tool_result(self, block: Any) -> None:
        self.tag_json("TOOL_RESULT", block)

    def session_id(self, session_id: str) -> None:
        self.tag("SESSION_ID", session_id)

    def usage(self, usage: Any) -> None:
        self.tag_json("USAGE", usage)

    def stream_start(self) -> None:
        self.tag("STREAM_START")

    def stream_end(self) -> None:
        self.tag("STREAM_END")

    def send_error(self, payload: Any) -> None:
        self.err_tag("SEND_ERROR", to_json(payload))

    def sdk_stderr(self, text: str) -> None:
        self.err_tag("SDK-STDERR", text)

    # Side commands

    def mcp_server_status(self, statuses: Any) -> None:
        self.tag_json("MCP_SERVER_STATUS", statuses, sep="")

    def mcp_server_tools(self, payload: Any) -> None:
        self.tag_json("MCP_SERVER_TOOLS", payload)

    def slash_commands(self, commands: Any) -> None:
        self.tag_json("SLASH_COMMANDS", commands)


__all__ = ["IpcEmitter", "to_json"]
