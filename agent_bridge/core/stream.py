"""Translate provider wire messages into IPC lines."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from agent_bridge.core.output import (
    truncate_error_content,
    truncate_tool_result_block,
    usage_payload,
)
from agent_bridge.protocol.ipc import IpcEmitter


@dataclass
class StreamState:
    """Per-turn streaming bookkeeping.

    ``started``/``ended`` span the whole turn; the buffers and the
    stream-event flag belong to one attempt and are cleared on retry.
    """

    text_buffer: str = ""
    thinking_buffer: str = ""
    started: bool = False
    ended: bool = False
    seen_stream_events: bool = False
    seen_tool_use_count: int = 0

    def reset_attempt(self) -> None:
        self.text_buffer = ""
        self.thinking_buffer = ""
        self.seen_stream_events = False


def message_content(msg: Dict[str, Any]) -> Any:
    message = msg.get("message")
    if isinstance(message, dict) and "content" in message:
        return message.get("content")
    return msg.get("content")


def has_tool_use(content: Any) -> bool:
    return isinstance(content, list) and any(
        isinstance(block, dict) and block.get("type") == "tool_use" for block in content
    )


class StreamTranslator:
    """Emits the IPC lines for each message of a turn.

    Session bookkeeping and error results are left to the caller; this class
    only shapes output.
    """

    def __init__(self, emitter: IpcEmitter, streaming: bool) -> None:
        self.emitter = emitter
        self.streaming = streaming
        self.state = StreamState()

    def translate(self, msg: Dict[str, Any]) -> None:
        if self.streaming and not self.state.started:
            self.emitter.stream_start()
            self.state.started = True

        kind = msg.get("type")
        if self.streaming and kind == "stream_event":
            self._on_stream_event(msg.get("event"))
            return

        content = message_content(msg) if kind in ("assistant", "user") else None
        if not (self.streaming and kind == "assistant" and not has_tool_use(content)):
            self.emitter.message(msg)

        if kind == "assistant":
            self._on_assistant_content(content)
            message = msg.get("message")
            if isinstance(message, dict) and message.get("usage"):
                self.emitter.usage(usage_payload(message["usage"]))
        elif kind == "user" and isinstance(content, list):
            for block in content:
                if isinstance(block, dict) and block.get("type") == "tool_result":
                    self.emitter.tool_result(truncate_tool_result_block(block))

    def _on_stream_event(self, event: Any) -> None:
        self.state.seen_stream_events = True
        if not isinstance(event, dict):
            return
        event_type = event.get("type")
        delta = event.get("delta")
        if event_type == "content_block_delta" and isinstance(delta, dict):
            if delta.get("type") == "text_delta" and delta.get("text"):
                self.emitter.content_delta(delta["text"])
                self.state.text_buffer += delta["text"]
            elif delta.get("type") == "thinking_delta" and delta.get("thinking"):
                self.emitter.thinking_delta(delta["thinking"])
                self.state.thinking_buffer += delta["thinking"]
        block = event.get("content_block")
        if event_type == "content_block_start" and isinstance(block, dict):
            if block.get("type") == "thinking":
                self.emitter.thinking_start()

    def _on_assistant_content(self, content: Any) -> None:
        if isinstance(content, str):
            self._on_text(content)
            return
        if not isinstance(content, list):
            return
        for block in content:
            if not isinstance(block, dict):
                continue
            block_type = block.get("type")
            if block_type == "text":
                self._on_text(block.get("text") or "")
            elif block_type == "thinking":
                self._on_thinking(block.get("thinking") or block.get("text") or "")
            elif block_type == "tool_use":
                self.state.seen_tool_use_count += 1
                self.emitter.tool_use(block.get("id"), block.get("name"))

    def _on_text(self, text: str) -> None:
        if not self.streaming:
            self.emitter.content(truncate_error_content(text))
            return
        delta = self._sync_buffer("text_buffer", text)
        if delta:
            self.emitter.content_delta(delta)

    def _on_thinking(self, text: str) -> None:
        if not self.streaming:
            self.emitter.thinking(text)
            return
        delta = self._sync_buffer("thinking_buffer", text)
        if delta:
            self.emitter.thinking_delta(delta)

    def _sync_buffer(self, attr: str, text: str) -> Optional[str]:
        """Advance a buffer to ``text``; return the suffix to emit as a diff delta.

        When stream events already delivered the deltas, the buffer is only
        synchronised and nothing is returned.
        """
        buffered: str = getattr(self.state, attr)
        if len(text) <= len(buffered):
            return None
        setattr(self.state, attr, text)
        if self.state.seen_stream_events:
            return None
        return text[len(buffered) :]

    def reset_for_retry(self) -> None:
        """Forget the attempt without closing the stream; the retry reopens it."""
        self.state.reset_attempt()
        if self.state.started and not self.state.ended:
            self.state.started = False

    def finish(self) -> None:
        if self.streaming and self.state.started and not self.state.ended:
            self.emitter.stream_end()
            self.state.ended = True


__all__ = [
    "StreamState",
    "StreamTranslator",
    "has_tool_use",
    "message_content",
]
