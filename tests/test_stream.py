from __future__ import annotations

import io
import json
from typing import List

from agent_bridge.core.stream import StreamTranslator
from agent_bridge.protocol.ipc import IpcEmitter


def _translator(streaming: bool) -> tuple[StreamTranslator, io.StringIO]:
    out = io.StringIO()
    return StreamTranslator(IpcEmitter(out=out, err=io.StringIO()), streaming), out


def _lines(out: io.StringIO) -> List[str]:
    return out.getvalue().splitlines()


def _assistant(*blocks: dict, usage: dict | None = None) -> dict:
    message: dict = {"role": "assistant", "content": list(blocks)}
    if usage:
        message["usage"] = usage
    return {"type": "assistant", "message": message}


def test_non_streaming_assistant_text() -> None:
    translator, out = _translator(streaming=False)
    translator.translate(
        _assistant(
            {"type": "thinking", "thinking": "hmm"},
            {"type": "text", "text": "Hello"},
            usage={"input_tokens": 5, "output_tokens": 2},
        )
    )
    translator.finish()

    lines = _lines(out)
    assert lines[0].startswith("[MESSAGE] ")
    assert lines[1:] == [
        "[THINKING] hmm",
        "[CONTENT] Hello",
        '[USAGE] {"input_tokens": 5, "output_tokens": 2, '
        '"cache_creation_input_tokens": 0, "cache_read_input_tokens": 0}',
    ]


def test_streaming_uses_stream_events_and_skips_duplicate_text() -> None:
    translator, out = _translator(streaming=True)
    translator.translate(
        {
            "type": "stream_event",
            "event": {"type": "content_block_start", "content_block": {"type": "thinking"}},
        }
    )
    for piece in ("Hel", "lo"):
        translator.translate(
            {
                "type": "stream_event",
                "event": {
                    "type": "content_block_delta",
                    "delta": {"type": "text_delta", "text": piece},
                },
            }
        )
    translator.translate(_assistant({"type": "text", "text": "Hello"}))
    translator.finish()
    translator.finish()

    assert _lines(out) == [
        "[STREAM_START]",
        "[THINKING_START]",
        '[CONTENT_DELTA] "Hel"',
        '[CONTENT_DELTA] "lo"',
        "[STREAM_END]",
    ]


def test_streaming_without_events_emits_diffs() -> None:
    translator, out = _translator(streaming=True)
    translator.translate(_assistant({"type": "text", "text": "Hel"}))
    translator.translate(_assistant({"type": "text", "text": "Hello"}))
    translator.translate(_assistant({"type": "text", "text": "Hello"}))

    assert _lines(out) == [
        "[STREAM_START]",
        '[CONTENT_DELTA] "Hel"',
        '[CONTENT_DELTA] "lo"',
    ]


def test_tool_use_and_tool_result() -> None:
    translator, out = _translator(streaming=True)
    translator.translate(
        _assistant({"type": "tool_use", "id": "tu_1", "name": "Read", "input": {"file_path": "a"}})
    )
    translator.translate(
        {
            "type": "user",
            "message": {
                "role": "user",
                "content": [{"type": "tool_result", "tool_use_id": "tu_1", "content": "x" * 30000}],
            },
        }
    )

    lines = _lines(out)
    assert lines[0] == "[STREAM_START]"
    assert lines[1].startswith("[MESSAGE] ")
    assert lines[2] == '[TOOL_USE] {"id": "tu_1", "name": "Read"}'
    assert lines[3].startswith("[MESSAGE] ")
    tag, payload = lines[4].split(" ", 1)
    assert tag == "[TOOL_RESULT]"
    block = json.loads(payload)
    assert block["tool_use_id"] == "tu_1"
    assert "(truncated, original length: 30000 chars)" in block["content"]
    assert translator.state.seen_tool_use_count == 1


def test_stream_events_ignored_when_not_streaming() -> None:
    translator, out = _translator(streaming=False)
    translator.translate(
        {
            "type": "stream_event",
            "event": {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "x"}},
        }
    )
    assert not any(line.startswith("[CONTENT_DELTA]") for line in _lines(out))


def test_reset_for_retry_reopens_stream() -> None:
    translator, out = _translator(streaming=True)
    translator.translate(_assistant({"type": "text", "text": "partial"}))
    translator.reset_for_retry()
    translator.translate(_assistant({"type": "text", "text": "fresh"}))
    translator.finish()

    assert _lines(out) == [
        "[STREAM_START]",
        '[CONTENT_DELTA] "partial"',
        "[STREAM_START]",
        '[CONTENT_DELTA] "fresh"',
        "[STREAM_END]",
    ]
