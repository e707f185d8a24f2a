"""Optional JSON payload delivered on stdin by the host."""

from __future__ import annotations

import asyncio
import io
import json
import os
import sys
import threading
from typing import Any, Optional, TextIO

from agent_bridge.protocol.timeouts import STDIN_READ_TIMEOUT_SEC
from agent_bridge.utils.log import get_logger

logger = get_logger()

STDIN_FLAG = "CLAUDE_USE_STDIN"
READ_CHUNK_SIZE = 65536


def stdin_enabled() -> bool:
    return os.getenv(STDIN_FLAG) == "true"


def _read_all(source: TextIO) -> str:
    """Read ``source`` to EOF, going to the raw descriptor when there is one.

    Reading the descriptor directly keeps the stream's buffer lock free, so an
    abandoned reader cannot block interpreter shutdown.
    """
    try:
        fd = source.fileno()
    except (io.UnsupportedOperation, AttributeError, ValueError):
        return source.read()
    chunks = []
    while True:
        chunk = os.read(fd, READ_CHUNK_SIZE)
        if not chunk:
            break
        chunks.append(chunk)
    return b"".join(chunks).decode("utf-8", errors="replace")


def _start_reader(source: TextIO, loop: asyncio.AbstractEventLoop) -> asyncio.Future:
    """Read ``source`` on a daemon thread and resolve the returned future.

    The thread never keeps the process alive; after a timeout it is simply
    left blocked until exit.
    """
    future: asyncio.Future = loop.create_future()

    def resolve(raw: Optional[str], error: Optional[BaseException]) -> None:
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(raw)

    def run() -> None:
        raw: Optional[str] = None
        error: Optional[BaseException] = None
        try:
            raw = _read_all(source)
        except (OSError, ValueError) as exc:
            error = exc
        try:
            loop.call_soon_threadsafe(resolve, raw, error)
        except RuntimeError:
            # loop already closed after a timeout
            return

    threading.Thread(target=run, name="agent-bridge-stdin", daemon=True).start()
    return future


async def read_stdin_payload(
    stream: Optional[TextIO] = None, timeout: float = STDIN_READ_TIMEOUT_SEC
) -> Optional[Any]:
    """Read and parse the whole of stdin, or ``None`` when disabled, empty or late."""
    if not stdin_enabled():
        return None
    source = stream if stream is not None else sys.stdin
    loop = asyncio.get_running_loop()
    try:
        raw = await asyncio.wait_for(_start_reader(source, loop), timeout)
    except asyncio.TimeoutError:
        logger.warning("[stdin] Timed out waiting for stdin payload", extra={"timeout": timeout})
        return None
    except (OSError, ValueError) as exc:
        logger.warning("[stdin] Failed to read stdin: %s: %s", type(exc).__name__, exc)
        return None

    if not raw or not raw.strip():
        return None
    try:
        return json.loads(raw.strip())
    except json.JSONDecodeError as exc:
        logger.warning("[stdin] Failed to parse stdin JSON: %s: %s", type(exc).__name__, exc)
        return None


__all__ = ["read_stdin_payload", "stdin_enabled"]
