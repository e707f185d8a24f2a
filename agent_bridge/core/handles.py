"""Registry of live provider handles, keyed by session id."""

from __future__ import annotations

import inspect
from collections import OrderedDict
from typing import Any, List, Optional

from agent_bridge.utils.log import get_logger

logger = get_logger()

DEFAULT_CAPACITY = 32
_CLOSE_METHODS = ("aclose", "disconnect", "close")


async def close_handle(handle: Any, session_id: str = "") -> None:
    """Release a provider handle through whichever close method it offers."""
    for name in _CLOSE_METHODS:
        method = getattr(handle, name, None)
        if not callable(method):
            continue
        try:
            result = method()
            if inspect.isawaitable(result):
                await result
        except Exception as exc:  # a failing close must not break the caller
            logger.warning(
                "[handles] Failed to close handle: %s: %s",
                type(exc).__name__,
                exc,
                extra={"session_id": session_id},
            )
        return


class SessionHandleRegistry:
    """Bounded LRU map from session id to the live query handle.

    Evicted and replaced handles are closed. Access happens on the event loop
    only, so no locking is done.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        self.capacity = max(1, capacity)
        self._handles: "OrderedDict[str, Any]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._handles)

    def register(self, session_id: str, handle: Any) -> List[Any]:
        """Store ``handle``; return the handles displaced by this call.

        Displaced handles must be closed by the caller (see :meth:`put`).
        """
        displaced: List[Any] = []
        previous = self._handles.pop(session_id, None)
        if previous is not None and previous is not handle:
            displaced.append(previous)
        self._handles[session_id] = handle
        while len(self._handles) > self.capacity:
            evicted_id, evicted = self._handles.popitem(last=False)
            logger.debug("[handles] Evicting handle", extra={"session_id": evicted_id})
            if evicted is not handle:
                displaced.append(evicted)
        return displaced

    async def put(self, session_id: str, handle: Any) -> None:
        for old in self.register(session_id, handle):
            await close_handle(old, session_id)

    def get(self, session_id: Optional[str]) -> Optional[Any]:
        if not session_id or session_id not in self._handles:
            return None
        self._handles.move_to_end(session_id)
        return self._handles[session_id]

    def has_session(self, session_id: Optional[str]) -> bool:
        return bool(session_id) and session_id in self._handles

    def active_session_ids(self) -> List[str]:
        return list(self._handles.keys())

    async def close(self, session_id: str) -> bool:
        handle = self._handles.pop(session_id, None)
        if handle is None:
            return False
        await close_handle(handle, session_id)
        return True

    async def release(self, handle: Any) -> None:
        """Drop every entry pointing at ``handle`` and close it once."""
        if handle is None:
            return
        for session_id in [sid for sid, h in self._handles.items() if h is handle]:
            del self._handles[session_id]
        await close_handle(handle)

    async def close_all(self) -> None:
        while self._handles:
            session_id, handle = self._handles.popitem(last=False)
            await close_handle(handle, session_id)


__all__ = ["DEFAULT_CAPACITY", "SessionHandleRegistry", "close_handle"]
