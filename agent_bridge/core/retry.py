"""Retry policy for a single user turn.

An attempt ends in an explicit :class:`AttemptOutcome`; :func:`next_delay`
decides from that outcome whether and when the turn is retried.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

RETRYABLE_PATTERNS = (
    "API request failed",
    "ECONNRESET",
    "ECONNREFUSED",
    "ETIMEDOUT",
    "ENOTFOUND",
    "network",
    "fetch failed",
    "socket hang up",
    "getaddrinfo",
    "connect EHOSTUNREACH",
    "No conversation found with session ID",
    "conversation not found",
)

NO_CONVERSATION_PATTERNS = (
    "No conversation found with session ID",
    "conversation not found",
)

OUTCOME_SUCCESS = "success"
OUTCOME_RETRYABLE = "retryable"
OUTCOME_FATAL = "fatal"


def _message_of(error: Optional[BaseException]) -> str:
    if error is None:
        return ""
    return str(error) or type(error).__name__


def is_retryable(error: Optional[BaseException]) -> bool:
    """True for errors flagged ``retryable`` or whose message names a transient failure."""
    if getattr(error, "retryable", False) is True:
        return True
    message = _message_of(error).lower()
    return any(pattern.lower() in message for pattern in RETRYABLE_PATTERNS)


def is_no_conversation_found(error: Optional[BaseException]) -> bool:
    message = _message_of(error).lower()
    return any(pattern.lower() in message for pattern in NO_CONVERSATION_PATTERNS)


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 2
    delay: float = 1.5
    fast_delay: float = 0.25
    max_messages: int = 3


@dataclass(frozen=True)
class AttemptOutcome:
    """How one provider attempt ended."""

    kind: str
    error: Optional[BaseException] = None
    message_count: int = 0
    session_id: Optional[str] = None

    @classmethod
    def success(cls, message_count: int, session_id: Optional[str]) -> "AttemptOutcome":
        return cls(OUTCOME_SUCCESS, None, message_count, session_id)

    @classmethod
    def failure(
        cls, error: BaseException, message_count: int, session_id: Optional[str]
    ) -> "AttemptOutcome":
        kind = OUTCOME_RETRYABLE if is_retryable(error) else OUTCOME_FATAL
        return cls(kind, error, message_count, session_id)

    @property
    def succeeded(self) -> bool:
        return self.kind == OUTCOME_SUCCESS


def next_delay(policy: RetryPolicy, outcome: AttemptOutcome, attempt: int) -> Optional[float]:
    """Seconds to wait before the next attempt, or ``None`` to stop.

    ``attempt`` is zero-based. Once the provider has produced more than
    ``max_messages`` messages the turn is considered underway and never
    retried.
    """
    if outcome.kind != OUTCOME_RETRYABLE:
        return None
    if attempt >= policy.max_retries:
        return None
    if outcome.message_count > policy.max_messages:
        return None
    if is_no_conversation_found(outcome.error):
        return policy.fast_delay
    return policy.delay


__all__ = [
    "AttemptOutcome",
    "NO_CONVERSATION_PATTERNS",
    "OUTCOME_FATAL",
    "OUTCOME_RETRYABLE",
    "OUTCOME_SUCCESS",
    "RETRYABLE_PATTERNS",
    "RetryPolicy",
    "is_no_conversation_found",
    "is_retryable",
    "next_delay",
]
