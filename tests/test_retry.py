from __future__ import annotations

from agent_bridge.core.providers.errors import (
    ProviderAuthenticationError,
    ProviderConnectionError,
    ProviderTimeoutError,
)
from agent_bridge.core.retry import (
    OUTCOME_FATAL,
    OUTCOME_RETRYABLE,
    AttemptOutcome,
    RetryPolicy,
    is_retryable,
    next_delay,
)


def test_network_errors_are_retryable() -> None:
    assert is_retryable(RuntimeError("read ECONNRESET"))
    assert is_retryable(RuntimeError("Network error while streaming"))
    assert not is_retryable(ValueError("invalid model"))


def test_failure_outcome_is_classified() -> None:
    assert AttemptOutcome.failure(RuntimeError("fetch failed"), 0, None).kind == OUTCOME_RETRYABLE
    assert AttemptOutcome.failure(RuntimeError("bad request"), 0, None).kind == OUTCOME_FATAL


def test_next_delay_stops_after_max_retries() -> None:
    policy = RetryPolicy()
    outcome = AttemptOutcome.failure(RuntimeError("API request failed"), 0, None)

    assert next_delay(policy, outcome, 0) == policy.delay
    assert next_delay(policy, outcome, 1) == policy.delay
    assert next_delay(policy, outcome, 2) is None


def test_next_delay_uses_fast_delay_for_missing_conversation() -> None:
    policy = RetryPolicy()
    outcome = AttemptOutcome.failure(
        RuntimeError("No conversation found with session ID abc"), 0, None
    )
    assert next_delay(policy, outcome, 0) == policy.fast_delay


def test_next_delay_never_retries_after_output_started() -> None:
    policy = RetryPolicy()
    outcome = AttemptOutcome.failure(RuntimeError("socket hang up"), 4, "s1")
    assert next_delay(policy, outcome, 0) is None


def test_next_delay_never_retries_success_or_fatal() -> None:
    policy = RetryPolicy()
    assert next_delay(policy, AttemptOutcome.success(2, "s1"), 0) is None
    assert next_delay(policy, AttemptOutcome.failure(KeyError("x"), 0, None), 0) is None


def test_mapped_provider_errors_carry_their_own_retry_flag() -> None:
    assert is_retryable(ProviderConnectionError("Connection error: reset by peer"))
    assert is_retryable(ProviderTimeoutError("Request timed out: read"))
    assert not is_retryable(ProviderAuthenticationError("Authentication failed: bad key"))
    assert (
        AttemptOutcome.failure(ProviderTimeoutError("Request timed out: read"), 0, None).kind
        == OUTCOME_RETRYABLE
    )
