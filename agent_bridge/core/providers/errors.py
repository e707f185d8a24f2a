"""Normalized provider errors."""

from __future__ import annotations

import asyncio

import anthropic

from agent_bridge.core.errors import BridgeError


class ProviderMappedError(BridgeError):
    """Normalized provider exception with a stable error code."""

    def __init__(self, error_code: str, message: str, *, retryable: bool = False) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.retryable = retryable


class ProviderTimeoutError(ProviderMappedError):
    def __init__(self, message: str) -> None:
        super().__init__("timeout", message, retryable=True)


class ProviderConnectionError(ProviderMappedError):
    def __init__(self, message: str) -> None:
        super().__init__("connection_error", message, retryable=True)


class ProviderRateLimitError(ProviderMappedError):
    def __init__(self, message: str) -> None:
        super().__init__("rate_limit", message)


class ProviderAuthenticationError(ProviderMappedError):
    def __init__(self, message: str) -> None:
        super().__init__("authentication_error", message)


class ProviderPermissionDeniedError(ProviderMappedError):
    def __init__(self, message: str) -> None:
        super().__init__("permission_denied", message)


class ProviderModelNotFoundError(ProviderMappedError):
    def __init__(self, message: str) -> None:
        super().__init__("model_not_found", message)


class ProviderBadRequestError(ProviderMappedError):
    def __init__(self, message: str) -> None:
        super().__init__("bad_request", message)


class ProviderApiError(ProviderMappedError):
    """Generic upstream API error."""

    def __init__(self, message: str) -> None:
        super().__init__("api_error", message)


def classify_anthropic_error(exc: BaseException) -> ProviderMappedError:
    """Map an ``anthropic`` SDK exception onto the normalized hierarchy."""
    exc_msg = str(exc)
    if isinstance(exc, anthropic.AuthenticationError):
        return ProviderAuthenticationError(f"Authentication failed: {exc_msg}")
    if isinstance(exc, anthropic.PermissionDeniedError):
        return ProviderPermissionDeniedError(f"Permission denied: {exc_msg}")
    if isinstance(exc, anthropic.NotFoundError):
        return ProviderModelNotFoundError(f"Model not found: {exc_msg}")
    if isinstance(exc, anthropic.BadRequestError):
        return ProviderBadRequestError(f"Invalid request: {exc_msg}")
    if isinstance(exc, anthropic.RateLimitError):
        return ProviderRateLimitError(f"Rate limit exceeded: {exc_msg}")
    if isinstance(exc, anthropic.APITimeoutError):
        return ProviderTimeoutError(f"Request timed out: {exc_msg}")
    if isinstance(exc, anthropic.APIConnectionError):
        return ProviderConnectionError(f"Connection error: {exc_msg}")
    if isinstance(exc, anthropic.APIStatusError):
        status = getattr(exc, "status_code", "unknown")
        return ProviderApiError(f"API error ({status}): {exc_msg}")
    if isinstance(exc, asyncio.TimeoutError):
        return ProviderTimeoutError(f"Request timed out: {exc_msg}")
    return ProviderMappedError(
        "unknown_error", f"Unexpected error ({type(exc).__name__}): {exc_msg}"
    )


__all__ = [
    "ProviderApiError",
    "ProviderAuthenticationError",
    "ProviderBadRequestError",
    "ProviderConnectionError",
    "ProviderMappedError",
    "ProviderModelNotFoundError",
    "ProviderPermissionDeniedError",
    "ProviderRateLimitError",
    "ProviderTimeoutError",
    "classify_anthropic_error",
]
