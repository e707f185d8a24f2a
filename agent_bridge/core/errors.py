"""Exception types raised across the bridge."""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for bridge failures."""


class CommandRejectedError(BridgeError):
    """A command failed allow-list validation and was never spawned."""

    def __init__(self, command: str, reason: str) -> None:
        super().__init__(reason)
        self.command = command
        self.reason = reason


class ProviderUnavailableError(BridgeError):
    """The requested provider backend cannot be constructed."""


class TurnInProgressError(BridgeError):
    """Another turn is already running for the same session."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"A turn is already in progress for session {session_id}")
        self.session_id = session_id


class ResultError(BridgeError):
    """The provider reported an error ``result`` message."""


class RewindError(BridgeError):
    """File rewind could not be performed."""


NO_CHECKPOINT_MARKER = "No file checkpoint found for message"


def is_missing_checkpoint_error(exc: BaseException) -> bool:
    return NO_CHECKPOINT_MARKER in str(exc)


__all__ = [
    "BridgeError",
    "CommandRejectedError",
    "NO_CHECKPOINT_MARKER",
    "ProviderUnavailableError",
    "ResultError",
    "RewindError",
    "TurnInProgressError",
    "is_missing_checkpoint_error",
]
