"""Failure kinds surfaced by the approval and execution protocol."""
from __future__ import annotations

from typing import ClassVar

from nested_safe_builder.types import CommandStatus


class SafeAuthorizationError(Exception):
    retryable: ClassVar[bool] = False

    def __init__(self, message: str) -> None:
        self.status = CommandStatus.FAILED
        self.message = message
        super().__init__(message)

    @property
    def kind(self) -> str:
        return type(self).__name__


class InsufficientSignatures(SafeAuthorizationError):
    """Signatures do not reach the Safe's own threshold; retry with more."""

    retryable = True


class NotEnoughApprovals(SafeAuthorizationError):
    """Fewer owner Safes approved the hash than the owner threshold requires."""

    retryable = True


class PostCheckFailed(SafeAuthorizationError):
    """Simulated outcome violated the caller's invariant; do not resubmit unchanged."""


class ReplayRejected(SafeAuthorizationError):
    """The batch is bound to a nonce the Safe has already consumed."""


class ExecutionReverted(SafeAuthorizationError):
    """A non-optional call failed and the whole batch was rolled back."""


class NotAnOwner(SafeAuthorizationError):
    pass


class UnknownSafe(SafeAuthorizationError):
    pass
