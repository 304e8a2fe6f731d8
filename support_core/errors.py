"""Exception hierarchy for ticket and membership operations."""

from __future__ import annotations


class SupportError(Exception):
    """Base class for errors that end an operation with a message for the actor."""

    def __init__(self, message: str) -> None:
        self.user_message = message
        super().__init__(message)


class ValidationError(SupportError):
    """Missing or malformed input."""


class InvalidDurationFormat(ValidationError):
    """Raised when a duration string is neither a permanent token nor ``<int><unit>``."""

    def __init__(self, value: str, message: str | None = None) -> None:
        self.value = value
        super().__init__(message or f"Invalid duration format: {value!r}")


class ConflictError(SupportError):
    """The requested transition conflicts with current state."""


class PermissionDeniedError(SupportError):
    """The actor is not allowed to perform this transition."""


class NotFoundError(SupportError):
    """A channel, member or role vanished."""


class ExternalApiError(SupportError):
    """A platform call failed."""

    def __init__(self, message: str, *, operation: str | None = None) -> None:
        self.operation = operation
        super().__init__(message)
