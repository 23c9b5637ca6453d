"""Failure taxonomy shared by the backend adapter and the UI facade."""
from __future__ import annotations


class CloudNotesError(Exception):
    """Base class for errors raised by cloud_notes."""


class ConfigurationError(CloudNotesError):
    """The backend client could not be set up (missing credentials, bad options)."""


class RequestFailure(CloudNotesError):
    """A single backend operation failed asynchronously."""

    def __init__(self, operation: str, cause: BaseException | str) -> None:
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation} failed: {cause}")


class StreamTerminated(CloudNotesError):
    """The auth event stream ended with an error and will not be resubscribed."""
