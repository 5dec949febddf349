"""Exception hierarchy shared by the Converge services."""

from __future__ import annotations


class ConvergeError(Exception):
    """Base class for all Converge errors."""


class TransportError(ConvergeError):
    """The HTTP request never produced a response."""


class ApiError(ConvergeError):
    """The remote service answered with a non-success status."""

    def __init__(self, status: int, body: str = "") -> None:
        self.status = status
        self.body = body
        message = f"API error {status}"
        if body:
            message += f": {body[:200]}"
        super().__init__(message)


class ParseError(ConvergeError):
    """A response body or persisted file could not be decoded."""


class ConfigurationError(ConvergeError):
    """A required setting (credential, endpoint) is missing."""


class ConcurrencyRejected(ConvergeError):
    """An operation was refused because the same one is already running."""
