"""Exception hierarchy for directory API access."""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from .models import MembershipChange


class DirectoryError(Exception):
    """Base class for all errors raised by this package."""


class TransportError(DirectoryError):
    """Raised when no HTTP response could be obtained (DNS, TLS, connection)."""


class ValidationError(DirectoryError):
    """Raised when a required argument is missing before any request is sent."""


class DecodeError(DirectoryError):
    """Raised when a response body is not the JSON structure we expected."""


class PaginationError(DirectoryError):
    """Raised when a list endpoint keeps returning continuation links past the page cap."""


class AuthError(DirectoryError):
    """Raised when the token endpoint rejects the request or returns garbage."""

    def __init__(self, message: str, status: Optional[int] = None, body: bytes = b""):
        super().__init__(message)
        self.status = status
        self.body = body


class ApiError(DirectoryError):
    """Non-success response from a directory call.

    The raw response body is kept on the exception so callers can inspect the
    diagnostic payload returned by the service.
    """

    def __init__(self, message: str, status: Optional[int] = None, body: bytes = b""):
        super().__init__(message)
        self.status = status
        self.body = body

    @classmethod
    def from_status(cls, method: str, url: str, status: int, body: bytes) -> "ApiError":
        message = f"{method} {url} failed with status {status}"
        if status == 404:
            return NotFound(message, status=status, body=body)
        return cls(message, status=status, body=body)


class NotFound(ApiError):
    """The object does not exist, or a lookup used as a precondition matched nothing."""


class MembershipError(ApiError):
    """A multi-user membership edit stopped at its first failure.

    ``results`` lists every target handled before and including the failing one;
    earlier changes are not rolled back.
    """

    def __init__(
        self,
        message: str,
        results: "List[MembershipChange]",
        status: Optional[int] = None,
        body: bytes = b"",
    ):
        super().__init__(message, status=status, body=body)
        self.results = results


class UnknownTenant(DirectoryError):
    """The requested tenant domain is not in the configuration."""


class ConfigurationError(DirectoryError):
    """A configured tenant cannot be turned into a session (e.g. its secret is unset)."""
