"""
Application-level exceptions.

Responsibilities:
- Define domain exceptions for RPC access and persistence.
- Separate transient endpoint failures (rotate and retry) from fatal ones,
  and "all endpoints failed" from an honest empty answer.
"""

from __future__ import annotations


class TokenWiseError(Exception):
    """Base class for all TokenWise errors."""


class EndpointError(TokenWiseError):
    """Raised when a ledger RPC call fails; not retried on another endpoint."""

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.endpoint = endpoint
        self.status_code = status_code


class RateLimitError(EndpointError):
    """Raised when an endpoint rate-limits or blocks the caller; triggers rotation."""


class AllEndpointsFailedError(EndpointError):
    """Raised when every configured endpoint failed with a rotating error."""

    def __init__(self, message: str, attempts: int, last_error: Exception | None = None) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class StorageError(TokenWiseError):
    """Raised when a write to the event store fails; the record is not durable."""
