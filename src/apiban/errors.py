"""Exceptions raised by the apiban package."""

from __future__ import annotations


class ApibanError(Exception):
    """Base exception for all apiban errors."""


class InvalidInputError(ApibanError, ValueError):
    """Raised when a caller passes a missing key or an unusable address."""


class ProtocolError(ApibanError):
    """Raised when the feed answers with a response that breaks the pagination contract."""


class UpstreamError(ApibanError):
    """Raised for any upstream failure not covered by a more specific error."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        reason: str = "",
        url: str = "",
    ) -> None:
        self.status_code = status_code
        self.reason = reason
        self.url = url
        super().__init__(message)


class UnauthorizedError(UpstreamError):
    """Raised when the feed rejects the API key."""


class RateLimitedError(UpstreamError):
    """Raised when the feed throttles the caller."""


class UnsupportedOperationError(ApibanError, NotImplementedError):
    """Raised when a mutation is attempted against a read-only store."""

    def __init__(self, operation: str, store: str = "") -> None:
        self.operation = operation
        msg = f"'{operation}' is not supported"
        if store:
            msg += f" by {store}"
        super().__init__(msg)
