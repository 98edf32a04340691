"""Custom exception hierarchy for the case-law search engine.

Every error inherits from CaselawError, giving the API layer a single
base class to catch and translate into structured JSON responses.
SourceError subclasses are raised by adapters and are always caught by
the orchestrator, which turns them into per-source diagnostics.
"""

from __future__ import annotations

from typing import Any


class CaselawError(Exception):
    """Base exception for all engine errors."""

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.details: dict[str, Any] = details or {}
        super().__init__(message)


class SourceError(CaselawError):
    """Raised by a source adapter. Never escapes the orchestrator."""

    def __init__(
        self,
        message: str,
        *,
        source: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.source = source


class QuotaExceededError(SourceError):
    """Raised when the local quota pre-check denies a request."""

    def __init__(
        self,
        message: str,
        *,
        source: str,
        retry_after: float | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, source=source, details=details)
        self.retry_after = retry_after


class TransientNetworkError(SourceError):
    """Raised on connection failures and timeouts talking to a remote source."""


class RemoteProtocolError(SourceError):
    """Raised when a remote source answers with a non-2xx status."""

    def __init__(
        self,
        message: str,
        *,
        source: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, source=source, details=details)
        self.status_code = status_code

    @property
    def is_auth_failure(self) -> bool:
        return self.status_code in (401, 403)


class RateLimitError(RemoteProtocolError):
    """Raised when a remote source reports its own rate limit (HTTP 429)."""

    def __init__(
        self,
        message: str,
        *,
        source: str,
        retry_after: float | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, source=source, status_code=429, details=details)
        self.retry_after = retry_after


class MalformedResponseError(RemoteProtocolError):
    """Raised when a payload does not parse into the expected native schema."""


class SourceUnavailableError(SourceError):
    """Raised when an adapter is uninitialized or marked unavailable."""


class NotFoundError(CaselawError):
    """Raised by the API layer when a requested case does not exist."""


class InvalidRequestError(CaselawError):
    """Raised by the API layer for requests naming unknown sources."""
