"""
Error taxonomy raised by the HTTP client pipeline.

Every failure the pipeline can surface is a subclass of :class:`APIError` and
carries the provider name, HTTP status (when one was received), a readable
message, an :class:`ErrorKind` tag and a ``retryable`` flag. The classes define
``__match_args__`` so callers can branch with structural pattern matching::

    match exc:
        case ClientError(status=404):
            ...
        case ExhaustedRetriesError(provider):
            ...
"""

from __future__ import annotations

from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Any, Mapping, Optional, Sequence

import httpx

from ..base import AdapterError

ERROR_MESSAGE_KEYS: Sequence[str] = (
    "error",
    "message",
    "error_message",
    "error_description",
    "status_message",
)


class ErrorKind(str, Enum):
    TRANSPORT = "transport"
    RATE_LIMIT = "rate_limit"
    SERVER = "server"
    CLIENT = "client"
    QUEUED = "queued"
    EXHAUSTED = "exhausted"
    DECODE = "decode"
    UNKNOWN = "unknown"


class APIError(AdapterError):
    """Raised when an HTTP API call fails."""

    kind: ErrorKind = ErrorKind.UNKNOWN
    retryable: bool = False
    __match_args__ = ("provider", "status", "message")

    def __init__(
        self,
        provider: str,
        message: str,
        *,
        status: Optional[int] = None,
        response: Optional[httpx.Response] = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.message = message
        self.status = status
        self.response = response

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(provider={self.provider!r}, status={self.status!r}, message={self.message!r})"


class TransportError(APIError):
    """DNS, connect, TLS or read failure before a response was received."""

    kind = ErrorKind.TRANSPORT
    retryable = True


class RateLimitError(APIError):
    """HTTP 429. ``retry_after`` holds the server's requested delay in seconds."""

    kind = ErrorKind.RATE_LIMIT
    retryable = True

    def __init__(
        self,
        provider: str,
        message: str,
        *,
        status: Optional[int] = 429,
        response: Optional[httpx.Response] = None,
        retry_after: Optional[float] = None,
    ) -> None:
        super().__init__(provider, message, status=status, response=response)
        self.retry_after = retry_after


class ServerError(APIError):
    kind = ErrorKind.SERVER
    retryable = True


class ClientError(APIError):
    kind = ErrorKind.CLIENT
    retryable = False


class QueuedError(APIError):
    """The provider kept answering 202 past the queued-retry budget."""

    kind = ErrorKind.QUEUED
    retryable = True


class ExhaustedRetriesError(APIError):
    kind = ErrorKind.EXHAUSTED
    retryable = False

    def __init__(
        self,
        provider: str,
        message: str,
        *,
        attempts: int,
        status: Optional[int] = None,
        response: Optional[httpx.Response] = None,
    ) -> None:
        super().__init__(provider, message, status=status, response=response)
        self.attempts = attempts


class DecodeError(AdapterError):
    """Raised by adapters that parse non-JSON payloads (XML) and fail to."""

    kind = ErrorKind.DECODE
    retryable = False
    __match_args__ = ("provider", "message")

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(message)
        self.provider = provider
        self.message = message


def extract_error_message(payload: Any, provider: str, status: int) -> str:
    """
    Pull a readable error message out of a decoded error body.

    Top-level keys are checked first, then the same keys nested under an
    ``error`` object. Falls back to a generic message naming the status.
    """

    if isinstance(payload, Mapping):
        for key in ERROR_MESSAGE_KEYS:
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value
        nested = payload.get("error")
        if isinstance(nested, Mapping):
            for key in ERROR_MESSAGE_KEYS:
                value = nested.get(key)
                if isinstance(value, str) and value.strip():
                    return value
    return f"{provider} API returned error code {status}"


def parse_retry_after(value: Optional[str], *, now: Optional[datetime] = None) -> Optional[float]:
    """Interpret a ``Retry-After`` header as seconds (delta-seconds or HTTP date)."""

    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    try:
        return max(0.0, float(text))
    except ValueError:
        pass
    try:
        target = parsedate_to_datetime(text)
    except (TypeError, ValueError):
        return None
    if target.tzinfo is None:
        target = target.replace(tzinfo=UTC)
    reference = now or datetime.now(UTC)
    return max(0.0, (target - reference).total_seconds())


def error_for_status(
    provider: str,
    status: int,
    payload: Any,
    *,
    response: Optional[httpx.Response] = None,
) -> APIError:
    """Build the error matching ``status`` (expected to be >= 400)."""

    message = extract_error_message(payload, provider, status)
    if status == 429:
        retry_after = parse_retry_after(response.headers.get("Retry-After")) if response is not None else None
        return RateLimitError(provider, message, status=status, response=response, retry_after=retry_after)
    if status >= 500:
        return ServerError(provider, message, status=status, response=response)
    return ClientError(provider, message, status=status, response=response)
