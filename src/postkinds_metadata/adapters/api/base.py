"""
Shared HTTP pipeline for provider clients.

:class:`BaseAPIClient` composes the pieces every provider needs: the
process-wide rate limiter, the retry engine, JSON decoding, error
classification and the response cache. Provider clients subclass it, set
their own default headers and override :meth:`BaseAPIClient.decode` when the
upstream speaks something other than JSON.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from logging import LoggerAdapter
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, MutableMapping, Optional
from urllib.parse import urlencode

import httpx

from ...core.cache import CacheStore, MemoryCacheStore, build_cache_key, namespaced_key
from ...core.events import ApiEvent, EventLevel, EventSink, LoggingEventSink
from ...core.logging import get_logger, log_with_extra
from ...core.ratelimit import RateLimiter, shared_rate_limiter
from .errors import APIError, error_for_status
from .retry import CallState, RetryPolicy, send_with_retry

DEFAULT_TIMEOUT = 15.0
DEFAULT_CACHE_TTL = 86400
DEFAULT_RATE_LIMIT = 1.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_USER_AGENT = "postkinds-metadata/0.1 (+https://github.com/postkinds)"
RAW_BODY_KEY = "raw"
_BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})
_MISS = object()

__all__ = [
    "APIError",
    "BaseAPIClient",
    "ProviderConfig",
    "RAW_BODY_KEY",
    "RequestDescriptor",
]


@dataclass(frozen=True, slots=True)
class ProviderConfig:
    """
    Immutable per-provider settings.

    Attributes
    ----------
    name:
        Provider identifier. Namespaces cache keys and rate-limit state.
    base_url:
        Root URL; endpoints are joined onto it.
    requests_per_second:
        Allowed request rate. ``0`` disables throttling.
    cache_ttl:
        Default cache lifetime in seconds.
    timeout:
        Per-request timeout in seconds.
    max_retries:
        Total attempts per request.
    credentials:
        Read-only credential bundle (API keys, tokens).
    """

    name: str
    base_url: str
    requests_per_second: float = DEFAULT_RATE_LIMIT
    cache_ttl: int = DEFAULT_CACHE_TTL
    timeout: float = DEFAULT_TIMEOUT
    max_retries: int = DEFAULT_MAX_RETRIES
    credentials: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("ProviderConfig.name must be non-empty.")
        object.__setattr__(self, "credentials", MappingProxyType(dict(self.credentials)))

    @property
    def min_interval(self) -> float:
        if self.requests_per_second <= 0:
            return 0.0
        return 1.0 / self.requests_per_second

    def credential(self, key: str, default: Any = None) -> Any:
        value = self.credentials.get(key, default)
        if isinstance(value, str) and not value.strip():
            return default
        return value


@dataclass(frozen=True, slots=True)
class RequestDescriptor:
    """One outbound request, before URL building and header merging."""

    method: str
    endpoint: str
    params: Mapping[str, Any] = field(default_factory=dict)
    body: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class BaseAPIClient:
    """
    Base synchronous HTTP client with rate limiting, retries and caching.

    Parameters
    ----------
    config:
        Provider settings.
    http_client:
        Optional pre-built :class:`httpx.Client`. Tests pass one backed by
        :class:`httpx.MockTransport`. When omitted the client owns one.
    rate_limiter:
        Limiter shared across clients; defaults to the process-wide one.
    cache:
        Store for decoded payloads.
    events:
        Sink for error and debug events.
    retry_policy:
        Overrides the policy derived from ``config``.
    sleeper / clock:
        Time primitives used by the retry engine.
    """

    config: ProviderConfig
    http_client: Optional[httpx.Client] = None
    rate_limiter: RateLimiter = field(default_factory=shared_rate_limiter)
    cache: CacheStore = field(default_factory=MemoryCacheStore)
    events: EventSink = field(default_factory=LoggingEventSink)
    retry_policy: Optional[RetryPolicy] = None
    sleeper: Callable[[float], None] = time.sleep
    clock: Callable[[], float] = time.monotonic
    user_agent: str = DEFAULT_USER_AGENT
    queued_status: bool = False
    logger: LoggerAdapter = field(init=False, repr=False)
    _owns_client: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        self.logger = get_logger(
            f"{self.__class__.__module__}.{self.__class__.__name__}",
            extra={"provider": self.config.name},
        )
        if self.retry_policy is None:
            self.retry_policy = RetryPolicy(max_retries=max(1, self.config.max_retries), queued_status=self.queued_status)
        if self.http_client is None:
            self.http_client = self._build_client()
            self._owns_client = True

    @property
    def provider(self) -> str:
        return self.config.name

    # ------------------------------------------------------------------ hooks

    def default_headers(self) -> Dict[str, str]:
        """Provider-specific headers. Overridden by subclasses."""

        return {}

    def decode(self, response: httpx.Response) -> Any:
        """Decode a response body; non-JSON bodies come back under ``RAW_BODY_KEY``."""

        text = response.text
        if not text:
            return {}
        try:
            return json.loads(text)
        except ValueError:
            return {RAW_BODY_KEY: text}

    # -------------------------------------------------------------- plumbing

    def _build_client(self) -> httpx.Client:
        return httpx.Client(timeout=self.config.timeout, follow_redirects=True)

    def close(self) -> None:
        if self._owns_client and self.http_client is not None:
            self.http_client.close()

    def __enter__(self) -> "BaseAPIClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def build_url(self, endpoint: str, params: Optional[Mapping[str, Any]] = None) -> str:
        if endpoint.startswith(("http://", "https://")):
            url = endpoint
        else:
            url = self.config.base_url.rstrip("/") + "/" + endpoint.lstrip("/")
        query = _encode_params(params)
        if query:
            url = f"{url}{'&' if '?' in url else '?'}{query}"
        return url

    def _merge_headers(self, headers: Optional[Mapping[str, str]]) -> Dict[str, str]:
        merged: Dict[str, str] = {"Accept": "application/json", "User-Agent": self.user_agent}
        merged.update(self.default_headers())
        if headers:
            merged.update(headers)
        return merged

    def _emit(self, level: EventLevel, message: str, **context: object) -> None:
        self.events.emit(ApiEvent(level=level, provider=self.provider, message=message, context=context))

    def prepare(self, descriptor: RequestDescriptor) -> httpx.Request:
        method = descriptor.method.upper()
        headers = self._merge_headers(descriptor.headers)
        content: Optional[bytes] = None
        if method in _BODY_METHODS and descriptor.body:
            headers["Content-Type"] = "application/json"
            content = json.dumps(descriptor.body).encode("utf-8")
        return httpx.Request(
            method,
            self.build_url(descriptor.endpoint, descriptor.params),
            headers=headers,
            content=content,
        )

    # --------------------------------------------------------------- pipeline

    def request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Mapping[str, Any]] = None,
        body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Any:
        """
        Send a request through the rate limiter and retry engine and return the
        decoded payload.

        Raises
        ------
        ClientError / ServerError
            When the final response carries a status >= 400.
        ExhaustedRetriesError
            When every attempt failed with a retryable error.
        """

        descriptor = RequestDescriptor(
            method=method.upper(),
            endpoint=endpoint,
            params=dict(params or {}),
            body=body,
            headers=dict(headers or {}),
        )
        http_request = self.prepare(descriptor)
        url = str(http_request.url)
        log_with_extra(self.logger, logging.DEBUG, "HTTP request", {"method": descriptor.method, "url": url})
        self._emit(EventLevel.DEBUG, "Request prepared", url=url, state=CallState.IDLE.value)

        def send() -> httpx.Response:
            with self.rate_limiter.throttle(self.provider, self.config.min_interval) as waited:
                if waited > 0:
                    self._emit(EventLevel.DEBUG, "Rate limited", url=url, state=CallState.RATE_LIMITED.value, delay=waited)
                return self.http_client.send(http_request)

        response = send_with_retry(
            send,
            provider=self.provider,
            url=url,
            policy=self.retry_policy,
            sleeper=self.sleeper,
            clock=self.clock,
            on_event=self.events.emit,
        )
        log_with_extra(self.logger, logging.DEBUG, "HTTP response", {"status_code": response.status_code, "url": url})

        payload = self.decode(response)
        if response.status_code >= 400:
            error = error_for_status(self.provider, response.status_code, payload, response=response)
            self._emit(
                EventLevel.ERROR,
                error.message,
                url=url,
                status_code=error.status,
                state=CallState.TERMINAL_FAILURE.value,
            )
            raise error
        return payload

    def get(
        self,
        endpoint: str,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Any:
        return self.request("GET", endpoint, params=params, headers=headers)

    def post(
        self,
        endpoint: str,
        body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
        params: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        return self.request("POST", endpoint, params=params, body=body, headers=headers)

    # ------------------------------------------------------------------ cache

    def get_cache(self, key: str) -> Any:
        return self.cache.get(namespaced_key(self.provider, key))

    def set_cache(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        self.cache.set(namespaced_key(self.provider, key), value, self.config.cache_ttl if ttl is None else ttl)

    def delete_cache(self, key: str) -> None:
        self.cache.delete(namespaced_key(self.provider, key))

    def cache_key(self, endpoint: str, params: Optional[Mapping[str, Any]] = None) -> str:
        return build_cache_key(self.provider, endpoint, params)

    def cached_get(
        self,
        endpoint: str,
        params: Optional[Mapping[str, Any]] = None,
        ttl: Optional[float] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Any:
        """Return the decoded GET payload, served from cache until it expires."""

        key = self.cache_key(endpoint, params)
        cached = self.cache.get(key, _MISS)
        if cached is not _MISS:
            log_with_extra(self.logger, logging.DEBUG, "Cache hit", {"cache": "hit", "url": endpoint})
            return cached
        log_with_extra(self.logger, logging.DEBUG, "Cache miss", {"cache": "miss", "url": endpoint})
        payload = self.get(endpoint, params=params, headers=headers)
        self.cache.set(key, payload, self.config.cache_ttl if ttl is None else ttl)
        return payload

    def invalidate(self, endpoint: str, params: Optional[Mapping[str, Any]] = None) -> None:
        self.cache.delete(self.cache_key(endpoint, params))


def _encode_params(params: Optional[Mapping[str, Any]]) -> str:
    if not params:
        return ""
    pairs: MutableMapping[str, Any] = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        pairs[key] = value
    return urlencode(pairs, doseq=True)
