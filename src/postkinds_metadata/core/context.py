"""
Execution context shared by CLI commands and services.

The context owns the process-level collaborators every provider client needs:
the rate limiter, the response cache and the event sink. Clients receive them
by reference so two clients for the same provider share throttling state and
cached payloads.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from logging import LoggerAdapter
from pathlib import Path
from typing import Mapping, MutableSet, Optional, Sequence

from ..config import SecretsBundle, load_secrets
from .cache import CacheStore, FileCacheStore, MemoryCacheStore
from .events import EventSink, LoggingEventSink
from .logging import get_logger as _get_logger
from .ratelimit import RateLimiter, shared_rate_limiter


class CacheBackend(str, Enum):
    MEMORY = "memory"
    FILE = "file"


@dataclass(slots=True)
class ExecutionOptions:
    """
    Flags controlling how commands behave at runtime.

    Attributes
    ----------
    dry_run:
        When ``True`` commands only emit their execution plan without
        performing network calls.
    observability_tags:
        Additional tags surfaced in logs.
    cache_backend:
        ``memory`` keeps payloads for the lifetime of the process; ``file``
        persists them under ``cache_dir`` between CLI invocations.
    """

    dry_run: bool = False
    observability_tags: Sequence[str] = field(default_factory=tuple)
    cache_backend: CacheBackend = CacheBackend.MEMORY


def build_cache(backend: CacheBackend | str, cache_dir: Path) -> CacheStore:
    """Instantiate the cache store selected by ``backend``."""

    resolved = CacheBackend(backend)
    if resolved is CacheBackend.FILE:
        return FileCacheStore(cache_dir / "http")
    return MemoryCacheStore()


@dataclass(slots=True)
class ExecutionContext:
    """
    Shared execution context across CLI commands.

    Attributes
    ----------
    enabled_providers:
        IDs of providers that are currently enabled. An empty set means every
        registered provider is allowed.
    cache_dir:
        Root directory for the file cache.
    secrets:
        Bundled secret values loaded from ``.secrets``.
    options:
        Auxiliary execution flags toggled by the caller or environment.
    rate_limiter / cache / events:
        Collaborators handed to every provider client.
    """

    enabled_providers: MutableSet[str]
    cache_dir: Path
    secrets: SecretsBundle
    options: ExecutionOptions = field(default_factory=ExecutionOptions)
    rate_limiter: RateLimiter = field(default_factory=shared_rate_limiter)
    cache: CacheStore = field(default_factory=MemoryCacheStore)
    events: EventSink = field(default_factory=LoggingEventSink)
    extra: Mapping[str, object] = field(default_factory=dict)

    @classmethod
    def build_default(
        cls,
        *,
        cache_dir: Optional[Path] = None,
        enabled_providers: Optional[Sequence[str]] = None,
        options: Optional[ExecutionOptions] = None,
        secrets: Optional[SecretsBundle] = None,
        events: Optional[EventSink] = None,
    ) -> "ExecutionContext":
        """
        Construct a context using sensible defaults.

        Parameters
        ----------
        cache_dir:
            Base directory for caches. Defaults to ``.cache/postkinds`` relative
            to the current working directory.
        enabled_providers:
            Optional iterable used to seed the allowlist.
        options:
            Optional execution flags.
        secrets:
            Preloaded secret bundle. When omitted the helper calls
            :func:`load_secrets`.
        events:
            Event sink override; defaults to the logging sink.
        """

        resolved_cache = cache_dir or Path.cwd() / ".cache" / "postkinds"
        resolved_cache.mkdir(parents=True, exist_ok=True)
        resolved_options = options or ExecutionOptions()
        return cls(
            enabled_providers=set(enabled_providers or []),
            cache_dir=resolved_cache,
            secrets=secrets or load_secrets(strict=False),
            options=resolved_options,
            cache=build_cache(resolved_options.cache_backend, resolved_cache),
            events=events or LoggingEventSink(),
        )

    def is_enabled(self, provider_id: str) -> bool:
        """
        Check whether a provider is enabled in the current context.

        When no allowlist has been declared every provider is enabled.
        """

        if not self.enabled_providers:
            return True
        return provider_id in self.enabled_providers

    def enable(self, provider_id: str) -> None:
        self.enabled_providers.add(provider_id)

    def disable(self, provider_id: str) -> None:
        self.enabled_providers.discard(provider_id)

    def get_logger(self, name: str, *, extra: Optional[Mapping[str, object]] = None) -> LoggerAdapter:
        """Return a logger adapter enriched with the context's observability tags."""

        tags = tuple(self.options.observability_tags)
        return _get_logger(name, tags=tags if tags else None, extra=extra)
