"""
Core infrastructure shared by every provider client.

Rate limiting, response caching, event reporting, logging and the execution
context live here. The provider registry sits in :mod:`postkinds_metadata.core.registry`
and is imported from there directly since it builds on the client layer.
"""

from .cache import CacheStore, FileCacheStore, MemoryCacheStore, build_cache_key, namespaced_key
from .context import CacheBackend, ExecutionContext, ExecutionOptions
from .events import ApiEvent, EventLevel, EventSink, LoggingEventSink, MemoryEventSink
from .logging import configure_logging, get_logger, log_progress, log_with_extra
from .ratelimit import RateLimiter, shared_rate_limiter

__all__ = [
    "ApiEvent",
    "CacheBackend",
    "CacheStore",
    "EventLevel",
    "EventSink",
    "ExecutionContext",
    "ExecutionOptions",
    "FileCacheStore",
    "LoggingEventSink",
    "MemoryCacheStore",
    "MemoryEventSink",
    "RateLimiter",
    "build_cache_key",
    "configure_logging",
    "get_logger",
    "log_progress",
    "log_with_extra",
    "namespaced_key",
    "shared_rate_limiter",
]
