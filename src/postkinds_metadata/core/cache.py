"""
Key/value stores for decoded provider payloads.

Stores enforce TTL themselves; clients only compute keys and pick a TTL. Two
backends ship with the package: an in-process dictionary and a JSON-file store
rooted in the execution context's cache directory.
"""

from __future__ import annotations

import hashlib
import json
import os
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Protocol


def build_cache_key(provider: str, endpoint: str, params: Optional[Mapping[str, Any]] = None) -> str:
    """
    Deterministic key for ``endpoint`` and ``params`` namespaced by ``provider``.

    Parameter order does not affect the key.
    """

    canonical = json.dumps(dict(params or {}), sort_keys=True, separators=(",", ":"), default=str)
    digest = hashlib.sha256(f"{endpoint}|{canonical}".encode("utf-8")).hexdigest()
    return f"{provider}:{digest}"


def namespaced_key(provider: str, key: str) -> str:
    """Namespace a free-form key (e.g. ``watchlist_all``) under ``provider``."""

    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
    return f"{provider}:{digest}"


@dataclass(slots=True)
class CacheEntry:
    """A cached value and its absolute expiry timestamp."""

    key: str
    value: Any
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class CacheStore(Protocol):
    """Interface implemented by cache backends."""

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value or ``default`` when absent or expired."""

    def set(self, key: str, value: Any, ttl: float) -> None:
        """Store ``value`` for ``ttl`` seconds."""

    def delete(self, key: str) -> None:
        """Remove ``key`` if present."""

    def clear(self) -> None:
        """Drop every entry."""


@dataclass(slots=True)
class MemoryCacheStore:
    """Dictionary-backed store, scoped to the current process."""

    clock: Callable[[], float] = time.time
    _entries: Dict[str, CacheEntry] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            if entry.is_expired(self.clock()):
                del self._entries[key]
                return default
            return entry.value

    def set(self, key: str, value: Any, ttl: float) -> None:
        if ttl <= 0:
            return
        with self._lock:
            self._entries[key] = CacheEntry(key=key, value=value, expires_at=self.clock() + ttl)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


@dataclass(slots=True)
class FileCacheStore:
    """
    JSON-file store, one file per key.

    Values must be JSON serialisable. Corrupt or unreadable files are treated
    as misses and removed.
    """

    directory: Path
    clock: Callable[[], float] = time.time

    def __post_init__(self) -> None:
        self.directory = Path(self.directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self.directory / f"{digest}.json"

    def get(self, key: str, default: Any = None) -> Any:
        path = self._path_for(key)
        try:
            with path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except FileNotFoundError:
            return default
        except (OSError, ValueError):
            path.unlink(missing_ok=True)
            return default

        if not isinstance(payload, dict) or payload.get("key") != key or "value" not in payload:
            return default
        expires_at = payload.get("expires_at")
        if not isinstance(expires_at, (int, float)) or self.clock() >= expires_at:
            path.unlink(missing_ok=True)
            return default
        return payload["value"]

    def set(self, key: str, value: Any, ttl: float) -> None:
        if ttl <= 0:
            return
        path = self._path_for(key)
        document = {"key": key, "expires_at": self.clock() + ttl, "value": value}
        tmp_path = path.with_suffix(".tmp")
        with tmp_path.open("w", encoding="utf-8") as handle:
            json.dump(document, handle, ensure_ascii=False)
        os.replace(tmp_path, path)

    def delete(self, key: str) -> None:
        self._path_for(key).unlink(missing_ok=True)

    def clear(self) -> None:
        for path in self.directory.glob("*.json"):
            path.unlink(missing_ok=True)
