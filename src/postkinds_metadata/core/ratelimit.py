"""
Process-wide request spacing for metadata providers.

A single :class:`RateLimiter` owns the table of last-request timestamps keyed
by provider name. Clients receive the limiter by reference, so two client
instances for the same provider throttle against the same entry. Tests inject
a limiter with a fake clock and sleeper to keep timing deterministic.
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, Optional


@dataclass(slots=True)
class RateLimiter:
    """
    Minimum-interval limiter keyed by provider name.

    Attributes
    ----------
    clock:
        Monotonic time source in seconds.
    sleeper:
        Blocking sleep used when a caller has to wait.
    """

    clock: Callable[[], float] = time.monotonic
    sleeper: Callable[[float], None] = time.sleep
    _last_request: Dict[str, float] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _provider_locks: Dict[str, threading.Lock] = field(default_factory=dict, init=False, repr=False)

    def _slot_lock(self, provider: str) -> threading.Lock:
        with self._lock:
            lock = self._provider_locks.get(provider)
            if lock is None:
                lock = self._provider_locks[provider] = threading.Lock()
            return lock

    def wait(self, provider: str, min_interval: float) -> float:
        """
        Block until ``min_interval`` seconds have passed since the last
        recorded request for ``provider``. Returns the number of seconds slept.
        """

        if min_interval <= 0:
            return 0.0
        with self._lock:
            last = self._last_request.get(provider)
        if last is None:
            return 0.0
        elapsed = self.clock() - last
        if elapsed >= min_interval:
            return 0.0
        delay = min_interval - elapsed
        self.sleeper(delay)
        return delay

    def record(self, provider: str) -> None:
        """Mark a completed request attempt for ``provider``."""

        now = self.clock()
        with self._lock:
            self._last_request[provider] = now

    @contextmanager
    def throttle(self, provider: str, min_interval: float) -> Iterator[float]:
        """
        Wait for the provider's slot, then record the attempt however it ends.

        The provider's slot lock is held from the wait until the attempt is
        recorded, so concurrent callers for one provider go out one at a time,
        ``min_interval`` apart. Unthrottled providers skip the lock.
        """

        if min_interval <= 0:
            try:
                yield 0.0
            finally:
                self.record(provider)
            return
        with self._slot_lock(provider):
            waited = self.wait(provider, min_interval)
            try:
                yield waited
            finally:
                self.record(provider)

    def last_request_time(self, provider: str) -> Optional[float]:
        with self._lock:
            return self._last_request.get(provider)

    def reset(self, provider: Optional[str] = None) -> None:
        """Forget recorded timestamps for one provider or for all of them."""

        with self._lock:
            if provider is None:
                self._last_request.clear()
            else:
                self._last_request.pop(provider, None)


_SHARED_LIMITER = RateLimiter()


def shared_rate_limiter() -> RateLimiter:
    """Return the limiter shared by every client in this process."""

    return _SHARED_LIMITER
