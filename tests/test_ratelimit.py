from __future__ import annotations

import threading

import httpx
import pytest

from postkinds_metadata.core.events import EventLevel
from postkinds_metadata.core.ratelimit import RateLimiter, shared_rate_limiter


def test_first_request_never_waits(clock):
    limiter = RateLimiter(clock=clock, sleeper=clock.sleep)

    assert limiter.wait("tmdb", 4.0) == 0.0
    assert clock.sleeps == []


def test_wait_sleeps_for_remaining_interval(clock):
    limiter = RateLimiter(clock=clock, sleeper=clock.sleep)
    limiter.record("tmdb")
    clock.advance(1.5)

    waited = limiter.wait("tmdb", 4.0)

    assert waited == pytest.approx(2.5)
    assert clock.sleeps == [pytest.approx(2.5)]


def test_providers_are_throttled_independently(clock):
    limiter = RateLimiter(clock=clock, sleeper=clock.sleep)
    limiter.record("tmdb")

    assert limiter.wait("trakt", 4.0) == 0.0
    assert limiter.wait("tmdb", 0.0) == 0.0
    assert clock.sleeps == []


def test_throttle_records_even_when_the_call_fails(clock):
    limiter = RateLimiter(clock=clock, sleeper=clock.sleep)

    with pytest.raises(RuntimeError):
        with limiter.throttle("bgg", 5.0):
            raise RuntimeError("boom")

    assert limiter.last_request_time("bgg") == 0.0
    limiter.reset("bgg")
    assert limiter.last_request_time("bgg") is None


def test_shared_rate_limiter_is_process_wide():
    assert shared_rate_limiter() is shared_rate_limiter()


def test_clients_sharing_a_limiter_respect_minimum_interval(make_client, clock):
    limiter = RateLimiter(clock=clock, sleeper=clock.sleep)

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"ok": True})

    first = make_client(handler, rate=2.0, rate_limiter=limiter)
    second = make_client(handler, rate=2.0, rate_limiter=limiter)

    first.get("ping")
    second.get("ping")

    assert clock.sleeps == [pytest.approx(0.5)]
    rate_events = [event for event in second.events.events if event.message == "Rate limited"]
    assert rate_events and rate_events[0].level == EventLevel.DEBUG


def test_concurrent_callers_are_spaced_by_the_interval(clock):
    limiter = RateLimiter(clock=clock, sleeper=clock.sleep)
    limiter.record("alpha")
    barrier = threading.Barrier(3)
    sent: list[float] = []

    def call() -> None:
        barrier.wait()
        with limiter.throttle("alpha", 0.5):
            sent.append(clock())

    threads = [threading.Thread(target=call) for _ in range(3)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    assert sorted(sent) == [pytest.approx(0.5), pytest.approx(1.0), pytest.approx(1.5)]
    assert limiter.last_request_time("alpha") == pytest.approx(1.5)


def test_unthrottled_providers_still_record(clock):
    limiter = RateLimiter(clock=clock, sleeper=clock.sleep)
    clock.advance(3)

    with limiter.throttle("openlibrary", 0.0) as waited:
        assert waited == 0.0

    assert limiter.last_request_time("openlibrary") == 3.0
