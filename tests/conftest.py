from __future__ import annotations

from importlib import resources
from pathlib import Path
from typing import Any, Callable, List, Mapping, Optional

import httpx
import pytest
from typer.testing import CliRunner

from postkinds_metadata.adapters.api.base import BaseAPIClient, ProviderConfig
from postkinds_metadata.cli.main import app
from postkinds_metadata.core.cache import MemoryCacheStore
from postkinds_metadata.core.events import MemoryEventSink
from postkinds_metadata.core.ratelimit import RateLimiter


class FakeClock:
    """Deterministic clock; ``sleep`` records the delay and advances time."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(scope="session")
def registry_file() -> Path:
    with resources.as_file(resources.files("postkinds_metadata.resources") / "providers.yaml") as ref:
        return Path(ref)


@pytest.fixture()
def cli_runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def cli_app():
    return app


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def make_client(clock: FakeClock) -> Callable[..., BaseAPIClient]:
    """
    Build a provider client wired to ``httpx.MockTransport`` and the fake clock.

    Rate limiting is off unless ``rate`` is given, so retry timings are the only
    sleeps recorded.
    """

    def factory(
        handler: Callable[[httpx.Request], httpx.Response],
        client_cls: type = BaseAPIClient,
        *,
        name: str = "demo",
        base_url: str = "https://api.example.test/",
        rate: float = 0.0,
        max_retries: int = 3,
        cache_ttl: int = 300,
        credentials: Optional[Mapping[str, Any]] = None,
        rate_limiter: Optional[RateLimiter] = None,
        cache: Any = None,
        events: Any = None,
        **options: Any,
    ) -> BaseAPIClient:
        config = ProviderConfig(
            name=name,
            base_url=base_url,
            requests_per_second=rate,
            cache_ttl=cache_ttl,
            max_retries=max_retries,
            credentials=credentials or {},
        )
        return client_cls(
            config,
            http_client=httpx.Client(transport=httpx.MockTransport(handler)),
            rate_limiter=rate_limiter or RateLimiter(clock=clock, sleeper=clock.sleep),
            cache=cache if cache is not None else MemoryCacheStore(clock=clock),
            events=events if events is not None else MemoryEventSink(),
            sleeper=clock.sleep,
            clock=clock,
            **options,
        )

    return factory
