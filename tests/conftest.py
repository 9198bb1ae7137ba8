"""
pytest configuration and shared fixtures

Consul is faked with httpx.MockTransport; blocking queries are held open
until the key's index moves past the requested one or the fake's wait
timeout elapses.
"""

import asyncio
import contextlib
import time
from datetime import timedelta

import httpx
import pytest

from consul_config.common.config import ConsulConfigSource
from consul_config.store import ConsulClientFactory, StoreAccessor
from consul_config.watch import ChangeWatcher

CONFIG_KEY = "app/config"


class FakeConsul:
    """In-memory Consul KV endpoint with blocking-query support"""

    def __init__(self, wait_timeout: float = 0.05):
        self.values: dict[str, bytes] = {}
        self.index = 1
        self.wait_timeout = wait_timeout
        self.failures = 0  # Next N requests fail with a connection error
        self.load_failures = 0  # Next N non-blocking requests fail with a 500
        self.status_override: int | None = None
        self.requests: list[httpx.Request] = []
        self.request_times: list[float] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._waiters: list[asyncio.Future] = []

    def put(self, key: str, value: bytes, index: int | None = None) -> None:
        self.index = index if index is not None else self.index + 1
        self.values[key] = value
        for waiter in self._waiters:
            if not waiter.done():
                waiter.set_result(None)
        self._waiters.clear()

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.request_times.append(time.monotonic())
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            return await self._respond(request)
        finally:
            self.in_flight -= 1

    async def _respond(self, request: httpx.Request) -> httpx.Response:
        if self.failures > 0:
            self.failures -= 1
            raise httpx.ConnectError("connection refused", request=request)

        if self.load_failures > 0 and "index" not in request.url.params:
            self.load_failures -= 1
            return httpx.Response(500, headers={"X-Consul-Index": str(self.index)})

        if self.status_override is not None:
            return httpx.Response(self.status_override, headers={"X-Consul-Index": str(self.index)})

        key = request.url.path[len("/v1/kv/"):]
        wait_index = request.url.params.get("index")
        if wait_index is not None and self.index <= int(wait_index):
            waiter = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(waiter, timeout=self.wait_timeout)

        headers = {"X-Consul-Index": str(self.index)}
        if key not in self.values:
            return httpx.Response(404, headers=headers)
        return httpx.Response(200, headers=headers, content=self.values[key])


@pytest.fixture
def fake_consul() -> FakeConsul:
    return FakeConsul()


@pytest.fixture
def source() -> ConsulConfigSource:
    """Source with a near-zero watch backoff so failure tests run fast"""
    return ConsulConfigSource(
        key=CONFIG_KEY,
        on_watch_exception=lambda context: timedelta(0),
        min_watch_backoff_s=0.01,
    )


@pytest.fixture
def accessor(source: ConsulConfigSource, fake_consul: FakeConsul) -> StoreAccessor:
    transport = httpx.MockTransport(fake_consul.handler)
    return StoreAccessor(source, ConsulClientFactory(source, transport=transport))


@pytest.fixture
def watcher(source: ConsulConfigSource, accessor: StoreAccessor) -> ChangeWatcher:
    return ChangeWatcher(source, accessor)


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Poll a condition from async tests"""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)
