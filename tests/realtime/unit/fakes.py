from __future__ import annotations

import asyncio
import json
from typing import Any, Callable

from campaignsync.realtime.config import RealtimeSettings


_CLOSED = object()


class FakeConnection:
    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self._incoming: asyncio.Queue[Any] = asyncio.Queue()

    def push(self, frame: dict[str, Any] | str) -> None:
        self._incoming.put_nowait(frame if isinstance(frame, str) else json.dumps(frame))

    def drop(self) -> None:
        self._incoming.put_nowait(_CLOSED)

    def fail(self, exc: BaseException) -> None:
        self._incoming.put_nowait(exc)

    async def send(self, message: str) -> None:
        if self.closed:
            raise ConnectionResetError("fake connection closed")
        self.sent.append(json.loads(message))

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._incoming.put_nowait(_CLOSED)

    def __aiter__(self) -> FakeConnection:
        return self

    async def __anext__(self) -> str:
        item = await self._incoming.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item


class FakeConnector:
    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.urls: list[str] = []
        self.connections: list[FakeConnection] = []

    async def __call__(self, url: str) -> FakeConnection:
        self.urls.append(url)
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionRefusedError("refused")
        connection = FakeConnection()
        self.connections.append(connection)
        return connection

    @property
    def latest(self) -> FakeConnection:
        return self.connections[-1]


def make_settings(**overrides: Any) -> RealtimeSettings:
    values: dict[str, Any] = {
        "api_base_url": "http://relay.test",
        "realtime_url": None,
        "reconnect_delay": 0.01,
        "alert_ttl": 20.0,
        "alert_limit": 5,
        "track_catalog_path": None,
        "host": "127.0.0.1",
        "port": 8000,
    }
    values.update(overrides)
    return RealtimeSettings(**values)


async def settle(rounds: int = 10) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)
