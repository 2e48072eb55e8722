"""Coalesced game reloads triggered by realtime frames."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

import httpx

from campaignsync.realtime.scheduling import maybe_await


logger = logging.getLogger(__name__)

RefreshCallable = Callable[[], "Awaitable[Any] | Any"]


class RefreshCoalescer:
    """Keep at most one refresh in flight and at most one queued behind it."""

    def __init__(self, refresh: RefreshCallable | None) -> None:
        self._refresh = refresh
        self._inflight: asyncio.Task[None] | None = None
        self._queued = False
        self._closed = False

    @property
    def in_flight(self) -> bool:
        return self._inflight is not None

    @property
    def queued(self) -> bool:
        return self._queued

    def request_refresh(self) -> None:
        if self._closed or self._refresh is None:
            return
        if self._inflight is not None:
            self._queued = True
            return
        self._inflight = asyncio.ensure_future(self._drain())

    async def wait_idle(self) -> None:
        while self._inflight is not None:
            await asyncio.shield(self._inflight)

    def close(self) -> None:
        """Drop any queued follow-up; an in-flight refresh runs to completion."""
        self._closed = True
        self._queued = False

    async def _drain(self) -> None:
        try:
            while True:
                try:
                    await maybe_await(self._refresh())
                except Exception as exc:
                    logger.warning("Realtime refresh failed: %s", exc, exc_info=exc)
                if not self._queued or self._closed:
                    break
                self._queued = False
        finally:
            self._inflight = None


class HttpGameRefresher:
    """Load the game document over HTTP; usable as a RefreshCoalescer target."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        game_id: str,
        on_loaded: Callable[[dict[str, Any]], Any] | None = None,
    ) -> None:
        self._client = client
        self._game_id = game_id
        self._on_loaded = on_loaded
        self.latest: dict[str, Any] | None = None
        self.loads = 0

    async def __call__(self) -> dict[str, Any]:
        response = await self._client.get(f"/api/games/{self._game_id}")
        response.raise_for_status()
        game = response.json()
        self.latest = game
        self.loads += 1
        if self._on_loaded is not None:
            await maybe_await(self._on_loaded(game))
        return game
