import asyncio
import logging

import pytest

from campaignsync.realtime.refresh import HttpGameRefresher, RefreshCoalescer
from campaignsync.realtime.session import GameSession

from fakes import FakeConnector, make_settings, settle


class GatedRefresh:
    def __init__(self) -> None:
        self.calls = 0
        self.gate = asyncio.Event()

    async def __call__(self) -> None:
        self.calls += 1
        await self.gate.wait()


def test_burst_of_game_updates_runs_at_most_two_refreshes() -> None:
    async def scenario():
        refresh = GatedRefresh()
        session = GameSession(
            "g1", settings=make_settings(), connector=FakeConnector(), url="ws://relay.test/ws", refresh_game=refresh
        )
        for _ in range(10):
            session.router.handle_frame({"type": "game:update", "gameId": "g1"})
        await settle()
        calls_while_blocked = refresh.calls
        refresh.gate.set()
        await session.refresher.wait_idle()
        return calls_while_blocked, refresh.calls, session.refresher.in_flight

    calls_while_blocked, calls, in_flight = asyncio.run(scenario())

    assert calls_while_blocked == 1
    assert calls == 2
    assert in_flight is False


def test_refresh_failure_is_logged_and_later_requests_still_run(caplog) -> None:
    calls: list[int] = []

    def refresh() -> None:
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("backend unavailable")

    async def scenario():
        coalescer = RefreshCoalescer(refresh)
        coalescer.request_refresh()
        await coalescer.wait_idle()
        coalescer.request_refresh()
        await coalescer.wait_idle()

    with caplog.at_level(logging.WARNING):
        asyncio.run(scenario())

    assert len(calls) == 2
    assert "Realtime refresh failed" in caplog.text


def test_close_drops_queued_follow_up() -> None:
    async def scenario():
        refresh = GatedRefresh()
        coalescer = RefreshCoalescer(refresh)
        coalescer.request_refresh()
        await settle()
        coalescer.request_refresh()
        queued = coalescer.queued
        coalescer.close()
        coalescer.request_refresh()
        refresh.gate.set()
        await coalescer.wait_idle()
        return queued, refresh.calls

    queued, calls = asyncio.run(scenario())

    assert queued is True
    assert calls == 1


def test_missing_refresh_callable_is_a_no_op() -> None:
    async def scenario():
        coalescer = RefreshCoalescer(None)
        coalescer.request_refresh()
        return coalescer.in_flight

    assert asyncio.run(scenario()) is False


def test_completed_trade_triggers_a_refresh() -> None:
    async def scenario():
        refresh = GatedRefresh()
        refresh.gate.set()
        session = GameSession(
            "g1", settings=make_settings(), connector=FakeConnector(), url="ws://relay.test/ws", refresh_game=refresh
        )
        session.router.handle_frame({"type": "trade:update", "trade": {"id": "t1", "gameId": "g1"}})
        session.router.handle_frame({"type": "trade:completed", "trade": {"id": "t1", "gameId": "g1"}})
        await session.refresher.wait_idle()
        return refresh.calls, session.trades.get("t1")["lastEvent"]

    calls, last_event = asyncio.run(scenario())

    assert calls == 1
    assert last_event == "trade:completed"


def test_http_game_refresher_loads_game_document() -> None:
    httpx = pytest.importorskip("httpx")
    requested: list[str] = []
    loaded: list[dict] = []

    def handler(request):
        requested.append(request.url.path)
        if request.url.path == "/api/games/g1":
            return httpx.Response(200, json={"id": "g1", "version": 3})
        return httpx.Response(404, json={"detail": "Game not found"})

    async def scenario():
        async with httpx.AsyncClient(base_url="http://relay.test", transport=httpx.MockTransport(handler)) as client:
            refresher = HttpGameRefresher(client, "g1", on_loaded=loaded.append)
            game = await refresher()
            missing = HttpGameRefresher(client, "nope")
            with pytest.raises(httpx.HTTPStatusError):
                await missing()
            return game, refresher.loads, refresher.latest, missing.loads

    game, loads, latest, missing_loads = asyncio.run(scenario())

    assert game == {"id": "g1", "version": 3}
    assert latest == game
    assert loads == 1
    assert missing_loads == 0
    assert loaded == [game]
    assert requested == ["/api/games/g1", "/api/games/nope"]
