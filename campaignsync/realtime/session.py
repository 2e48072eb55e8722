"""Per-game realtime session and the client that swaps sessions between games."""

from __future__ import annotations

import logging
from typing import Any, Callable

from campaignsync.realtime.alerts import AlertQueue
from campaignsync.realtime.catalog import TrackCatalog, create_catalog
from campaignsync.realtime.config import RealtimeSettings, load_settings, resolve_realtime_url
from campaignsync.realtime.errors import RealtimeError
from campaignsync.realtime.impersonation import ImpersonationEngine
from campaignsync.realtime.models import ConnectionStatus
from campaignsync.realtime.music import MusicChannel
from campaignsync.realtime.presence import PresenceTracker
from campaignsync.realtime.refresh import RefreshCallable, RefreshCoalescer
from campaignsync.realtime.router import MessageRouter
from campaignsync.realtime.scheduling import TimerRegistry
from campaignsync.realtime.state import build_session_snapshot
from campaignsync.realtime.story import StoryChannel
from campaignsync.realtime.trades import TradeTracker
from campaignsync.realtime.transport import Connector, TransportSession


logger = logging.getLogger(__name__)

GameDeletedHandler = Callable[[dict[str, Any]], Any]


class GameSession:
    """All realtime state for exactly one game, bound to one transport."""

    def __init__(
        self,
        game_id: str,
        *,
        url: str | None = None,
        settings: RealtimeSettings | None = None,
        catalog: TrackCatalog | None = None,
        refresh_game: RefreshCallable | None = None,
        on_game_deleted: GameDeletedHandler | None = None,
        connector: Connector | None = None,
        user_id: str | None = None,
    ) -> None:
        if not game_id:
            raise ValueError("GameSession requires a non-empty game_id")
        self.settings = settings if settings is not None else load_settings()
        self.game_id = game_id
        self.on_game_deleted = on_game_deleted
        self.timers = TimerRegistry()
        self.transport = TransportSession(
            url or resolve_realtime_url(self.settings, user_id=user_id),
            game_id,
            on_frame=self._handle_raw,
            on_close=self._handle_transport_closed,
            connector=connector,
            reconnect_delay=self.settings.reconnect_delay,
        )
        self.refresher = RefreshCoalescer(refresh_game)
        self.story = StoryChannel()
        self.impersonation = ImpersonationEngine(game_id, self.transport)
        self.trades = TradeTracker(game_id, self.transport, on_completed=self.refresher.request_refresh)
        self.presence = PresenceTracker()
        self.alerts = AlertQueue(
            game_id,
            self.transport,
            self.timers,
            limit=self.settings.alert_limit,
            ttl=self.settings.alert_ttl,
        )
        self.music = MusicChannel(
            game_id,
            self.transport,
            catalog if catalog is not None else create_catalog(self.settings.track_catalog_path),
        )
        self.router = MessageRouter(self)
        self._closed = False

    @property
    def status(self) -> ConnectionStatus:
        return self.transport.status

    @property
    def connected(self) -> bool:
        return self.transport.status == "connected"

    @property
    def closed(self) -> bool:
        return self._closed

    def connect(self) -> None:
        if self._closed:
            raise RealtimeError("session_closed")
        self.transport.connect()

    def close(self) -> None:
        """Tear down the transport and drop every piece of derived state."""
        if self._closed:
            return
        self._closed = True
        self.transport.teardown()
        self.impersonation.reject_pending("connection_closed")
        self.refresher.close()
        self.timers.cancel_all()
        self.story.reset()
        self.impersonation.reset()
        self.trades.clear()
        self.presence.clear()
        self.music.reset()
        self.alerts.clear()
        logger.info("Realtime session for game %s closed", self.game_id)

    async def aclose(self) -> None:
        self.close()
        await self.transport.wait_closed()

    async def __aenter__(self) -> GameSession:
        self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    def snapshot(self) -> dict[str, Any]:
        return build_session_snapshot(self)

    def _handle_raw(self, raw: str | bytes) -> None:
        self.router.handle_raw(raw)

    def _handle_transport_closed(self) -> None:
        self.presence.clear()
        rejected = self.impersonation.reject_pending("connection_closed")
        if rejected:
            logger.info("Rejected %d pending impersonation request(s) after disconnect", rejected)


class RealtimeClient:
    """Keep exactly one GameSession alive for the currently active game."""

    def __init__(
        self,
        settings: RealtimeSettings | None = None,
        *,
        catalog: TrackCatalog | None = None,
        refresh_game: Callable[[str], RefreshCallable] | None = None,
        on_game_deleted: GameDeletedHandler | None = None,
        connector: Connector | None = None,
        user_id: str | None = None,
    ) -> None:
        self.settings = settings if settings is not None else load_settings()
        self._catalog = catalog if catalog is not None else create_catalog(self.settings.track_catalog_path)
        self._refresh_factory = refresh_game
        self._on_game_deleted = on_game_deleted
        self._connector = connector
        self._user_id = user_id
        self._session: GameSession | None = None

    @property
    def session(self) -> GameSession | None:
        return self._session

    @property
    def game_id(self) -> str | None:
        return self._session.game_id if self._session is not None else None

    @property
    def status(self) -> ConnectionStatus:
        return self._session.status if self._session is not None else "idle"

    def activate(self, game_id: str | None) -> GameSession | None:
        """Bind to game_id, replacing the current session when the id changes."""
        if self._session is not None and self._session.game_id == game_id:
            return self._session
        self.deactivate()
        if not game_id:
            return None
        refresh = self._refresh_factory(game_id) if self._refresh_factory is not None else None
        session = GameSession(
            game_id,
            settings=self.settings,
            catalog=self._catalog,
            refresh_game=refresh,
            on_game_deleted=self._on_game_deleted,
            connector=self._connector,
            user_id=self._user_id,
        )
        self._session = session
        session.connect()
        return session

    def deactivate(self) -> None:
        session, self._session = self._session, None
        if session is not None:
            session.close()

    async def aclose(self) -> None:
        session, self._session = self._session, None
        if session is not None:
            await session.aclose()

    async def play_music(self, track_id: str) -> None:
        if self._session is None:
            raise RealtimeError("missing_game")
        await self._session.music.play(track_id)

    async def stop_music(self) -> None:
        if self._session is None:
            return
        await self._session.music.stop()

    async def send_alert(self, message: str) -> None:
        if self._session is None:
            raise RealtimeError("missing_game")
        await self._session.alerts.broadcast(message)
