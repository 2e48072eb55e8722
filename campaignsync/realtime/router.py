"""Inbound frame validation and dispatch for one game session."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable

from campaignsync.realtime.protocol import TRADE_LIFECYCLE_TYPES, decode_frame, frame_scope
from campaignsync.realtime.scheduling import run_detached

if TYPE_CHECKING:
    from campaignsync.realtime.session import GameSession


logger = logging.getLogger(__name__)

UNSCOPED_TYPES = frozenset({"welcome", "error", "trade:error"})


class MessageRouter:
    """Route each decoded frame to exactly one subsystem of the owning session."""

    def __init__(self, session: GameSession) -> None:
        self._session = session
        self._routes: dict[str, Callable[[dict[str, Any]], None]] = {
            "welcome": self._route_welcome,
            "story:update": self._route_story_update,
            "story:impersonation_prompt": self._route_impersonation_prompt,
            "story:impersonation_status": self._route_impersonation_status,
            "trade:error": self._route_trade_error,
            "music:state": self._route_music_state,
            "music:error": self._route_music_error,
            "alert:show": self._route_alert_show,
            "alert:error": self._route_alert_error,
            "map:battleLog": self._route_battle_log,
            "game:update": self._route_game_update,
            "game:deleted": self._route_game_deleted,
            "presence:state": self._route_presence_state,
            "presence:update": self._route_presence_update,
            "error": self._route_error,
        }
        for trade_type in TRADE_LIFECYCLE_TYPES:
            self._routes[trade_type] = self._route_trade

    def handle_raw(self, raw: str | bytes) -> bool:
        try:
            frame = decode_frame(raw)
        except ValueError as exc:
            logger.warning("Failed to parse realtime message: %s", exc)
            return False
        return self.handle_frame(frame)

    def handle_frame(self, frame: Any) -> bool:
        """Apply one frame; returns False when it was dropped or ignored."""
        if not isinstance(frame, dict):
            return False
        frame_type = frame.get("type")
        route = self._routes.get(frame_type) if isinstance(frame_type, str) else None
        if route is None:
            logger.debug("Ignoring realtime frame of unknown type %r", frame_type)
            return False
        if frame_type not in UNSCOPED_TYPES:
            scope = frame_scope(frame)
            if scope != self._session.game_id:
                logger.debug("Dropping %s frame scoped to %r", frame_type, scope)
                return False
        route(frame)
        return True

    def _route_welcome(self, frame: dict[str, Any]) -> None:
        self._session.transport.mark_connected()

    def _route_story_update(self, frame: dict[str, Any]) -> None:
        self._session.story.apply_update(frame.get("snapshot"))

    def _route_impersonation_prompt(self, frame: dict[str, Any]) -> None:
        self._session.impersonation.apply_prompt(frame)

    def _route_impersonation_status(self, frame: dict[str, Any]) -> None:
        self._session.impersonation.apply_status(frame)

    def _route_trade(self, frame: dict[str, Any]) -> None:
        self._session.trades.apply(
            frame["type"],
            frame.get("trade"),
            reason=frame.get("reason"),
            initiated_by=frame.get("initiatedBy"),
        )

    def _route_trade_error(self, frame: dict[str, Any]) -> None:
        logger.warning("Trade error: %s", frame.get("error"))

    def _route_music_state(self, frame: dict[str, Any]) -> None:
        self._session.music.sync(frame.get("music"))

    def _route_music_error(self, frame: dict[str, Any]) -> None:
        self._session.music.fail(frame.get("error"))

    def _route_alert_show(self, frame: dict[str, Any]) -> None:
        self._session.alerts.show(frame.get("alert"))

    def _route_alert_error(self, frame: dict[str, Any]) -> None:
        self._session.alerts.fail(frame.get("error"))

    def _route_battle_log(self, frame: dict[str, Any]) -> None:
        self._session.story.apply_battle_log(frame.get("entry"))

    def _route_game_update(self, frame: dict[str, Any]) -> None:
        self._session.refresher.request_refresh()

    def _route_game_deleted(self, frame: dict[str, Any]) -> None:
        handler = self._session.on_game_deleted
        if handler is not None:
            run_detached("game deleted handler", handler, frame)

    def _route_presence_state(self, frame: dict[str, Any]) -> None:
        self._session.presence.replace(frame.get("online"))

    def _route_presence_update(self, frame: dict[str, Any]) -> None:
        self._session.presence.update(frame.get("userId"), frame.get("online"))

    def _route_error(self, frame: dict[str, Any]) -> None:
        logger.warning("Realtime error: %s", frame.get("error"))
