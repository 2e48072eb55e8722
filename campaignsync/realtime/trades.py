"""Trade negotiation state merged from server snapshots."""

from __future__ import annotations

import logging
from typing import Any, Callable

from campaignsync.realtime.errors import RealtimeError
from campaignsync.realtime.protocol import (
    ClientFrame,
    FrameSender,
    TradeCommandFrame,
    TradeRespondFrame,
    TradeStartFrame,
    TradeUpdateFrame,
)
from campaignsync.realtime.topic import Topic


logger = logging.getLogger(__name__)


class TradeTracker:
    """Upserts trade sessions by id and exposes fire-and-forget trade commands."""

    def __init__(
        self,
        game_id: str,
        sender: FrameSender,
        on_completed: Callable[[], None] | None = None,
    ) -> None:
        self._game_id = game_id
        self._sender = sender
        self._on_completed = on_completed
        self._sessions: dict[str, dict[str, Any]] = {}
        self.changes: Topic[list[dict[str, Any]]] = Topic("trades")

    @property
    def sessions(self) -> list[dict[str, Any]]:
        return [dict(session) for session in self._sessions.values()]

    def get(self, trade_id: str) -> dict[str, Any] | None:
        session = self._sessions.get(trade_id)
        return dict(session) if session is not None else None

    def subscribe(self, handler: Callable[[list[dict[str, Any]]], None]) -> Callable[[], None]:
        return self.changes.subscribe(handler)

    def apply(self, frame_type: str, trade: Any, reason: Any = None, initiated_by: Any = None) -> dict[str, Any] | None:
        """Overlay an inbound trade payload onto the stored session for its id."""
        if not isinstance(trade, dict):
            return None
        trade_id = trade.get("id")
        if not isinstance(trade_id, str) or trade_id == "":
            return None
        # Top-level keys only; nested values such as offers are replaced whole.
        merged = dict(self._sessions.get(trade_id, {}))
        merged.update(trade)
        merged["lastEvent"] = frame_type
        merged["reason"] = reason or None
        merged["initiatedBy"] = initiated_by
        self._sessions[trade_id] = merged
        self.changes.publish(self.sessions)
        if frame_type == "trade:completed" and self._on_completed is not None:
            self._on_completed()
        return dict(merged)

    def dismiss(self, trade_id: str) -> bool:
        if self._sessions.pop(trade_id, None) is None:
            return False
        self.changes.publish(self.sessions)
        return True

    def clear(self) -> None:
        self._sessions = {}

    async def start(self, partner_id: str, note: str | None = None) -> None:
        if not partner_id:
            logger.warning("trade.start skipped: missing partner")
            return
        await self._send(TradeStartFrame(game_id=self._game_id, partner_id=partner_id, note=note))

    async def respond(self, trade_id: str, accept: bool) -> None:
        await self._send(TradeRespondFrame(trade_id=trade_id, accept=accept))

    async def update_offer(self, trade_id: str, items: list[Any]) -> None:
        await self._send(TradeUpdateFrame(trade_id=trade_id, items=list(items)))

    async def confirm(self, trade_id: str) -> None:
        await self._send(TradeCommandFrame(type="trade.confirm", trade_id=trade_id))

    async def unconfirm(self, trade_id: str) -> None:
        await self._send(TradeCommandFrame(type="trade.unconfirm", trade_id=trade_id))

    async def cancel(self, trade_id: str) -> None:
        await self._send(TradeCommandFrame(type="trade.cancel", trade_id=trade_id))

    async def _send(self, frame: ClientFrame) -> None:
        try:
            await self._sender.send(frame)
        except RealtimeError as exc:
            logger.error("%s failed: %s", frame.type, exc.reason)
