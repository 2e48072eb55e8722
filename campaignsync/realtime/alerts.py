"""Short-lived broadcast notices with automatic expiry."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable

from campaignsync.realtime.errors import RealtimeError
from campaignsync.realtime.models import AlertEntry
from campaignsync.realtime.protocol import AlertBroadcastFrame, FrameSender
from campaignsync.realtime.scheduling import TimerRegistry
from campaignsync.realtime.topic import Topic


logger = logging.getLogger(__name__)

DEFAULT_SENDER_NAME = "Dungeon Master"
DEFAULT_ALERT_ERROR = "Alert failed"
ALERT_LIMIT = 5
ALERT_TTL_SECONDS = 20.0


def normalize_alert_entry(entry: Any) -> AlertEntry | None:
    """Validate an inbound alert payload and fill in sender and timestamp defaults."""
    if not isinstance(entry, dict):
        return None
    alert_id = entry.get("id")
    raw_message = entry.get("message")
    message = raw_message.strip() if isinstance(raw_message, str) else ""
    if not isinstance(alert_id, str) or not alert_id.strip() or not message:
        return None
    raw_sender = entry.get("senderName")
    sender_name = raw_sender.strip() if isinstance(raw_sender, str) and raw_sender.strip() else DEFAULT_SENDER_NAME
    issued_at = entry.get("issuedAt")
    if not isinstance(issued_at, str):
        issued_at = datetime.now(timezone.utc).isoformat()
    sender_id = entry.get("senderId") or None
    return AlertEntry(
        id=alert_id,
        message=message,
        sender_name=sender_name,
        issued_at=issued_at,
        sender_id=sender_id if isinstance(sender_id, str) else None,
    )


class AlertQueue:
    def __init__(
        self,
        game_id: str | None,
        sender: FrameSender,
        timers: TimerRegistry,
        *,
        limit: int = ALERT_LIMIT,
        ttl: float = ALERT_TTL_SECONDS,
    ) -> None:
        self._game_id = game_id
        self._sender = sender
        self._timers = timers
        self._limit = limit
        self._ttl = ttl
        self._entries: list[AlertEntry] = []
        self.error: str | None = None
        self.changes: Topic[list[AlertEntry]] = Topic("alerts")

    @property
    def entries(self) -> list[AlertEntry]:
        return list(self._entries)

    def subscribe(self, handler: Callable[[list[AlertEntry]], None]) -> Callable[[], None]:
        return self.changes.subscribe(handler)

    def show(self, raw: Any) -> AlertEntry | None:
        entry = normalize_alert_entry(raw)
        if entry is None:
            logger.debug("Dropping malformed alert payload: %r", raw)
            return None
        entries = [item for item in self._entries if item.id != entry.id]
        entries.append(entry)
        for evicted in entries[: -self._limit]:
            self._timers.cancel(self._timer_key(evicted.id))
        self._entries = entries[-self._limit :]
        self._timers.schedule(self._timer_key(entry.id), self._ttl, lambda: self._expire(entry.id))
        self.error = None
        self.changes.publish(self.entries)
        return entry

    def dismiss(self, alert_id: str) -> bool:
        if not alert_id:
            return False
        self._timers.cancel(self._timer_key(alert_id))
        remaining = [item for item in self._entries if item.id != alert_id]
        if len(remaining) == len(self._entries):
            return False
        self._entries = remaining
        self.changes.publish(self.entries)
        return True

    def fail(self, error: Any) -> None:
        self.error = error if isinstance(error, str) else DEFAULT_ALERT_ERROR
        logger.warning("Alert broadcast failed: %s", self.error)
        self.changes.publish(self.entries)

    async def broadcast(self, message: str) -> None:
        if not self._game_id:
            raise RealtimeError("missing_game")
        trimmed = message.strip() if isinstance(message, str) else ""
        if not trimmed:
            raise RealtimeError("missing_message")
        self.error = None
        await self._sender.send(AlertBroadcastFrame(game_id=self._game_id, message=trimmed))

    def clear(self) -> None:
        for entry in self._entries:
            self._timers.cancel(self._timer_key(entry.id))
        self._entries = []
        self.error = None

    def _expire(self, alert_id: str) -> None:
        remaining = [item for item in self._entries if item.id != alert_id]
        if len(remaining) != len(self._entries):
            self._entries = remaining
            self.changes.publish(self.entries)

    @staticmethod
    def _timer_key(alert_id: str) -> tuple[str, str]:
        return ("alert", alert_id)
