"""Background music state for the active game."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable

from campaignsync.realtime.catalog import TrackCatalog
from campaignsync.realtime.errors import RealtimeError
from campaignsync.realtime.models import MusicSnapshot
from campaignsync.realtime.protocol import FrameSender, MusicPlayFrame, MusicStopFrame
from campaignsync.realtime.topic import Topic


logger = logging.getLogger(__name__)

DEFAULT_MUSIC_ERROR = "Music command failed"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_music_snapshot(snapshot: Any, catalog: TrackCatalog) -> MusicSnapshot | None:
    """Return a snapshot only when it references a track the catalog knows."""
    if not isinstance(snapshot, dict):
        return None
    raw_track_id = snapshot.get("trackId")
    track_id = raw_track_id.strip() if isinstance(raw_track_id, str) else ""
    if not track_id or catalog.get_track(track_id) is None:
        return None
    updated_at = snapshot.get("updatedAt")
    if not isinstance(updated_at, str):
        updated_at = _utc_now_iso()
    return MusicSnapshot(track_id=track_id, updated_at=updated_at)


class MusicChannel:
    def __init__(self, game_id: str | None, sender: FrameSender, catalog: TrackCatalog) -> None:
        self._game_id = game_id
        self._sender = sender
        self._catalog = catalog
        self.state: MusicSnapshot | None = None
        self.error: str | None = None
        self.changes: Topic[MusicSnapshot | None] = Topic("music")

    def subscribe(self, handler: Callable[[MusicSnapshot | None], None]) -> Callable[[], None]:
        return self.changes.subscribe(handler)

    def sync(self, snapshot: Any) -> MusicSnapshot | None:
        """Adopt a snapshot from any source; unknown tracks reset the state to None."""
        self.state = normalize_music_snapshot(snapshot, self._catalog)
        self.error = None
        self.changes.publish(self.state)
        return self.state

    def fail(self, error: Any) -> None:
        self.error = error if isinstance(error, str) else DEFAULT_MUSIC_ERROR
        logger.warning("Music command failed: %s", self.error)
        self.changes.publish(self.state)

    async def play(self, track_id: str) -> None:
        if not self._game_id:
            raise RealtimeError("missing_game")
        trimmed = track_id.strip() if isinstance(track_id, str) else ""
        if not trimmed:
            raise RealtimeError("missing_track")
        self.error = None
        await self._sender.send(MusicPlayFrame(game_id=self._game_id, track_id=trimmed))

    async def stop(self) -> None:
        if not self._game_id:
            return
        self.error = None
        await self._sender.send(MusicStopFrame(game_id=self._game_id))

    def reset(self) -> None:
        self.state = None
        self.error = None
