"""Realtime synchronization layer for shared campaign sessions."""

from .catalog import InMemoryTrackCatalog, TrackCatalog, create_catalog, load_catalog
from .config import RealtimeSettings, load_settings, resolve_realtime_url
from .errors import ConnectionClosedError, NotConnectedError, RealtimeError
from .models import AlertEntry, MusicSnapshot, MusicTrack
from .refresh import HttpGameRefresher, RefreshCoalescer
from .session import GameSession, RealtimeClient
from .state import build_session_snapshot
from .transport import TransportSession

__all__ = [
    "AlertEntry",
    "build_session_snapshot",
    "ConnectionClosedError",
    "create_catalog",
    "GameSession",
    "HttpGameRefresher",
    "InMemoryTrackCatalog",
    "load_catalog",
    "load_settings",
    "MusicSnapshot",
    "MusicTrack",
    "NotConnectedError",
    "RealtimeClient",
    "RealtimeError",
    "RealtimeSettings",
    "RefreshCoalescer",
    "resolve_realtime_url",
    "TrackCatalog",
    "TransportSession",
]
