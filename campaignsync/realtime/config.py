"""Configuration helpers for the realtime client."""

from __future__ import annotations

import os
from dataclasses import dataclass
from urllib.parse import urlencode, urlsplit, urlunsplit


@dataclass(frozen=True)
class RealtimeSettings:
    api_base_url: str
    realtime_url: str | None
    reconnect_delay: float
    alert_ttl: float
    alert_limit: int
    track_catalog_path: str | None
    host: str
    port: int


def load_settings() -> RealtimeSettings:
    return RealtimeSettings(
        api_base_url=os.getenv("CAMPAIGNSYNC_API_URL", "http://127.0.0.1:8000"),
        realtime_url=os.getenv("CAMPAIGNSYNC_REALTIME_URL") or None,
        reconnect_delay=float(os.getenv("CAMPAIGNSYNC_RECONNECT_DELAY", "2.0")),
        alert_ttl=float(os.getenv("CAMPAIGNSYNC_ALERT_TTL", "20")),
        alert_limit=int(os.getenv("CAMPAIGNSYNC_ALERT_LIMIT", "5")),
        track_catalog_path=os.getenv("CAMPAIGNSYNC_TRACK_CATALOG") or None,
        host=os.getenv("CAMPAIGNSYNC_HOST", "127.0.0.1"),
        port=int(os.getenv("CAMPAIGNSYNC_PORT", "8000")),
    )


def resolve_realtime_url(settings: RealtimeSettings, path: str = "/ws", user_id: str | None = None) -> str:
    """Return the websocket URL, preferring an explicit realtime base over the API base."""
    normalized_path = path if path.startswith("/") else f"/{path}"
    base = settings.realtime_url or settings.api_base_url
    parts = urlsplit(base)
    scheme = {"http": "ws", "https": "wss"}.get(parts.scheme, parts.scheme or "ws")
    base_path = parts.path.rstrip("/")
    query = urlencode({"userId": user_id}) if user_id else ""
    return urlunsplit((scheme, parts.netloc, f"{base_path}{normalized_path}", query, ""))
