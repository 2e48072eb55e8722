"""Track catalog interfaces and implementations for music validation."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Protocol

from campaignsync.realtime.models import MusicTrack


DEFAULT_TRACKS: tuple[MusicTrack, ...] = (
    MusicTrack(
        id="recovery-spring",
        title="Recovery Spring",
        info="Shin Megami Tensei III: Nocturne",
        filename="recovery-spring.mp3",
        loop=True,
        default=True,
    ),
)


class TrackCatalog(Protocol):
    def get_track(self, track_id: str) -> MusicTrack | None:
        """Return the track for an id, or None when unknown."""

    def tracks(self) -> list[MusicTrack]:
        """Return every known track in catalog order."""

    def default_track(self) -> MusicTrack | None:
        """Return the first track flagged default, else the first track."""


@dataclass
class InMemoryTrackCatalog:
    entries: Iterable[MusicTrack] = field(default_factory=lambda: DEFAULT_TRACKS)

    def __post_init__(self) -> None:
        self._tracks: dict[str, MusicTrack] = {}
        for track in self.entries:
            self._tracks.setdefault(track.id, track)

    def get_track(self, track_id: str) -> MusicTrack | None:
        if not track_id:
            return None
        return self._tracks.get(track_id)

    def tracks(self) -> list[MusicTrack]:
        return list(self._tracks.values())

    def default_track(self) -> MusicTrack | None:
        for track in self._tracks.values():
            if track.default:
                return track
        return next(iter(self._tracks.values()), None)


def _track_from_json(entry: dict[str, Any]) -> MusicTrack | None:
    track_id = entry.get("id")
    title = entry.get("title")
    filename = entry.get("filename")
    if not isinstance(track_id, str) or not track_id.strip():
        return None
    if not isinstance(title, str) or not isinstance(filename, str):
        return None
    info = entry.get("info")
    return MusicTrack(
        id=track_id.strip(),
        title=title,
        filename=filename,
        info=info if isinstance(info, str) else None,
        loop=entry.get("loop") is True,
        default=entry.get("default") is True,
    )


def load_catalog(path: str | Path) -> InMemoryTrackCatalog:
    """Load a catalog from a JSON list of track objects, skipping malformed entries."""
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, list):
        raise ValueError(f"Track catalog {path} must contain a JSON list")
    tracks = [track for track in (_track_from_json(entry) for entry in raw if isinstance(entry, dict)) if track]
    return InMemoryTrackCatalog(entries=tracks)


def create_catalog(path: str | None) -> TrackCatalog:
    if path:
        return load_catalog(path)
    return InMemoryTrackCatalog()
