"""Value objects shared by the realtime subsystems."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal


ConnectionStatus = Literal["idle", "connecting", "connected", "disconnected"]


@dataclass(frozen=True)
class MusicTrack:
    id: str
    title: str
    filename: str
    info: str | None = None
    loop: bool = False
    default: bool = False


@dataclass(frozen=True)
class MusicSnapshot:
    track_id: str
    updated_at: str


@dataclass(frozen=True)
class AlertEntry:
    id: str
    message: str
    sender_name: str
    issued_at: str
    sender_id: str | None = None
