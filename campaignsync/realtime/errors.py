"""Errors raised to callers of the realtime layer."""

from __future__ import annotations


class RealtimeError(RuntimeError):
    """Caller-facing failure carrying a short machine-readable reason."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class NotConnectedError(RealtimeError):
    def __init__(self, reason: str = "not_connected") -> None:
        super().__init__(reason)


class ConnectionClosedError(RealtimeError):
    def __init__(self, reason: str = "connection_closed") -> None:
        super().__init__(reason)
