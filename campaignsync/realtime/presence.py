"""Online-user tracking for the active game."""

from __future__ import annotations

from typing import Any, Callable

from campaignsync.realtime.topic import Topic


class PresenceTracker:
    def __init__(self) -> None:
        self._online: dict[str, bool] = {}
        self.changes: Topic[dict[str, bool]] = Topic("presence")

    @property
    def online_users(self) -> dict[str, bool]:
        return dict(self._online)

    def is_online(self, user_id: str) -> bool:
        return user_id in self._online

    def subscribe(self, handler: Callable[[dict[str, bool]], None]) -> Callable[[], None]:
        return self.changes.subscribe(handler)

    def replace(self, online: Any) -> None:
        """Replace the whole set from a full-state list, ignoring empty or non-string ids."""
        entries = online if isinstance(online, list) else []
        self._online = {entry: True for entry in entries if isinstance(entry, str) and entry}
        self.changes.publish(self.online_users)

    def update(self, user_id: Any, online: Any) -> bool:
        if not isinstance(user_id, str) or user_id == "":
            return False
        if online:
            self._online[user_id] = True
        else:
            self._online.pop(user_id, None)
        self.changes.publish(self.online_users)
        return True

    def clear(self) -> None:
        if not self._online:
            return
        self._online = {}
        self.changes.publish(self.online_users)
