"""Story snapshot and battle-log channels."""

from __future__ import annotations

from typing import Any, Callable

from campaignsync.realtime.topic import Topic


class StoryChannel:
    """Latest narrative snapshot, replayed synchronously to every new listener."""

    def __init__(self) -> None:
        self._story: Topic[Any] = Topic("story", replay_latest=True)
        self._battle_log: Topic[Any] = Topic("battle log")

    @property
    def latest(self) -> Any:
        return self._story.latest

    def subscribe(self, handler: Callable[[Any], None]) -> Callable[[], None]:
        return self._story.subscribe(handler)

    def subscribe_battle_log(self, handler: Callable[[Any], None]) -> Callable[[], None]:
        return self._battle_log.subscribe(handler)

    def apply_update(self, snapshot: Any) -> None:
        self._story.publish(snapshot)

    def apply_battle_log(self, entry: Any) -> None:
        if not entry:
            return
        self._battle_log.publish(entry)

    def reset(self) -> None:
        self._story.reset()
