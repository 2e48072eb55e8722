"""Publish/subscribe topic with optional last-value replay."""

from __future__ import annotations

import logging
from typing import Callable, Generic, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[T], None]


class _Subscription(Generic[T]):
    __slots__ = ("handler",)

    def __init__(self, handler: Listener[T]) -> None:
        self.handler = handler


class Topic(Generic[T]):
    def __init__(self, name: str, *, replay_latest: bool = False) -> None:
        self.name = name
        self._replay_latest = replay_latest
        self._subscriptions: dict[_Subscription[T], None] = {}
        self._latest: T | None = None

    @property
    def latest(self) -> T | None:
        return self._latest

    def __len__(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, handler: Listener[T]) -> Callable[[], None]:
        """Register handler and return a disposer; replays the latest value when enabled."""
        if not callable(handler):
            raise TypeError("Topic handler must be callable")
        subscription = _Subscription(handler)
        self._subscriptions[subscription] = None
        if self._replay_latest and self._latest is not None:
            self._deliver(subscription, self._latest)

        def dispose() -> None:
            self._subscriptions.pop(subscription, None)

        return dispose

    def publish(self, value: T) -> None:
        if self._replay_latest:
            self._latest = value
        for subscription in list(self._subscriptions):
            self._deliver(subscription, value)

    def reset(self) -> None:
        self._latest = None

    def clear(self) -> None:
        self._subscriptions.clear()
        self._latest = None

    def _deliver(self, subscription: _Subscription[T], value: T) -> None:
        try:
            subscription.handler(value)
        except Exception:
            logger.exception("%s listener failed", self.name)
