"""Persistent websocket transport with fixed-delay reconnect."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Mapping, Protocol

import websockets
from websockets.exceptions import WebSocketException

from campaignsync.realtime.errors import NotConnectedError
from campaignsync.realtime.models import ConnectionStatus
from campaignsync.realtime.protocol import ClientFrame, encode_frame, subscribe_frames
from campaignsync.realtime.topic import Topic


logger = logging.getLogger(__name__)

DEFAULT_RECONNECT_DELAY = 2.0


class Connection(Protocol):
    def __aiter__(self) -> AsyncIterator[str | bytes]:
        """Yield inbound frames until the connection closes."""

    async def send(self, message: str) -> None:
        """Write one text frame."""

    async def close(self) -> None:
        """Close the connection."""


Connector = Callable[[str], Awaitable[Connection]]


async def websocket_connector(url: str) -> Connection:
    return await websockets.connect(url)


class TransportSession:
    """Own one websocket for one game and keep it open until torn down.

    Every successful open resends the channel subscriptions. Every close,
    including a failed open, moves the status to ``disconnected``, invokes
    ``on_close`` and retries after ``reconnect_delay`` seconds.
    """

    def __init__(
        self,
        url: str,
        game_id: str,
        *,
        on_frame: Callable[[str | bytes], None],
        on_close: Callable[[], None] | None = None,
        connector: Connector | None = None,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
    ) -> None:
        self.url = url
        self.game_id = game_id
        self.reconnect_delay = reconnect_delay
        self._on_frame = on_frame
        self._on_close = on_close
        self._connector = connector or websocket_connector
        self._connection: Connection | None = None
        self._task: asyncio.Task[None] | None = None
        self._torn_down = False
        self._status: ConnectionStatus = "idle"
        self.status_changes: Topic[ConnectionStatus] = Topic("connection status")
        self.connect_attempts = 0

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def is_open(self) -> bool:
        return self._connection is not None

    def connect(self) -> None:
        if self._torn_down:
            raise RuntimeError("TransportSession was torn down")
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def mark_connected(self) -> None:
        if self._connection is not None:
            self._set_status("connected")

    async def send(self, frame: ClientFrame | Mapping[str, Any]) -> None:
        connection = self._connection
        if connection is None:
            raise NotConnectedError()
        try:
            await connection.send(encode_frame(frame))
        except (OSError, WebSocketException) as exc:
            logger.warning("Realtime send failed: %s", exc)
            raise NotConnectedError() from exc

    def teardown(self) -> None:
        """Stop reconnecting and close the socket; safe to call repeatedly."""
        self._torn_down = True
        task = self._task
        if task is not None and not task.done():
            task.cancel()
        self._connection = None
        self._set_status("idle")

    async def wait_closed(self) -> None:
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def aclose(self) -> None:
        self.teardown()
        await self.wait_closed()

    async def _run(self) -> None:
        while not self._torn_down:
            self._set_status("connecting")
            self.connect_attempts += 1
            try:
                connection = await self._connector(self.url)
            except (OSError, WebSocketException) as exc:
                logger.warning("Realtime connection to %s failed: %s", self.url, exc)
            except Exception:
                logger.exception("Unexpected error connecting to %s", self.url)
            else:
                await self._serve(connection)
            if self._torn_down:
                return
            self._handle_closed()
            await asyncio.sleep(self.reconnect_delay)

    async def _serve(self, connection: Connection) -> None:
        self._connection = connection
        self._set_status("connected")
        try:
            await self._handshake(connection)
            async for raw in connection:
                if self._torn_down:
                    break
                try:
                    self._on_frame(raw)
                except Exception:
                    logger.exception("Realtime frame handler failed")
        except WebSocketException as exc:
            logger.info("Realtime connection closed: %s", exc)
        except Exception:
            logger.exception("Realtime connection to %s failed while reading", self.url)
        finally:
            if self._connection is connection:
                self._connection = None
            await self._close_quietly(connection)

    async def _handshake(self, connection: Connection) -> None:
        try:
            for frame in subscribe_frames(self.game_id):
                await connection.send(encode_frame(frame))
        except (OSError, WebSocketException) as exc:
            logger.error("Realtime subscribe failed: %s", exc)

    async def _close_quietly(self, connection: Connection) -> None:
        try:
            await connection.close()
        except (OSError, WebSocketException) as exc:
            logger.debug("Ignoring error while closing realtime connection: %s", exc)
        except Exception:
            logger.exception("Unexpected error while closing realtime connection")

    def _handle_closed(self) -> None:
        self._set_status("disconnected")
        if self._on_close is not None:
            try:
                self._on_close()
            except Exception:
                logger.exception("Realtime close handler failed")

    def _set_status(self, status: ConnectionStatus) -> None:
        if status == self._status:
            return
        self._status = status
        self.status_changes.publish(status)
