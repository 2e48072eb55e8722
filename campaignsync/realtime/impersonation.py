"""Nonce-correlated impersonation requests and prompt tracking."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from campaignsync.realtime.errors import ConnectionClosedError, NotConnectedError, RealtimeError
from campaignsync.realtime.nonce import generate_nonce
from campaignsync.realtime.protocol import FrameSender, ImpersonationRequestFrame, ImpersonationRespondFrame
from campaignsync.realtime.topic import Topic


logger = logging.getLogger(__name__)


class ImpersonationEngine:
    """Pending-call table keyed by nonce plus the prompt/status views built from inbound frames.

    A request future is resolved only by the first status frame carrying its
    nonce. Closing the connection rejects every pending future with
    ``ConnectionClosedError``. Prompts are upserted by request id and dropped
    once a status other than ``pending`` arrives for them.
    """

    def __init__(self, game_id: str, sender: FrameSender) -> None:
        self._game_id = game_id
        self._sender = sender
        self._pending: dict[str, asyncio.Future[dict[str, Any]]] = {}
        self._prompts: list[dict[str, Any]] = []
        self._statuses: dict[str, dict[str, Any]] = {}
        self.changes: Topic[None] = Topic("impersonation")

    @property
    def prompts(self) -> list[dict[str, Any]]:
        return list(self._prompts)

    @property
    def statuses(self) -> dict[str, dict[str, Any]]:
        return dict(self._statuses)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def subscribe(self, handler: Callable[[None], None]) -> Callable[[], None]:
        return self.changes.subscribe(handler)

    async def request(self, target_user_id: str, content: Any) -> dict[str, Any]:
        if not target_user_id:
            raise RealtimeError("missing_target")
        if not self._sender.is_open:
            raise NotConnectedError()
        nonce = generate_nonce()
        while nonce in self._pending:
            nonce = generate_nonce()
        future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[nonce] = future
        frame = ImpersonationRequestFrame(
            game_id=self._game_id,
            target_user_id=target_user_id,
            content=content,
            nonce=nonce,
        )
        try:
            await self._sender.send(frame)
        except RealtimeError:
            self._pending.pop(nonce, None)
            raise
        try:
            return await future
        finally:
            if self._pending.get(nonce) is future:
                del self._pending[nonce]

    async def respond(self, request_id: str, approve: bool) -> None:
        try:
            await self._sender.send(ImpersonationRespondFrame(request_id=request_id, approve=approve))
        except RealtimeError as exc:
            logger.error("Failed to respond to impersonation request %s: %s", request_id, exc.reason)

    def apply_prompt(self, frame: dict[str, Any]) -> bool:
        request = frame.get("request")
        request_id = request.get("id") if isinstance(request, dict) else None
        if not isinstance(request_id, str) or not request_id:
            return False
        prompts = [entry for entry in self._prompts if entry["request"].get("id") != request_id]
        prompts.append(frame)
        self._prompts = prompts
        self.changes.publish(None)
        return True

    def apply_status(self, frame: dict[str, Any]) -> None:
        nonce = frame.get("nonce")
        if isinstance(nonce, str) and nonce in self._pending:
            future = self._pending.pop(nonce)
            if not future.done():
                future.set_result(frame)

        request_id = frame.get("requestId")
        if not isinstance(request_id, str) or not request_id:
            return
        self._statuses[request_id] = frame
        status = frame.get("status")
        if status and status != "pending":
            self._prompts = [entry for entry in self._prompts if entry["request"].get("id") != request_id]
        self.changes.publish(None)

    def reject_pending(self, reason: str = "connection_closed") -> int:
        pending = list(self._pending.values())
        self._pending.clear()
        for future in pending:
            if not future.done():
                future.set_exception(ConnectionClosedError(reason))
        return len(pending)

    def reset(self) -> None:
        self._prompts = []
        self._statuses = {}
