"""FastAPI reference relay speaking the server side of the realtime protocol."""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ValidationError

from campaignsync.realtime.catalog import TrackCatalog, create_catalog
from campaignsync.realtime.config import load_settings
from campaignsync.realtime.protocol import (
    AlertBroadcastFrame,
    ClientFrame,
    ImpersonationRequestFrame,
    ImpersonationRespondFrame,
    MusicPlayFrame,
    MusicStopFrame,
    SubscribeFrame,
    TradeCommandFrame,
    TradeRespondFrame,
    TradeStartFrame,
    TradeUpdateFrame,
    parse_client_frame,
)


logger = logging.getLogger(__name__)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class StoryUpdateRequest(BaseModel):
    snapshot: Any


class GameResponse(BaseModel):
    id: str
    version: int
    updatedAt: str


class RelayHub:
    """In-memory fan-out of realtime frames, grouped by game."""

    def __init__(self, catalog: TrackCatalog) -> None:
        self._catalog = catalog
        self._game_sockets: dict[str, set[WebSocket]] = defaultdict(set)
        self._socket_users: dict[WebSocket, str] = {}
        self._socket_games: dict[WebSocket, set[str]] = defaultdict(set)
        self._presence: dict[str, dict[str, int]] = defaultdict(dict)
        self._stories: dict[str, Any] = {}
        self._music: dict[str, dict[str, Any] | None] = {}
        self._requests: dict[str, dict[str, Any]] = {}
        self._trades: dict[str, dict[str, Any]] = {}
        self.games: dict[str, dict[str, Any]] = {}

    async def connect(self, websocket: WebSocket, user_id: str) -> None:
        await websocket.accept()
        self._socket_users[websocket] = user_id
        await websocket.send_json({"type": "welcome", "userId": user_id})

    async def disconnect(self, websocket: WebSocket) -> None:
        user_id = self._socket_users.pop(websocket, None)
        for game_id in self._socket_games.pop(websocket, set()):
            sockets = self._game_sockets.get(game_id)
            if sockets is not None:
                sockets.discard(websocket)
                if not sockets:
                    self._game_sockets.pop(game_id, None)
            if user_id is not None and self._leave_presence(game_id, user_id):
                await self.broadcast(game_id, {"type": "presence:update", "gameId": game_id, "userId": user_id, "online": False})

    def ensure_game(self, game_id: str) -> dict[str, Any]:
        game = self.games.get(game_id)
        if game is None:
            game = {"id": game_id, "version": 1, "updatedAt": _utc_now_iso()}
            self.games[game_id] = game
        return game

    def online_users(self, game_id: str) -> list[str]:
        return [user_id for user_id, count in self._presence.get(game_id, {}).items() if count > 0]

    async def send(self, websocket: WebSocket, payload: dict[str, Any]) -> bool:
        try:
            await websocket.send_json(payload)
        except RuntimeError:
            return False
        return True

    async def broadcast(self, game_id: str, payload: dict[str, Any], exclude: WebSocket | None = None) -> int:
        delivered = 0
        for websocket in list(self._game_sockets.get(game_id, set())):
            if websocket is exclude:
                continue
            if await self.send(websocket, payload):
                delivered += 1
        return delivered

    async def send_to_users(self, game_id: str, user_ids: set[str], payload: dict[str, Any]) -> int:
        delivered = 0
        for websocket in list(self._game_sockets.get(game_id, set())):
            if self._socket_users.get(websocket) in user_ids and await self.send(websocket, payload):
                delivered += 1
        return delivered

    async def publish_story(self, game_id: str, snapshot: Any) -> int:
        self.ensure_game(game_id)
        self._stories[game_id] = snapshot
        return await self.broadcast(game_id, {"type": "story:update", "gameId": game_id, "snapshot": snapshot})

    async def touch_game(self, game_id: str) -> dict[str, Any]:
        game = self.ensure_game(game_id)
        game["version"] = int(game["version"]) + 1
        game["updatedAt"] = _utc_now_iso()
        await self.broadcast(game_id, {"type": "game:update", "gameId": game_id})
        return game

    async def delete_game(self, game_id: str) -> bool:
        if self.games.pop(game_id, None) is None:
            return False
        self._stories.pop(game_id, None)
        self._music.pop(game_id, None)
        await self.broadcast(game_id, {"type": "game:deleted", "gameId": game_id})
        return True

    async def handle_text(self, websocket: WebSocket, text: str) -> None:
        user_id = self._socket_users[websocket]
        try:
            frame = parse_client_frame(text)
        except ValidationError as exc:
            logger.info("Rejecting invalid frame from %s: %s", user_id, exc.error_count())
            await self.send(websocket, {"type": "error", "error": "invalid_message"})
            return
        await self._dispatch(websocket, user_id, frame)

    async def _dispatch(self, websocket: WebSocket, user_id: str, frame: ClientFrame) -> None:
        if isinstance(frame, SubscribeFrame):
            await self._subscribe(websocket, user_id, frame)
        elif isinstance(frame, ImpersonationRequestFrame):
            await self._impersonation_request(websocket, user_id, frame)
        elif isinstance(frame, ImpersonationRespondFrame):
            await self._impersonation_respond(websocket, user_id, frame)
        elif isinstance(frame, TradeStartFrame):
            await self._trade_start(websocket, user_id, frame)
        elif isinstance(frame, TradeRespondFrame):
            await self._trade_respond(websocket, user_id, frame)
        elif isinstance(frame, TradeUpdateFrame):
            await self._trade_update(websocket, user_id, frame)
        elif isinstance(frame, TradeCommandFrame):
            await self._trade_command(websocket, user_id, frame)
        elif isinstance(frame, MusicPlayFrame):
            await self._music_play(websocket, frame)
        elif isinstance(frame, MusicStopFrame):
            await self._music_stop(frame)
        elif isinstance(frame, AlertBroadcastFrame):
            await self._alert_broadcast(websocket, user_id, frame)

    async def _subscribe(self, websocket: WebSocket, user_id: str, frame: SubscribeFrame) -> None:
        game_id = frame.game_id
        self.ensure_game(game_id)
        if game_id not in self._socket_games[websocket]:
            self._socket_games[websocket].add(game_id)
            self._game_sockets[game_id].add(websocket)
            came_online = self._join_presence(game_id, user_id)
            await self.send(websocket, {"type": "presence:state", "gameId": game_id, "online": self.online_users(game_id)})
            if came_online:
                await self.broadcast(
                    game_id,
                    {"type": "presence:update", "gameId": game_id, "userId": user_id, "online": True},
                    exclude=websocket,
                )
        if frame.channel == "story" and game_id in self._stories:
            await self.send(websocket, {"type": "story:update", "gameId": game_id, "snapshot": self._stories[game_id]})
        if frame.channel == "game" and self._music.get(game_id) is not None:
            await self.send(websocket, {"type": "music:state", "gameId": game_id, "music": self._music[game_id]})

    def _join_presence(self, game_id: str, user_id: str) -> bool:
        presence = self._presence[game_id]
        previous = presence.get(user_id, 0)
        presence[user_id] = previous + 1
        return previous == 0

    def _leave_presence(self, game_id: str, user_id: str) -> bool:
        presence = self._presence.get(game_id)
        if presence is None:
            return False
        remaining = presence.get(user_id, 0) - 1
        if remaining > 0:
            presence[user_id] = remaining
            return False
        presence.pop(user_id, None)
        if not presence:
            self._presence.pop(game_id, None)
        return True

    async def _impersonation_request(self, websocket: WebSocket, user_id: str, frame: ImpersonationRequestFrame) -> None:
        game_id = frame.game_id
        request = {
            "id": str(uuid.uuid4()),
            "gameId": game_id,
            "requesterId": user_id,
            "targetUserId": frame.target_user_id,
            "content": frame.content,
            "createdAt": _utc_now_iso(),
        }
        status = {
            "type": "story:impersonation_status",
            "gameId": game_id,
            "nonce": frame.nonce,
            "requestId": request["id"],
            "status": "pending",
        }
        if frame.target_user_id not in self.online_users(game_id):
            status["status"] = "unavailable"
            await self.send(websocket, status)
            return
        self._requests[request["id"]] = request
        await self.send_to_users(game_id, {frame.target_user_id}, {"type": "story:impersonation_prompt", "request": request})
        await self.send(websocket, status)

    async def _impersonation_respond(self, websocket: WebSocket, user_id: str, frame: ImpersonationRespondFrame) -> None:
        request = self._requests.get(frame.request_id)
        if request is None or request["targetUserId"] != user_id:
            await self.send(websocket, {"type": "error", "error": "unknown_request"})
            return
        del self._requests[frame.request_id]
        await self.broadcast(
            request["gameId"],
            {
                "type": "story:impersonation_status",
                "gameId": request["gameId"],
                "requestId": request["id"],
                "status": "approved" if frame.approve else "denied",
                "requesterId": request["requesterId"],
                "targetUserId": request["targetUserId"],
            },
        )

    async def _trade_start(self, websocket: WebSocket, user_id: str, frame: TradeStartFrame) -> None:
        if frame.partner_id == user_id:
            await self.send(websocket, {"type": "trade:error", "error": "invalid_partner"})
            return
        trade = {
            "id": str(uuid.uuid4()),
            "gameId": frame.game_id,
            "initiatorId": user_id,
            "partnerId": frame.partner_id,
            "note": frame.note,
            "status": "pending",
            "offers": {user_id: [], frame.partner_id: []},
            "confirmations": {user_id: False, frame.partner_id: False},
        }
        self._trades[trade["id"]] = trade
        await self._emit_trade("trade:invite", trade, initiated_by=user_id)

    async def _trade_respond(self, websocket: WebSocket, user_id: str, frame: TradeRespondFrame) -> None:
        trade = self._trades.get(frame.trade_id)
        if trade is None or trade["partnerId"] != user_id or trade["status"] != "pending":
            await self.send(websocket, {"type": "trade:error", "error": "trade_not_pending"})
            return
        if frame.accept:
            trade["status"] = "active"
            await self._emit_trade("trade:active", trade, initiated_by=user_id)
            return
        trade["status"] = "cancelled"
        del self._trades[trade["id"]]
        await self._emit_trade("trade:cancelled", trade, initiated_by=user_id, reason="declined")

    async def _trade_update(self, websocket: WebSocket, user_id: str, frame: TradeUpdateFrame) -> None:
        trade = self._active_trade(frame.trade_id, user_id)
        if trade is None:
            await self.send(websocket, {"type": "trade:error", "error": "trade_not_active"})
            return
        trade["offers"][user_id] = list(frame.items)
        trade["confirmations"] = {participant: False for participant in trade["confirmations"]}
        await self._emit_trade("trade:update", trade, initiated_by=user_id)

    async def _trade_command(self, websocket: WebSocket, user_id: str, frame: TradeCommandFrame) -> None:
        trade = self._trades.get(frame.trade_id)
        if trade is None or user_id not in (trade["initiatorId"], trade["partnerId"]):
            await self.send(websocket, {"type": "trade:error", "error": "unknown_trade"})
            return
        if frame.type == "trade.cancel":
            trade["status"] = "cancelled"
            del self._trades[trade["id"]]
            await self._emit_trade("trade:cancelled", trade, initiated_by=user_id, reason="cancelled")
            return
        if trade["status"] != "active":
            await self.send(websocket, {"type": "trade:error", "error": "trade_not_active"})
            return
        trade["confirmations"][user_id] = frame.type == "trade.confirm"
        if all(trade["confirmations"].values()):
            trade["status"] = "completed"
            del self._trades[trade["id"]]
            await self._emit_trade("trade:completed", trade, initiated_by=user_id)
            return
        await self._emit_trade("trade:update", trade, initiated_by=user_id)

    def _active_trade(self, trade_id: str, user_id: str) -> dict[str, Any] | None:
        trade = self._trades.get(trade_id)
        if trade is None or trade["status"] != "active":
            return None
        if user_id not in (trade["initiatorId"], trade["partnerId"]):
            return None
        return trade

    async def _emit_trade(self, event: str, trade: dict[str, Any], initiated_by: str, reason: str | None = None) -> None:
        payload: dict[str, Any] = {"type": event, "trade": trade, "initiatedBy": initiated_by}
        if reason is not None:
            payload["reason"] = reason
        await self.send_to_users(trade["gameId"], {trade["initiatorId"], trade["partnerId"]}, payload)

    async def _music_play(self, websocket: WebSocket, frame: MusicPlayFrame) -> None:
        if self._catalog.get_track(frame.track_id) is None:
            await self.send(websocket, {"type": "music:error", "gameId": frame.game_id, "error": "unknown_track"})
            return
        music = {"trackId": frame.track_id, "updatedAt": _utc_now_iso()}
        self._music[frame.game_id] = music
        await self.broadcast(frame.game_id, {"type": "music:state", "gameId": frame.game_id, "music": music})

    async def _music_stop(self, frame: MusicStopFrame) -> None:
        self._music[frame.game_id] = None
        await self.broadcast(frame.game_id, {"type": "music:state", "gameId": frame.game_id, "music": None})

    async def _alert_broadcast(self, websocket: WebSocket, user_id: str, frame: AlertBroadcastFrame) -> None:
        message = frame.message.strip()
        if not message:
            await self.send(websocket, {"type": "alert:error", "gameId": frame.game_id, "error": "missing_message"})
            return
        alert = {
            "id": str(uuid.uuid4()),
            "message": message,
            "senderName": user_id,
            "issuedAt": _utc_now_iso(),
            "senderId": user_id,
        }
        await self.broadcast(frame.game_id, {"type": "alert:show", "gameId": frame.game_id, "alert": alert})


def create_app(catalog: TrackCatalog | None = None) -> FastAPI:
    app = FastAPI(title="Campaign Sync Relay", version="0.1.0")
    track_catalog = catalog if catalog is not None else create_catalog(load_settings().track_catalog_path)
    hub = RelayHub(catalog=track_catalog)
    app.state.relay_hub = hub

    @app.get("/api/games/{game_id}", response_model=GameResponse)
    def get_game(game_id: str) -> GameResponse:
        game = hub.games.get(game_id)
        if game is None:
            raise HTTPException(status_code=404, detail="Game not found")
        return GameResponse(**game)

    @app.post("/api/games/{game_id}/story")
    async def post_story(game_id: str, payload: StoryUpdateRequest) -> dict[str, int]:
        delivered = await hub.publish_story(game_id, payload.snapshot)
        return {"delivered": delivered}

    @app.post("/api/games/{game_id}/touch", response_model=GameResponse)
    async def touch_game(game_id: str) -> GameResponse:
        return GameResponse(**await hub.touch_game(game_id))

    @app.delete("/api/games/{game_id}")
    async def delete_game(game_id: str) -> dict[str, bool]:
        if not await hub.delete_game(game_id):
            raise HTTPException(status_code=404, detail="Game not found")
        return {"deleted": True}

    @app.websocket("/ws")
    async def realtime_ws(websocket: WebSocket) -> None:
        user_id = websocket.query_params.get("userId")
        if user_id is None or user_id == "":
            await websocket.close(code=1008)
            return

        await hub.connect(websocket, user_id)
        try:
            while True:
                text = await websocket.receive_text()
                await hub.handle_text(websocket, text)
        except WebSocketDisconnect:
            logger.debug("Realtime socket for %s disconnected", user_id)
        finally:
            await hub.disconnect(websocket)

    return app


app = create_app()
