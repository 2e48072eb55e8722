"""Wire frames exchanged over the realtime websocket."""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Mapping, Protocol, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


CHANNELS: tuple[str, ...] = ("story", "trade", "game")

TRADE_LIFECYCLE_TYPES = frozenset(
    {"trade:invite", "trade:active", "trade:update", "trade:cancelled", "trade:completed"}
)


class ClientFrame(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SubscribeFrame(ClientFrame):
    type: Literal["subscribe"] = "subscribe"
    channel: Literal["story", "trade", "game"]
    game_id: str = Field(alias="gameId", min_length=1)


class ImpersonationRequestFrame(ClientFrame):
    type: Literal["story.impersonation.request"] = "story.impersonation.request"
    game_id: str = Field(alias="gameId", min_length=1)
    target_user_id: str = Field(alias="targetUserId", min_length=1)
    content: Any = None
    nonce: str = Field(min_length=1)


class ImpersonationRespondFrame(ClientFrame):
    type: Literal["story.impersonation.respond"] = "story.impersonation.respond"
    request_id: str = Field(alias="requestId", min_length=1)
    approve: bool


class TradeStartFrame(ClientFrame):
    type: Literal["trade.start"] = "trade.start"
    game_id: str = Field(alias="gameId", min_length=1)
    partner_id: str = Field(alias="partnerId", min_length=1)
    note: str | None = None


class TradeRespondFrame(ClientFrame):
    type: Literal["trade.respond"] = "trade.respond"
    trade_id: str = Field(alias="tradeId", min_length=1)
    accept: bool


class TradeUpdateFrame(ClientFrame):
    type: Literal["trade.update"] = "trade.update"
    trade_id: str = Field(alias="tradeId", min_length=1)
    items: list[Any] = Field(default_factory=list)


class TradeCommandFrame(ClientFrame):
    type: Literal["trade.confirm", "trade.unconfirm", "trade.cancel"]
    trade_id: str = Field(alias="tradeId", min_length=1)


class MusicPlayFrame(ClientFrame):
    type: Literal["music.play"] = "music.play"
    game_id: str = Field(alias="gameId", min_length=1)
    track_id: str = Field(alias="trackId", min_length=1)


class MusicStopFrame(ClientFrame):
    type: Literal["music.stop"] = "music.stop"
    game_id: str = Field(alias="gameId", min_length=1)


class AlertBroadcastFrame(ClientFrame):
    type: Literal["alert.broadcast"] = "alert.broadcast"
    game_id: str = Field(alias="gameId", min_length=1)
    message: str = Field(min_length=1)


AnyClientFrame = Annotated[
    Union[
        SubscribeFrame,
        ImpersonationRequestFrame,
        ImpersonationRespondFrame,
        TradeStartFrame,
        TradeRespondFrame,
        TradeUpdateFrame,
        TradeCommandFrame,
        MusicPlayFrame,
        MusicStopFrame,
        AlertBroadcastFrame,
    ],
    Field(discriminator="type"),
]

_CLIENT_FRAME_ADAPTER: TypeAdapter[Any] = TypeAdapter(AnyClientFrame)


def subscribe_frames(game_id: str) -> list[SubscribeFrame]:
    """Frames sent on every (re)connection to declare channel interest."""
    return [SubscribeFrame(channel=channel, game_id=game_id) for channel in CHANNELS]


def encode_frame(frame: ClientFrame | Mapping[str, Any]) -> str:
    if isinstance(frame, BaseModel):
        return frame.model_dump_json(by_alias=True, exclude_none=True)
    return json.dumps(dict(frame))


def decode_frame(raw: str | bytes) -> dict[str, Any]:
    """Parse one inbound frame; raises ValueError for anything but a JSON object."""
    payload = json.loads(raw)
    if not isinstance(payload, dict):
        raise ValueError("frame is not a JSON object")
    return payload


def parse_client_frame(raw: str | bytes) -> ClientFrame:
    """Validate a client frame; raises pydantic.ValidationError on unknown or malformed input."""
    return _CLIENT_FRAME_ADAPTER.validate_json(raw)


def frame_scope(frame: Mapping[str, Any]) -> Any:
    """Return the game id a server frame is scoped to, looking inside nested payloads."""
    frame_type = frame.get("type")
    if frame_type == "story:impersonation_prompt":
        request = frame.get("request")
        return request.get("gameId") if isinstance(request, dict) else None
    if frame_type in TRADE_LIFECYCLE_TYPES:
        trade = frame.get("trade")
        return trade.get("gameId") if isinstance(trade, dict) else None
    return frame.get("gameId")


class FrameSender(Protocol):
    @property
    def is_open(self) -> bool:
        """Whether a frame written now would reach the server."""

    async def send(self, frame: ClientFrame | Mapping[str, Any]) -> None:
        """Write one frame; raises NotConnectedError when closed."""
