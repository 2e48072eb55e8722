import json

import pytest
from pydantic import ValidationError

from campaignsync.realtime.protocol import (
    TradeCommandFrame,
    TradeStartFrame,
    decode_frame,
    encode_frame,
    frame_scope,
    parse_client_frame,
    subscribe_frames,
)


def test_subscribe_frames_cover_every_channel_in_order() -> None:
    frames = [json.loads(encode_frame(frame)) for frame in subscribe_frames("g1")]

    assert frames == [
        {"type": "subscribe", "channel": "story", "gameId": "g1"},
        {"type": "subscribe", "channel": "trade", "gameId": "g1"},
        {"type": "subscribe", "channel": "game", "gameId": "g1"},
    ]


def test_encode_frame_uses_wire_names_and_omits_missing_note() -> None:
    frame = json.loads(encode_frame(TradeStartFrame(game_id="g1", partner_id="bob")))

    assert frame == {"type": "trade.start", "gameId": "g1", "partnerId": "bob"}


def test_encode_frame_accepts_plain_mappings() -> None:
    assert json.loads(encode_frame({"type": "music.stop", "gameId": "g1"})) == {"type": "music.stop", "gameId": "g1"}


def test_parse_client_frame_discriminates_on_type() -> None:
    frame = parse_client_frame(json.dumps({"type": "trade.unconfirm", "tradeId": "t1"}))

    assert isinstance(frame, TradeCommandFrame)
    assert frame.type == "trade.unconfirm"
    assert frame.trade_id == "t1"


def test_parse_client_frame_rejects_unknown_or_incomplete_frames() -> None:
    with pytest.raises(ValidationError):
        parse_client_frame(json.dumps({"type": "trade.explode", "tradeId": "t1"}))
    with pytest.raises(ValidationError):
        parse_client_frame(json.dumps({"type": "music.play", "gameId": "g1", "trackId": ""}))


def test_decode_frame_requires_json_object() -> None:
    assert decode_frame('{"type": "welcome"}') == {"type": "welcome"}
    with pytest.raises(ValueError):
        decode_frame("[1, 2]")
    with pytest.raises(ValueError):
        decode_frame("{not json")


def test_frame_scope_reads_nested_identifiers() -> None:
    assert frame_scope({"type": "story:update", "gameId": "g1"}) == "g1"
    assert frame_scope({"type": "story:impersonation_prompt", "request": {"id": "r1", "gameId": "g2"}}) == "g2"
    assert frame_scope({"type": "trade:update", "trade": {"id": "t1", "gameId": "g3"}}) == "g3"
    assert frame_scope({"type": "trade:update", "trade": None}) is None
