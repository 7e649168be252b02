"""Tests for protocol parsing and serialization."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import get_args

import pytest
from pydantic import ValidationError

from coderoom.protocol import (
    CodeChangeMessage,
    CodeUpdateMessage,
    JoinRoomMessage,
    Language,
    MemberInfo,
    ServerMessage,
    SignalForwardMessage,
    UsersUpdateMessage,
    WebRtcIceCandidateMessage,
    parse_client_message,
    to_wire,
)


def test_parse_uses_camel_case_keys():
    message = parse_client_message({"type": "join-room", "roomId": "ab12cd34", "userName": "alice"})

    assert isinstance(message, JoinRoomMessage)
    assert message.room_id == "ab12cd34"
    assert message.user_name == "alice"
    assert message.avatar is None


def test_parse_accepts_snake_case_keys():
    message = parse_client_message({"type": "code-change", "room_id": "R", "code": "x = 1"})

    assert isinstance(message, CodeChangeMessage)
    assert message.code == "x = 1"


def test_unknown_type_is_rejected():
    with pytest.raises(ValueError):
        parse_client_message({"type": "drop-tables"})


def test_missing_type_is_rejected():
    with pytest.raises(ValueError):
        parse_client_message({"roomId": "R"})


def test_missing_required_field_is_a_validation_error():
    with pytest.raises(ValidationError):
        parse_client_message({"type": "join-room", "roomId": "R"})


def test_empty_user_name_is_a_validation_error():
    with pytest.raises(ValidationError):
        parse_client_message({"type": "create-room", "roomName": "R", "userName": ""})


def test_language_outside_enum_is_rejected():
    with pytest.raises(ValidationError):
        parse_client_message({"type": "language-change", "roomId": "R", "language": "cobol"})


def test_language_change_parses_enum():
    message = parse_client_message({"type": "language-change", "roomId": "R", "language": "rust"})
    assert message.language is Language.RUST


def test_signal_payload_is_kept_verbatim():
    payload = {"candidate": "candidate:1 1 udp 2122260223 10.0.0.1 5000 typ host", "sdpMLineIndex": 0}
    message = parse_client_message(
        {"type": "webrtc-ice-candidate", "roomId": "R", "to": "peer", "payload": payload}
    )

    assert isinstance(message, WebRtcIceCandidateMessage)
    assert message.payload == payload


def test_to_wire_uses_aliases():
    joined = datetime(2024, 1, 1, tzinfo=timezone.utc)
    message = UsersUpdateMessage(
        room_id="AB12CD34",
        users=[MemberInfo(connection_id="c1", user_name="alice", joined_at=joined)],
    )

    data = to_wire(message)

    assert data["type"] == "users-update"
    assert data["roomId"] == "AB12CD34"
    assert data["users"][0]["connectionId"] == "c1"
    assert data["users"][0]["userName"] == "alice"
    assert data["users"][0]["joinedAt"].startswith("2024-01-01T00:00:00")


def test_code_update_for_joiner_has_null_user_id():
    data = to_wire(CodeUpdateMessage(room_id="R", code="", user_id=None))
    assert data == {"type": "code-update", "roomId": "R", "code": "", "userId": None}


def test_signal_forward_renders_from_field():
    data = to_wire(SignalForwardMessage(type="webrtc-offer", room_id="R", from_id="a", payload={"sdp": "v=0"}))
    assert data == {"type": "webrtc-offer", "roomId": "R", "from": "a", "payload": {"sdp": "v=0"}}


def test_server_events_have_distinct_types():
    types = [
        model.model_fields["type"].default
        for model in get_args(ServerMessage)
        if model is not SignalForwardMessage
    ]

    assert len(types) == len(set(types))
    assert {"connected", "room-created", "join-success", "join-error", "users-update", "error"} <= set(types)
