"""Tests for the signaling relay and call membership."""

from __future__ import annotations

from coderoom.signaling import CallRegistry, SignalingEnvelope, SignalKind

from conftest import FakeWebSocket, flush


def test_call_registry_keeps_join_order():
    calls = CallRegistry()
    calls.join("r", "b")
    calls.join("R", "a")

    assert calls.participants("R") == ["b", "a"]
    assert calls.participants("R", excluding="b") == ["a"]
    assert calls.join("R", "a") is False


def test_call_registry_leave():
    calls = CallRegistry()
    calls.join("R", "a")

    assert calls.leave("R", "a") is True
    assert calls.leave("R", "a") is False
    assert calls.participants("R") == []
    assert calls.rooms_of("a") == []


async def test_relay_forwards_payload_verbatim(registry, relay):
    ws_b = FakeWebSocket()
    registry.register("a", FakeWebSocket())
    registry.register("b", ws_b)
    payload = {"type": "offer", "sdp": "v=0\r\no=- 1 2 IN IP4 127.0.0.1\r\n", "extra": [1, None]}

    delivered = relay.relay(
        SignalingEnvelope(
            kind=SignalKind.OFFER,
            room_id="r",
            from_connection_id="a",
            to_connection_id="b",
            payload=payload,
        )
    )
    await flush(registry)

    assert delivered is True
    assert ws_b.sent == [{"type": "webrtc-offer", "roomId": "R", "from": "a", "payload": payload}]


async def test_relay_to_missing_target_is_dropped(registry, relay):
    registry.register("a", FakeWebSocket())

    delivered = relay.relay(SignalingEnvelope(SignalKind.CANDIDATE, "R", "a", "gone", {"candidate": "x"}))

    assert delivered is False


async def test_join_call_notifies_existing_participants(registry, relay):
    ws_a, ws_b = FakeWebSocket(), FakeWebSocket()
    registry.register("a", ws_a)
    registry.register("b", ws_b)

    assert relay.join_call("R", "a") == []
    assert relay.join_call("R", "b") == ["a"]
    await flush(registry)

    assert ws_a.of_type("user-joined-call") == [{"type": "user-joined-call", "roomId": "R", "userId": "b"}]
    assert ws_b.of_type("user-joined-call") == []
    assert relay.list_call_peers("R", excluding="b") == ["a"]


async def test_drop_connection_leaves_every_call(registry, relay):
    ws_a = FakeWebSocket()
    registry.register("a", ws_a)
    registry.register("b", FakeWebSocket())
    relay.join_call("R1", "a")
    relay.join_call("R1", "b")
    relay.join_call("R2", "b")

    assert sorted(relay.drop_connection("b")) == ["R1", "R2"]
    await flush(registry)

    assert ws_a.last("user-left-call") == {"type": "user-left-call", "roomId": "R1", "userId": "b"}
    assert relay.list_call_peers("R1") == ["a"]
    assert relay.list_call_peers("R2") == []
    assert relay.drop_connection("b") == []
