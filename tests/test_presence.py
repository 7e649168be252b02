"""Tests for presence and fanout."""

from __future__ import annotations

import asyncio

import pytest

from coderoom.errors import RoomNotFoundError

from conftest import FakeWebSocket, flush


async def test_join_broadcasts_full_member_list(registry, rooms, presence):
    rooms.create_room("R")
    ws_a, ws_b = FakeWebSocket(), FakeWebSocket()
    registry.register("a", ws_a)
    registry.register("b", ws_b)

    await presence.join("R", "a", "alice")
    await presence.join("r", "b", "bob", avatar="https://example.com/b.png")
    await flush(registry)

    assert [len(frame["users"]) for frame in ws_a.of_type("users-update")] == [1, 2]
    assert len(ws_b.of_type("users-update")) == 1
    users = ws_b.last("users-update")["users"]
    assert [u["userName"] for u in users] == ["alice", "bob"]
    assert users[1]["avatar"] == "https://example.com/b.png"
    assert registry.rooms_of("b") == ["R"]


async def test_join_unknown_room_raises(registry, presence):
    registry.register("a", FakeWebSocket())

    with pytest.raises(RoomNotFoundError):
        await presence.join("NOPE", "a", "alice")


async def test_join_skips_departed_connection(registry, rooms, presence):
    rooms.create_room("R")

    users = await presence.join("R", "ghost", "casper")

    assert users == []
    assert rooms.get("R").is_empty


async def test_leave_notifies_remaining_members(registry, rooms, presence):
    rooms.create_room("R")
    ws_a = FakeWebSocket()
    registry.register("a", ws_a)
    registry.register("b", FakeWebSocket())
    await presence.join("R", "a", "alice")
    await presence.join("R", "b", "bob")

    assert await presence.leave("R", "b") is True
    await flush(registry)

    assert [u["connectionId"] for u in ws_a.last("users-update")["users"]] == ["a"]
    assert registry.rooms_of("b") == []


async def test_leave_twice_is_a_no_op(registry, rooms, presence):
    rooms.create_room("R")
    registry.register("a", FakeWebSocket())
    await presence.join("R", "a", "alice")

    assert await presence.leave("R", "a") is True
    assert await presence.leave("R", "a") is False
    assert await presence.leave("MISSING", "a") is False
    assert rooms.get("R").is_empty


async def test_broadcast_with_exclusion(registry, rooms, presence):
    room = rooms.create_room("R")
    ws_a, ws_b = FakeWebSocket(), FakeWebSocket()
    registry.register("a", ws_a)
    registry.register("b", ws_b)
    await presence.join("R", "a", "alice")
    await presence.join("R", "b", "bob")

    delivered = presence.broadcast(room, {"type": "note"}, exclude=["a"])
    await flush(registry)

    assert delivered == 1
    assert "note" not in ws_a.types()
    assert "note" in ws_b.types()


async def test_unicast_to_stale_target_is_dropped(presence):
    assert presence.unicast("ghost", {"type": "note"}) is False


async def test_concurrent_joins_produce_exact_membership(registry, rooms, presence):
    rooms.create_room("R")
    sockets = {f"c{i}": FakeWebSocket() for i in range(20)}
    for connection_id, ws in sockets.items():
        registry.register(connection_id, ws)

    await asyncio.gather(*(presence.join("R", cid, cid) for cid in sockets))
    await asyncio.gather(*(presence.leave("R", cid) for cid in list(sockets)[:5]))
    await flush(registry)

    expected = set(list(sockets)[5:])
    assert set(rooms.get("R").member_ids()) == expected
    # The final snapshot every remaining member saw matches the room
    for cid in expected:
        users = sockets[cid].last("users-update")["users"]
        ids = [u["connectionId"] for u in users]
        assert len(ids) == len(set(ids))
        assert set(ids) == expected
