"""Tests for rooms and the room store."""

from __future__ import annotations

import asyncio

import pytest

from coderoom.errors import RoomExistsError
from coderoom.protocol import Language
from coderoom.room import ROOM_ID_ALPHABET, ROOM_ID_LENGTH, Member, Room, RoomStore, generate_room_id, normalize_room_id
from coderoom.storage import MemoryStorage, RoomRecord

from conftest import CountingStorage, FailingStorage, FlakyStorage, SlowWriteStorage


def test_generated_ids_are_eight_uppercase_alphanumerics():
    for _ in range(100):
        room_id = generate_room_id()
        assert len(room_id) == ROOM_ID_LENGTH
        assert set(room_id) <= set(ROOM_ID_ALPHABET)


def test_normalize_room_id():
    assert normalize_room_id("  ab12cd34 ") == "AB12CD34"


def test_last_write_wins_and_versions():
    room = Room("R")

    first = room.apply_buffer_change("a", "print(1)")
    second = room.apply_buffer_change("b", "print(2)")

    assert room.code == "print(2)"
    assert (first.version, second.version) == (1, 2)
    assert second.connection_id == "b"


def test_record_output_keeps_editing_language():
    room = Room("R", language=Language.PYTHON)

    room.record_output("42\n", Language.JAVASCRIPT, "a")

    assert room.last_output == "42\n"
    assert room.last_output_language is Language.JAVASCRIPT
    assert room.language is Language.PYTHON


def test_empty_since_tracks_membership():
    room = Room("R")
    assert room.empty_since is not None

    room.add_member(Member(connection_id="a", user_name="alice"))
    assert room.empty_since is None

    room.remove_member("a")
    assert room.is_empty
    assert room.empty_since is not None


def test_create_room_rejects_duplicates():
    store = RoomStore()
    store.create_room("ab12cd34")

    with pytest.raises(RoomExistsError):
        store.create_room("AB12CD34")


async def test_get_or_hydrate_without_storage_is_a_miss():
    store = RoomStore()
    assert await store.get_or_hydrate("AB12CD34") is None


async def test_hydrates_from_storage():
    storage = MemoryStorage()
    await storage.save_room(RoomRecord(room_id="AB12CD34", name="R", created_by="alice", code="x", language=Language.GO))
    store = RoomStore(storage=storage)

    room = await store.get_or_hydrate("ab12cd34")

    assert room is not None
    assert room.code == "x"
    assert room.language is Language.GO
    assert store.has_room("AB12CD34")


async def test_concurrent_hydration_fetches_once():
    storage = CountingStorage()
    await storage.save_room(RoomRecord(room_id="AB12CD34", name="R", created_by="alice", code="shared"))
    storage.release.clear()
    store = RoomStore(storage=storage)

    tasks = [asyncio.create_task(store.get_or_hydrate("AB12CD34")) for _ in range(5)]
    await storage.entered.wait()
    storage.release.set()
    results = await asyncio.gather(*tasks)

    assert storage.get_room_calls == 1
    assert all(room is results[0] for room in results)
    assert results[0].code == "shared"


async def test_storage_failure_fails_closed():
    store = RoomStore(storage=FailingStorage())

    assert await store.get_or_hydrate("AB12CD34") is None
    assert store.room_count == 0


async def test_mutate_yields_none_for_missing_room():
    store = RoomStore()
    async with store.mutate("nope") as room:
        assert room is None


async def test_mutate_yields_none_after_delete():
    store = RoomStore()
    original = store.create_room("R")

    async with original.lock:
        waiter = asyncio.create_task(_mutated(store, "R"))
        await asyncio.sleep(0)
        store.delete_room("R")
        store.create_room("R")

    assert await waiter is None


async def _mutated(store: RoomStore, room_id: str):
    async with store.mutate(room_id) as room:
        return room


async def test_mutations_are_serialized_per_room():
    store = RoomStore()
    store.create_room("R")
    order: list[str] = []

    async def writer(tag: str):
        async with store.mutate("R") as room:
            order.append(f"{tag}-start")
            await asyncio.sleep(0)
            room.apply_buffer_change(tag, tag)
            order.append(f"{tag}-end")

    await asyncio.gather(writer("a"), writer("b"))

    assert order == ["a-start", "a-end", "b-start", "b-end"]
    assert store.get("R").code == "b"


async def test_evict_idle_writes_back_then_drops():
    storage = MemoryStorage()
    await storage.save_room(RoomRecord(room_id="R", name="R", created_by="alice"))
    store = RoomStore(storage=storage, idle_timeout=10)
    room = await store.get_or_hydrate("R")
    room.apply_buffer_change("a", "saved on eviction")
    room.apply_language_change("a", Language.PYTHON)

    assert await store.evict_idle(now=room.empty_since + 5) == []
    assert await store.evict_idle(now=room.empty_since + 11) == ["R"]

    assert not store.has_room("R")
    record = await storage.get_room("R")
    assert record.code == "saved on eviction"
    assert record.language is Language.PYTHON


async def test_evict_idle_skips_occupied_rooms():
    store = RoomStore(idle_timeout=10)
    room = store.create_room("R")
    empty_since = room.empty_since
    room.add_member(Member(connection_id="a", user_name="alice"))

    assert await store.evict_idle(now=empty_since + 100) == []
    assert store.has_room("R")


async def test_evict_idle_keeps_room_when_write_back_fails():
    store = RoomStore(storage=FailingStorage(), idle_timeout=10)
    room = store.create_room("R")

    assert await store.evict_idle(now=room.empty_since + 100) == []
    assert store.has_room("R")


async def test_eviction_disabled_by_default():
    store = RoomStore()
    room = store.create_room("R")
    assert await store.evict_idle(now=room.empty_since + 10_000) == []


async def test_unexpected_storage_error_fails_closed_and_retries():
    storage = FlakyStorage()
    await storage.save_room(RoomRecord(room_id="R", name="R", created_by="alice"))
    store = RoomStore(storage=storage)

    assert await store.get_or_hydrate("R") is None
    assert not store.has_room("R")
    assert (await store.get_or_hydrate("R")).room_id == "R"


async def test_evict_idle_writes_back_without_holding_room_lock():
    storage = SlowWriteStorage()
    store = RoomStore(storage=storage, idle_timeout=10)
    room = store.create_room("R")

    sweep = asyncio.create_task(store.evict_idle(now=room.empty_since + 100))
    await storage.writing.wait()

    assert not room.lock.locked()
    async with store.mutate("R") as live:
        live.add_member(Member(connection_id="a", user_name="alice"))
    storage.release.set()

    assert await sweep == []
    assert store.get("R") is room


async def test_evict_idle_keeps_room_changed_during_write_back():
    storage = SlowWriteStorage()
    store = RoomStore(storage=storage, idle_timeout=10)
    room = store.create_room("R")

    sweep = asyncio.create_task(store.evict_idle(now=room.empty_since + 100))
    await storage.writing.wait()
    async with store.mutate("R") as live:
        live.apply_buffer_change("http", "saved meanwhile")
    storage.release.set()

    assert await sweep == []
    assert store.get("R").code == "saved meanwhile"
