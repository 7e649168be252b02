"""Shared fixtures for Coderoom tests."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from coderoom.errors import StorageUnavailableError
from coderoom.presence import PresenceManager
from coderoom.registry import ConnectionRegistry
from coderoom.room import RoomStore
from coderoom.session import SessionController
from coderoom.signaling import SignalingRelay
from coderoom.storage import MemoryStorage, RoomRecord


class FakeWebSocket:
    """Records every frame the writer task hands to the transport."""

    def __init__(self, fail: bool = False):
        self.sent: list[dict[str, Any]] = []
        self.fail = fail

    async def send_json(self, data: dict[str, Any]) -> None:
        if self.fail:
            raise RuntimeError("transport closed")
        self.sent.append(data)

    def types(self) -> list[str]:
        return [frame["type"] for frame in self.sent]

    def of_type(self, frame_type: str) -> list[dict[str, Any]]:
        return [frame for frame in self.sent if frame["type"] == frame_type]

    def last(self, frame_type: str) -> dict[str, Any]:
        frames = self.of_type(frame_type)
        assert frames, f"no {frame_type!r} frame in {self.types()}"
        return frames[-1]


class CountingStorage(MemoryStorage):
    """Memory storage whose room reads are counted and can be held open."""

    def __init__(self):
        super().__init__()
        self.get_room_calls = 0
        self.release = asyncio.Event()
        self.release.set()
        self.entered = asyncio.Event()

    async def get_room(self, room_id: str) -> RoomRecord | None:
        self.get_room_calls += 1
        self.entered.set()
        await self.release.wait()
        return await super().get_room(room_id)


class FailingStorage(MemoryStorage):
    """Memory storage whose reads always fail as if the database were down."""

    async def get_room(self, room_id: str) -> RoomRecord | None:
        raise StorageUnavailableError("database is down")

    async def update_room(self, room_id, code, language):
        raise StorageUnavailableError("database is down")


class FlakyStorage(MemoryStorage):
    """Memory storage whose first room reads time out, like a starved pool."""

    def __init__(self, failures: int = 1):
        super().__init__()
        self.failures = failures

    async def get_room(self, room_id: str) -> RoomRecord | None:
        if self.failures:
            self.failures -= 1
            raise asyncio.TimeoutError()
        return await super().get_room(room_id)


class SlowWriteStorage(MemoryStorage):
    """Memory storage whose room updates block until released."""

    def __init__(self):
        super().__init__()
        self.writing = asyncio.Event()
        self.release = asyncio.Event()

    async def update_room(self, room_id, code, language):
        self.writing.set()
        await self.release.wait()
        return await super().update_room(room_id, code, language)


async def flush(registry: ConnectionRegistry) -> None:
    """Wait until every live connection has written its queued frames."""
    for connection_id in registry.connection_ids:
        connection = registry.get(connection_id)
        if connection is not None:
            await connection.flush()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def registry() -> ConnectionRegistry:
    return ConnectionRegistry()


@pytest.fixture
def rooms(storage) -> RoomStore:
    return RoomStore(storage=storage)


@pytest.fixture
def presence(registry, rooms) -> PresenceManager:
    return PresenceManager(registry, rooms)


@pytest.fixture
def relay(presence) -> SignalingRelay:
    return SignalingRelay(presence)


@pytest.fixture
def session(registry, rooms, presence, relay, storage) -> SessionController:
    return SessionController(registry, rooms, presence, relay, storage=storage)
