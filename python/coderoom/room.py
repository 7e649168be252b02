"""
Room state for Coderoom.

Provides the Room class holding the authoritative buffer, language,
input and output of one collaborative session, and RoomStore for
creating rooms, hydrating them lazily from storage and serializing
mutations per room.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import string
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator

from .errors import RoomExistsError, StorageUnavailableError
from .protocol import DEFAULT_LANGUAGE, Language, MemberInfo
from .storage import StorageProvider

logger = logging.getLogger(__name__)

ROOM_ID_LENGTH = 8
ROOM_ID_ALPHABET = string.ascii_uppercase + string.digits
DEFAULT_SWEEP_INTERVAL = 60.0  # seconds


def normalize_room_id(room_id: str) -> str:
    """Room ids are case-insensitive; every lookup goes through this."""
    return room_id.strip().upper()


def generate_room_id() -> str:
    """Mint a fresh 8 character room id."""
    return "".join(secrets.choice(ROOM_ID_ALPHABET) for _ in range(ROOM_ID_LENGTH))


@dataclass
class Member:
    """A connection's presence record within one room."""

    connection_id: str
    user_name: str
    avatar: str | None = None
    joined_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_info(self) -> MemberInfo:
        return MemberInfo(
            connection_id=self.connection_id,
            user_name=self.user_name,
            avatar=self.avatar,
            joined_at=self.joined_at,
        )


@dataclass(frozen=True)
class AppliedChange:
    """
    Result of a last-write-wins update.

    Attributes:
        room_id: Room that was changed.
        connection_id: Connection the change came from.
        value: The accepted new value.
        version: Room version after the change.
    """

    room_id: str
    connection_id: str | None
    value: Any
    version: int


class Room:
    """
    Authoritative in-memory state of one room.

    Manages:
    - Shared buffer, language, pending input and last program output
    - Member list
    - A lock that linearizes mutations of this room

    Mutating methods do not take the lock themselves; callers go through
    ``RoomStore.mutate`` so a change and the broadcast it triggers are
    issued inside the same critical section.
    """

    def __init__(
        self,
        room_id: str,
        code: str = "",
        language: Language = DEFAULT_LANGUAGE,
        name: str | None = None,
        created_at: float | None = None,
    ):
        """
        Initialize a room.

        Args:
            room_id: Normalized room identifier.
            code: Initial buffer contents.
            language: Initial language.
            name: Optional human readable name.
            created_at: Creation timestamp (defaults to now).
        """
        self.room_id = room_id
        self.name = name
        self.code = code
        self.language = language
        self.pending_input = ""
        self.last_output = ""
        self.last_output_language: Language | None = None
        self.created_at = created_at if created_at is not None else time.time()
        self.version = 0
        self.lock = asyncio.Lock()

        self._members: dict[str, Member] = {}
        self._empty_since: float | None = time.time()

    @property
    def members(self) -> list[Member]:
        """Get list of current members."""
        return list(self._members.values())

    @property
    def member_count(self) -> int:
        return len(self._members)

    @property
    def is_empty(self) -> bool:
        """Check if room has no members."""
        return len(self._members) == 0

    @property
    def empty_since(self) -> float | None:
        """Unix timestamp at which the room last became empty, None if occupied."""
        return self._empty_since

    def member_infos(self) -> list[MemberInfo]:
        """Get the wire form of the member list."""
        return [member.to_info() for member in self._members.values()]

    def member_ids(self) -> list[str]:
        return list(self._members.keys())

    def has_member(self, connection_id: str) -> bool:
        return connection_id in self._members

    def get_member(self, connection_id: str) -> Member | None:
        return self._members.get(connection_id)

    def add_member(self, member: Member) -> None:
        """Add or replace a member keyed by connection id."""
        self._members[member.connection_id] = member
        self._empty_since = None

    def remove_member(self, connection_id: str) -> Member | None:
        """
        Remove a member.

        Returns:
            The removed member, or None if it was not present.
        """
        member = self._members.pop(connection_id, None)
        if member is not None and not self._members:
            self._empty_since = time.time()
        return member

    def _applied(self, connection_id: str | None, value: Any) -> AppliedChange:
        self.version += 1
        return AppliedChange(
            room_id=self.room_id,
            connection_id=connection_id,
            value=value,
            version=self.version,
        )

    def apply_buffer_change(self, connection_id: str, code: str) -> AppliedChange:
        """Overwrite the buffer. No merge: the last write wins."""
        self.code = code
        return self._applied(connection_id, code)

    def apply_language_change(self, connection_id: str, language: Language) -> AppliedChange:
        self.language = language
        return self._applied(connection_id, language)

    def apply_input_change(self, connection_id: str, value: str) -> AppliedChange:
        self.pending_input = value
        return self._applied(connection_id, value)

    def record_output(
        self,
        output: str,
        language: Language,
        connection_id: str | None = None,
    ) -> AppliedChange:
        """Remember the most recent program output for late joiners."""
        self.last_output = output
        self.last_output_language = language
        return self._applied(connection_id, output)

    def snapshot(self) -> dict[str, Any]:
        """Get the room state as a serializable dictionary."""
        return {
            "roomId": self.room_id,
            "name": self.name,
            "code": self.code,
            "language": self.language.value,
            "pendingInput": self.pending_input,
            "lastOutput": self.last_output,
            "users": [info.model_dump(by_alias=True, mode="json") for info in self.member_infos()],
            "createdAt": self.created_at,
            "version": self.version,
        }


class RoomStore:
    """
    Registry of live rooms.

    Provides:
    - Room creation and retrieval by normalized id
    - Lazy hydration from storage, at most one fetch in flight per room
    - Per-room serialized mutation via ``mutate``
    - Optional eviction of rooms that stayed empty too long

    Rooms are not removed when their last member leaves, so clients can
    reconnect to them; only ``delete_room`` or the idle sweep drops them.
    """

    def __init__(
        self,
        storage: StorageProvider | None = None,
        idle_timeout: float | None = None,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
    ):
        """
        Initialize the room store.

        Args:
            storage: Durable store used to hydrate unknown rooms.
            idle_timeout: Seconds a room may stay empty before eviction;
                None disables eviction.
            sweep_interval: Seconds between eviction sweeps.
        """
        self._rooms: dict[str, Room] = {}
        self._hydrating: dict[str, asyncio.Future[Room | None]] = {}
        self._storage = storage
        self._idle_timeout = idle_timeout
        self._sweep_interval = sweep_interval
        self._sweep_task: asyncio.Task | None = None

    @property
    def room_count(self) -> int:
        """Get the number of live rooms."""
        return len(self._rooms)

    @property
    def room_ids(self) -> list[str]:
        """Get list of live room IDs."""
        return list(self._rooms.keys())

    def get(self, room_id: str) -> Room | None:
        """Get a live room without touching storage."""
        return self._rooms.get(normalize_room_id(room_id))

    def has_room(self, room_id: str) -> bool:
        return normalize_room_id(room_id) in self._rooms

    def create_room(
        self,
        room_id: str,
        language: Language = DEFAULT_LANGUAGE,
        name: str | None = None,
    ) -> Room:
        """
        Create a fresh room in memory.

        Raises:
            RoomExistsError: If the id is already live.
        """
        room_id = normalize_room_id(room_id)
        if room_id in self._rooms:
            raise RoomExistsError(room_id)

        room = Room(room_id, language=language, name=name)
        self._rooms[room_id] = room
        logger.info(f"Created room {room_id}")
        return room

    async def get_or_hydrate(self, room_id: str) -> Room | None:
        """
        Get a live room, loading it from storage on first access.

        Concurrent calls for the same unhydrated room share a single
        storage fetch. A storage failure is logged and reported as a miss;
        no partial room is created.

        Returns:
            The room, or None if it exists neither in memory nor in storage.
        """
        room_id = normalize_room_id(room_id)

        room = self._rooms.get(room_id)
        if room is not None:
            return room

        pending = self._hydrating.get(room_id)
        if pending is not None:
            return await asyncio.shield(pending)

        if self._storage is None:
            return None

        future: asyncio.Future[Room | None] = asyncio.get_running_loop().create_future()
        self._hydrating[room_id] = future

        room = None
        try:
            room = await self._hydrate(room_id)
        finally:
            self._hydrating.pop(room_id, None)
            if not future.done():
                future.set_result(room)

        return room

    async def _hydrate(self, room_id: str) -> Room | None:
        try:
            record = await self._storage.get_room(room_id)
        except StorageUnavailableError:
            logger.warning(f"Storage unavailable while hydrating room {room_id}", exc_info=True)
            return None
        except Exception:
            logger.exception(f"Unexpected storage error while hydrating room {room_id}")
            return None

        if record is None:
            logger.info(f"Room {room_id} not found in storage")
            return None

        # A create may have landed while the fetch was in flight
        existing = self._rooms.get(room_id)
        if existing is not None:
            return existing

        room = Room(
            room_id,
            code=record.code,
            language=record.language,
            name=record.name,
            created_at=record.created_at,
        )
        self._rooms[room_id] = room
        logger.info(f"Hydrated room {room_id} from storage")
        return room

    @asynccontextmanager
    async def mutate(self, room_id: str) -> AsyncIterator[Room | None]:
        """
        Hold a live room's lock for the duration of the block.

        Yields None if the room is not live (or was dropped while waiting
        for the lock).
        """
        room_id = normalize_room_id(room_id)
        room = self._rooms.get(room_id)
        if room is None:
            yield None
            return

        async with room.lock:
            if self._rooms.get(room_id) is not room:
                yield None
            else:
                yield room

    def delete_room(self, room_id: str) -> Room | None:
        """
        Drop a room from memory.

        Returns:
            The dropped room, or None if it was not live.
        """
        room = self._rooms.pop(normalize_room_id(room_id), None)
        if room is not None:
            logger.info(f"Deleted room {room.room_id} from memory")
        return room

    # =========================================================================
    # Idle eviction
    # =========================================================================

    async def start(self) -> None:
        """Start the idle sweep if an idle timeout is configured."""
        if self._idle_timeout and self._sweep_task is None:
            self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        """Stop the idle sweep."""
        if self._sweep_task:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            try:
                await self.evict_idle()
            except Exception:
                logger.exception("Idle room sweep failed")

    @staticmethod
    def _is_idle(room: Room, threshold: float) -> bool:
        return room.empty_since is not None and room.empty_since <= threshold

    async def evict_idle(self, now: float | None = None) -> list[str]:
        """
        Evict rooms that have been empty for longer than the idle timeout.

        The buffer and language are written back to storage first; a room
        whose write-back fails stays live.

        Returns:
            Ids of the evicted rooms.
        """
        if not self._idle_timeout:
            return []

        now = now if now is not None else time.time()
        threshold = now - self._idle_timeout
        candidates = [
            room_id
            for room_id, room in self._rooms.items()
            if self._is_idle(room, threshold)
        ]

        evicted: list[str] = []
        for room_id in candidates:
            async with self.mutate(room_id) as room:
                if room is None or not self._is_idle(room, threshold):
                    continue
                code, language, version = room.code, room.language, room.version

            # Storage I/O happens outside the room lock
            if self._storage is not None:
                try:
                    await self._storage.update_room(room_id, code, language)
                except StorageUnavailableError:
                    logger.warning(f"Keeping idle room {room_id}: write-back failed", exc_info=True)
                    continue

            async with self.mutate(room_id) as room:
                if room is None or not self._is_idle(room, threshold):
                    continue
                if room.version != version:
                    # Changed during write-back; the next sweep saves it again
                    continue
                del self._rooms[room_id]
                evicted.append(room_id)

        if evicted:
            logger.info(f"Evicted {len(evicted)} idle room(s): {', '.join(evicted)}")
        return evicted


__all__ = [
    "ROOM_ID_LENGTH",
    "normalize_room_id",
    "generate_room_id",
    "Member",
    "AppliedChange",
    "Room",
    "RoomStore",
]
