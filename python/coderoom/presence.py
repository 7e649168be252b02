"""
Presence tracking and fanout for Coderoom.

Maintains the member list of every room and delivers events either to
all members of a room or to a single connection.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from pydantic import BaseModel

from .errors import RoomNotFoundError
from .protocol import MemberInfo, ServerMessage, UsersUpdateMessage, to_wire
from .registry import ConnectionRegistry, SessionState
from .room import Member, Room, RoomStore, normalize_room_id

logger = logging.getLogger(__name__)


class PresenceManager:
    """
    Manages room membership and message fanout.

    Provides methods for:
    - Adding/removing members and broadcasting the new member list
    - Broadcasting an event to every member of a room
    - Sending an event to exactly one connection

    Delivery is fire-and-forget: messages are queued on each target
    connection and never awaited. Because every queue is FIFO and
    broadcasts for a room are issued while holding that room's lock,
    members see a room's events in the order they were issued.
    """

    def __init__(self, registry: ConnectionRegistry, rooms: RoomStore):
        """
        Initialize the presence manager.

        Args:
            registry: Registry used to reach connections.
            rooms: Store holding the live rooms.
        """
        self._registry = registry
        self._rooms = rooms

    async def join(
        self,
        room_id: str,
        connection_id: str,
        user_name: str,
        avatar: str | None = None,
    ) -> list[MemberInfo]:
        """
        Add a member to a live room and broadcast the member list.

        The room must already have been created or hydrated.

        Args:
            room_id: The room to join.
            connection_id: The joining connection.
            user_name: Display name.
            avatar: Optional avatar reference.

        Returns:
            The full member list after the join.

        Raises:
            RoomNotFoundError: If the room is not live.
        """
        async with self._rooms.mutate(room_id) as room:
            if room is None:
                raise RoomNotFoundError(room_id)

            connection = self._registry.get(connection_id)
            if connection is None or connection.state is SessionState.DISCONNECTED:
                logger.debug(f"Not adding departed connection {connection_id} to room {room.room_id}")
                return room.member_infos()

            room.add_member(Member(connection_id=connection_id, user_name=user_name, avatar=avatar))
            self._registry.add_room(connection_id, room.room_id)
            logger.info(f"Connection {connection_id} joined room {room.room_id} as {user_name!r}")

            users = room.member_infos()
            self.broadcast(room, UsersUpdateMessage(room_id=room.room_id, users=users))
            return users

    async def leave(self, room_id: str, connection_id: str) -> bool:
        """
        Remove a member and broadcast the member list to those remaining.

        Leaving a room one is not in is a no-op.

        Returns:
            True if a member was removed.
        """
        self._registry.discard_room(connection_id, normalize_room_id(room_id))

        async with self._rooms.mutate(room_id) as room:
            if room is None:
                return False

            if room.remove_member(connection_id) is None:
                return False

            logger.info(f"Connection {connection_id} left room {room.room_id} ({room.member_count} remaining)")
            self.broadcast(room, UsersUpdateMessage(room_id=room.room_id, users=room.member_infos()))
            return True

    def broadcast(
        self,
        room: Room | str,
        message: ServerMessage | dict[str, Any],
        exclude: Iterable[str] = (),
    ) -> int:
        """
        Deliver a message to every current member of a room.

        Args:
            room: The room, or its id.
            message: The message to send.
            exclude: Connection ids to skip.

        Returns:
            Number of members the message was queued for.
        """
        if isinstance(room, str):
            room = self._rooms.get(room)
            if room is None:
                return 0

        # Serialize once for the whole fanout
        data = to_wire(message) if isinstance(message, BaseModel) else message
        excluded = set(exclude)
        delivered = 0
        for connection_id in room.member_ids():
            if connection_id in excluded:
                continue
            if self._registry.send(connection_id, data):
                delivered += 1
        return delivered

    def unicast(self, connection_id: str, message: ServerMessage | dict[str, Any]) -> bool:
        """
        Deliver a message to one connection.

        A target that is no longer registered is silently dropped.

        Returns:
            True if the message was queued.
        """
        if self._registry.send(connection_id, message):
            return True
        logger.debug(f"Dropping message for stale target {connection_id}")
        return False

    def get_members(self, room_id: str) -> list[MemberInfo]:
        """Get the member list of a live room (empty if not live)."""
        room = self._rooms.get(room_id)
        return room.member_infos() if room else []

    def is_member(self, room_id: str, connection_id: str) -> bool:
        room = self._rooms.get(room_id)
        return room.has_member(connection_id) if room else False


__all__ = [
    "PresenceManager",
]
