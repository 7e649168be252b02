"""
Session lifecycle for Coderoom.

SessionController is the single coordinator between the connection
registry, the room store, presence, the signaling relay and durable
storage. Transport code hands it already-validated events; it decides
what changes, what gets broadcast and what the caller is told.

Per-connection states: Unjoined -> Joining -> Joined -> (Leaving |
Disconnected). A connection that leaves its last room returns to
Unjoined and may join again; Disconnected is terminal.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from .errors import CoderoomError, RoomNotFoundError
from .presence import PresenceManager
from .protocol import (
    DEFAULT_LANGUAGE,
    CallPeersListMessage,
    CodeUpdateMessage,
    ConnectedMessage,
    CursorPosition,
    CursorUpdateMessage,
    ErrorCode,
    ErrorMessage,
    InputUpdateMessage,
    JoinErrorMessage,
    JoinSuccessMessage,
    Language,
    LanguageUpdateMessage,
    NewMessageBroadcast,
    RoomCreatedMessage,
    RunOutputBroadcast,
)
from .registry import Connection, ConnectionRegistry, SessionState
from .room import Room, RoomStore, generate_room_id, normalize_room_id
from .signaling import SignalingEnvelope, SignalingRelay, SignalKind
from .storage import RoomRecord, StorageProvider

logger = logging.getLogger(__name__)

ROOM_NOT_FOUND_MESSAGE = "Room not found!"
CREATE_FAILED_MESSAGE = "Failed to create room"
MAX_ROOM_ID_ATTEMPTS = 16


class SessionController:
    """
    Orchestrates room creation, join, leave and disconnect cleanup, and
    applies room-scoped events (buffer, language, input, output, chat,
    cursor, call membership and signaling).
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        rooms: RoomStore,
        presence: PresenceManager,
        relay: SignalingRelay,
        storage: StorageProvider | None = None,
        default_language: Language = DEFAULT_LANGUAGE,
    ):
        self._registry = registry
        self._rooms = rooms
        self._presence = presence
        self._relay = relay
        self._storage = storage
        self._default_language = default_language

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    @property
    def rooms(self) -> RoomStore:
        return self._rooms

    @property
    def presence(self) -> PresenceManager:
        return self._presence

    @property
    def relay(self) -> SignalingRelay:
        return self._relay

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    def connect(self, websocket: Any) -> Connection:
        """Register a new transport connection and tell it its id."""
        connection = self._registry.register(uuid.uuid4().hex, websocket)
        connection.send(ConnectedMessage(connection_id=connection.id))
        return connection

    async def disconnect(self, connection_id: str) -> None:
        """
        Clean up after a lost transport.

        Runs the same steps as an explicit leave for every room, then drops
        call membership, then unregisters the connection. Each step runs
        even if an earlier one failed. Calling this twice is harmless.
        """
        connection = self._registry.get(connection_id)
        if connection is None or connection.state is SessionState.DISCONNECTED:
            return

        connection.state = SessionState.DISCONNECTED
        logger.info(f"Connection {connection_id} disconnected")

        for room_id in self._registry.rooms_of(connection_id):
            try:
                await self._presence.leave(room_id, connection_id)
            except Exception:
                logger.exception(f"Failed to remove {connection_id} from room {room_id}")

        try:
            self._relay.drop_connection(connection_id)
        except Exception:
            logger.exception(f"Failed to remove {connection_id} from calls")

        try:
            self._registry.unregister(connection_id)
        except Exception:
            logger.exception(f"Failed to unregister {connection_id}")

    def _settle(self, connection: Connection) -> None:
        """Move a connection out of a transitional state."""
        if connection.state is SessionState.DISCONNECTED:
            return
        connection.state = SessionState.JOINED if connection.rooms else SessionState.UNJOINED

    def _begin_join(self, connection_id: str) -> Connection | None:
        connection = self._registry.get(connection_id)
        if connection is None or connection.state is SessionState.DISCONNECTED:
            return None
        if connection.state is SessionState.JOINING:
            connection.send(JoinErrorMessage(message="A join is already in progress"))
            return None
        connection.state = SessionState.JOINING
        return connection

    async def create_room(
        self,
        connection_id: str,
        room_name: str,
        user_name: str,
        avatar: str | None = None,
    ) -> str | None:
        """
        Mint a room, persist it, and join the creator to it.

        Replies ``room-created`` on success and ``join-error`` on failure.

        Returns:
            The new room id, or None on failure.
        """
        connection = self._begin_join(connection_id)
        if connection is None:
            return None

        room_id = None
        try:
            room_id = await self._mint_room_id()
            if self._storage is not None:
                await self._storage.save_room(
                    RoomRecord(
                        room_id=room_id,
                        name=room_name,
                        created_by=user_name,
                        language=self._default_language,
                    )
                )
            self._rooms.create_room(room_id, language=self._default_language, name=room_name)
            logger.info(f"Room {room_id} created by {user_name!r}")

            if await self._enter(connection, room_id, user_name, avatar, created=True):
                return room_id
            return None
        except Exception:
            logger.exception(f"Failed to create room for connection {connection_id}")
            await self._abort_join(connection, room_id, CREATE_FAILED_MESSAGE, was_member=False)
            return None
        finally:
            self._settle(connection)

    async def join_room(
        self,
        connection_id: str,
        room_id: str,
        user_name: str,
        avatar: str | None = None,
    ) -> bool:
        """
        Join an existing room, hydrating it from storage if needed.

        On success the joiner receives the current buffer, language, last
        output and pending input, followed by ``join-success``. An unknown
        room, or any failure on the way in, produces ``join-error`` and
        leaves the connection free to try again.
        """
        connection = self._begin_join(connection_id)
        if connection is None:
            return False

        room_id = normalize_room_id(room_id)
        was_member = room_id in connection.rooms
        logger.info(f"{user_name!r} is trying to join room {room_id}")

        try:
            room = await self._rooms.get_or_hydrate(room_id)
            if connection.state is SessionState.DISCONNECTED:
                return False
            if room is None:
                logger.info(f"Join failed, room not found: {room_id}")
                connection.send(JoinErrorMessage(message=ROOM_NOT_FOUND_MESSAGE))
                return False

            return await self._enter(connection, room.room_id, user_name, avatar, created=False)
        except Exception:
            logger.exception(f"Failed to join {connection_id} to room {room_id}")
            await self._abort_join(connection, room_id, ROOM_NOT_FOUND_MESSAGE, was_member=was_member)
            return False
        finally:
            self._settle(connection)

    async def _enter(
        self,
        connection: Connection,
        room_id: str,
        user_name: str,
        avatar: str | None,
        created: bool,
    ) -> bool:
        """Add a member and greet it. Callers settle the session state."""
        try:
            await self._presence.join(room_id, connection.id, user_name, avatar)
        except RoomNotFoundError:
            connection.send(JoinErrorMessage(message=ROOM_NOT_FOUND_MESSAGE))
            return False

        async with self._rooms.mutate(room_id) as room:
            if room is None or not room.has_member(connection.id):
                # Deleted, left or disconnected while joining
                if room is None:
                    connection.send(JoinErrorMessage(message=ROOM_NOT_FOUND_MESSAGE))
                return False

            if created:
                connection.send(RoomCreatedMessage(room_id=room.room_id, users=room.member_infos()))
            else:
                self._send_room_state(connection, room)
                connection.send(JoinSuccessMessage(room_id=room.room_id, users=room.member_infos()))

        logger.info(f"{user_name!r} joined room {room_id}")
        return True

    async def _abort_join(
        self,
        connection: Connection,
        room_id: str | None,
        message: str,
        was_member: bool,
    ) -> None:
        """Undo a half-finished join and tell the client it failed."""
        if room_id is not None and not was_member and room_id in connection.rooms:
            try:
                await self._presence.leave(room_id, connection.id)
            except Exception:
                logger.exception(f"Failed to roll back membership of {connection.id} in {room_id}")
        if connection.state is not SessionState.DISCONNECTED:
            connection.send(JoinErrorMessage(message=message))

    def _send_room_state(self, connection: Connection, room: Room) -> None:
        """Resynchronize a late joiner. Caller holds the room lock."""
        connection.send(CodeUpdateMessage(room_id=room.room_id, code=room.code, user_id=None))
        connection.send(LanguageUpdateMessage(room_id=room.room_id, language=room.language))
        if room.last_output:
            connection.send(
                RunOutputBroadcast(
                    room_id=room.room_id,
                    output=room.last_output,
                    language=room.last_output_language or room.language,
                )
            )
        if room.pending_input:
            connection.send(InputUpdateMessage(room_id=room.room_id, value=room.pending_input))

    async def _mint_room_id(self) -> str:
        for _ in range(MAX_ROOM_ID_ATTEMPTS):
            room_id = generate_room_id()
            if self._rooms.has_room(room_id):
                continue
            if self._storage is not None and await self._storage.room_exists(room_id):
                continue
            return room_id
        raise CoderoomError("Unable to mint a unique room id")

    async def leave_room(self, connection_id: str, room_id: str) -> bool:
        """
        Leave a room (and its call) without disconnecting.

        Returns:
            True if the connection was a member.
        """
        connection = self._registry.get(connection_id)
        if connection is None or connection.state is SessionState.DISCONNECTED:
            return False

        connection.state = SessionState.LEAVING
        try:
            async with self._rooms.mutate(room_id):
                self._relay.leave_call(room_id, connection_id)
            return await self._presence.leave(room_id, connection_id)
        finally:
            self._settle(connection)

    async def create_room_record(self, name: str, created_by: str) -> RoomRecord:
        """
        Persist a new room without joining anyone to it.

        The first socket join hydrates it like any other stored room.

        Raises:
            CoderoomError: If no storage is configured or no id could be minted.
        """
        if self._storage is None:
            raise CoderoomError("Room records require a storage backend")

        record = RoomRecord(
            room_id=await self._mint_room_id(),
            name=name,
            created_by=created_by,
            language=self._default_language,
        )
        await self._storage.save_room(record)
        logger.info(f"Room record {record.room_id} created by {created_by!r}")
        return record

    async def delete_room(self, room_id: str) -> bool:
        """
        Delete a room from storage and memory.

        Members still connected are told the room is gone and lose their
        membership and call participation.

        Returns:
            True if the room existed anywhere.
        """
        room_id = normalize_room_id(room_id)
        deleted = False
        if self._storage is not None:
            deleted = await self._storage.delete_room(room_id)

        async with self._rooms.mutate(room_id) as room:
            if room is not None:
                self._presence.broadcast(
                    room, ErrorMessage(code=ErrorCode.ROOM_NOT_FOUND.value, message="Room was deleted")
                )
                for connection_id in room.member_ids():
                    self._relay.leave_call(room_id, connection_id)
                    self._registry.discard_room(connection_id, room_id)
                    connection = self._registry.get(connection_id)
                    if connection is not None:
                        self._settle(connection)
                self._rooms.delete_room(room_id)
                deleted = True

        return deleted

    async def save_room(
        self,
        room_id: str,
        code: str | None = None,
        language: Language | None = None,
    ) -> RoomRecord | None:
        """
        Persist a room's buffer and language.

        Missing values are taken from the live room, then from storage.

        Returns:
            The saved record, or None if the room has no durable record.
        """
        if self._storage is None:
            return None

        room_id = normalize_room_id(room_id)
        live = self._rooms.get(room_id)
        if live is not None:
            code = code if code is not None else live.code
            language = language if language is not None else live.language

        if code is None or language is None:
            stored = await self._storage.get_room(room_id)
            if stored is None:
                return None
            code = code if code is not None else stored.code
            language = language if language is not None else stored.language

        return await self._storage.update_room(room_id, code, language)

    # =========================================================================
    # Room-scoped events
    # =========================================================================

    def _require_member(self, connection_id: str, room: Room | None, room_id: str) -> bool:
        if room is None:
            self._error(connection_id, ErrorCode.ROOM_NOT_FOUND, f"Room '{room_id}' not found.")
            return False
        if not room.has_member(connection_id):
            self._error(connection_id, ErrorCode.NOT_IN_ROOM, "Must join room first.")
            return False
        return True

    def _error(self, connection_id: str, code: ErrorCode, message: str) -> None:
        self._presence.unicast(connection_id, ErrorMessage(code=code.value, message=message))

    async def change_code(self, connection_id: str, room_id: str, code: str) -> bool:
        """Overwrite the buffer and echo it to every member, sender included."""
        async with self._rooms.mutate(room_id) as room:
            if not self._require_member(connection_id, room, room_id):
                return False
            room.apply_buffer_change(connection_id, code)
            self._presence.broadcast(
                room, CodeUpdateMessage(room_id=room.room_id, code=code, user_id=connection_id)
            )
            return True

    async def change_language(self, connection_id: str, room_id: str, language: Language) -> bool:
        async with self._rooms.mutate(room_id) as room:
            if not self._require_member(connection_id, room, room_id):
                return False
            room.apply_language_change(connection_id, language)
            self._presence.broadcast(
                room, LanguageUpdateMessage(room_id=room.room_id, language=language, user_id=connection_id)
            )
            return True

    async def change_input(self, connection_id: str, room_id: str, value: str) -> bool:
        async with self._rooms.mutate(room_id) as room:
            if not self._require_member(connection_id, room, room_id):
                return False
            room.apply_input_change(connection_id, value)
            self._presence.broadcast(
                room, InputUpdateMessage(room_id=room.room_id, value=value, user_id=connection_id)
            )
            return True

    async def publish_output(
        self,
        connection_id: str,
        room_id: str,
        output: str,
        language: Language,
    ) -> bool:
        """Store a program's output as the room's last output and rebroadcast it."""
        async with self._rooms.mutate(room_id) as room:
            if not self._require_member(connection_id, room, room_id):
                return False
            room.record_output(output, language, connection_id)
            self._presence.broadcast(
                room,
                RunOutputBroadcast(
                    room_id=room.room_id, output=output, language=language, user_id=connection_id
                ),
            )
            return True

    async def post_chat(
        self,
        connection_id: str,
        room_id: str,
        message: str,
        user_name: str,
        avatar: str | None = None,
    ) -> NewMessageBroadcast | None:
        """Broadcast a chat message with a server-minted id and timestamp."""
        async with self._rooms.mutate(room_id) as room:
            if not self._require_member(connection_id, room, room_id):
                return None
            chat = NewMessageBroadcast(
                id=str(uuid.uuid4()),
                room_id=room.room_id,
                message=message,
                user_name=user_name,
                avatar=avatar,
                user_id=connection_id,
                timestamp=datetime.now(timezone.utc),
            )
            self._presence.broadcast(room, chat)
            return chat

    async def move_cursor(
        self,
        connection_id: str,
        room_id: str,
        position: CursorPosition,
        user_name: str | None = None,
    ) -> bool:
        async with self._rooms.mutate(room_id) as room:
            if not self._require_member(connection_id, room, room_id):
                return False
            self._presence.broadcast(
                room,
                CursorUpdateMessage(
                    room_id=room.room_id, user_id=connection_id, user_name=user_name, position=position
                ),
            )
            return True

    # =========================================================================
    # Call membership and signaling
    # =========================================================================

    async def join_call(self, connection_id: str, room_id: str) -> list[str] | None:
        """
        Enter a room's call.

        Returns:
            The participants already in the call, or None if refused.
        """
        async with self._rooms.mutate(room_id) as room:
            if not self._require_member(connection_id, room, room_id):
                return None
            return self._relay.join_call(room.room_id, connection_id)

    async def leave_call(self, connection_id: str, room_id: str) -> bool:
        async with self._rooms.mutate(room_id):
            return self._relay.leave_call(room_id, connection_id)

    async def get_call_peers(self, connection_id: str, room_id: str) -> list[str] | None:
        """Reply ``call-peers-list`` with everyone else in the room's call."""
        async with self._rooms.mutate(room_id) as room:
            if not self._require_member(connection_id, room, room_id):
                return None
            peer_ids = self._relay.list_call_peers(room.room_id, excluding=connection_id)
            self._presence.unicast(
                connection_id, CallPeersListMessage(room_id=room.room_id, peer_ids=peer_ids)
            )
            return peer_ids

    def relay_signal(
        self,
        connection_id: str,
        kind: SignalKind,
        room_id: str,
        to: str,
        payload: Any,
    ) -> bool:
        """
        Forward an offer, answer or candidate to ``to``.

        The sender must be a member of the room; the payload is passed on
        untouched. A target that is gone is dropped without telling anyone.
        """
        if not self._presence.is_member(room_id, connection_id):
            self._error(connection_id, ErrorCode.NOT_IN_ROOM, "Must join room first.")
            return False

        return self._relay.relay(
            SignalingEnvelope(
                kind=kind,
                room_id=room_id,
                from_connection_id=connection_id,
                to_connection_id=to,
                payload=payload,
            )
        )


__all__ = [
    "ROOM_NOT_FOUND_MESSAGE",
    "CREATE_FAILED_MESSAGE",
    "SessionController",
]
