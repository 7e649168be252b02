"""
Signaling relay for Coderoom.

Forwards connection-negotiation messages between two named connections
and tracks who is in each room's call. The relay never looks inside a
payload and stores nothing but call membership; the negotiation state
machine lives on the clients (see ``coderoom.negotiation``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .presence import PresenceManager
from .protocol import SignalForwardMessage, UserJoinedCallMessage, UserLeftCallMessage
from .room import normalize_room_id

logger = logging.getLogger(__name__)


class SignalKind(str, Enum):
    """Negotiation message kinds, named by their wire event."""

    OFFER = "webrtc-offer"
    ANSWER = "webrtc-answer"
    CANDIDATE = "webrtc-ice-candidate"


@dataclass(frozen=True)
class SignalingEnvelope:
    """A negotiation message in transit from one connection to another."""

    kind: SignalKind
    room_id: str
    from_connection_id: str
    to_connection_id: str
    payload: Any = None


class CallRegistry:
    """Per-room sets of connections participating in the call."""

    def __init__(self):
        # dict keeps join order, which callers see in peer lists
        self._calls: dict[str, dict[str, None]] = {}

    def join(self, room_id: str, connection_id: str) -> bool:
        """
        Add a participant.

        Returns:
            True if the connection was not already in the call.
        """
        participants = self._calls.setdefault(normalize_room_id(room_id), {})
        if connection_id in participants:
            return False
        participants[connection_id] = None
        return True

    def leave(self, room_id: str, connection_id: str) -> bool:
        """
        Remove a participant.

        Returns:
            True if the connection was in the call.
        """
        room_id = normalize_room_id(room_id)
        participants = self._calls.get(room_id)
        if not participants or connection_id not in participants:
            return False
        del participants[connection_id]
        if not participants:
            del self._calls[room_id]
        return True

    def participants(self, room_id: str, excluding: str | None = None) -> list[str]:
        participants = self._calls.get(normalize_room_id(room_id), {})
        return [cid for cid in participants if cid != excluding]

    def is_participant(self, room_id: str, connection_id: str) -> bool:
        return connection_id in self._calls.get(normalize_room_id(room_id), {})

    def rooms_of(self, connection_id: str) -> list[str]:
        """Get the rooms whose call this connection is in."""
        return [room_id for room_id, participants in self._calls.items() if connection_id in participants]


class SignalingRelay:
    """
    Store-and-forward delivery of negotiation messages.

    Provides:
    - Verbatim relay of offers, answers and candidates to a named target
    - Call membership with join/leave notifications to the other participants
    - Peer discovery for newly joined participants
    """

    def __init__(self, presence: PresenceManager, calls: CallRegistry | None = None):
        self._presence = presence
        self._calls = calls or CallRegistry()

    @property
    def calls(self) -> CallRegistry:
        return self._calls

    def relay(self, envelope: SignalingEnvelope) -> bool:
        """
        Forward a negotiation message to its target, tagged with its sender.

        Returns:
            True if the target was registered; otherwise the message is dropped.
        """
        message = SignalForwardMessage(
            type=envelope.kind.value,
            room_id=normalize_room_id(envelope.room_id),
            from_id=envelope.from_connection_id,
            payload=envelope.payload,
        )
        delivered = self._presence.unicast(envelope.to_connection_id, message)
        if not delivered:
            logger.debug(
                f"Dropped {envelope.kind.value} from {envelope.from_connection_id} "
                f"to unknown target {envelope.to_connection_id}"
            )
        return delivered

    def join_call(self, room_id: str, connection_id: str) -> list[str]:
        """
        Add a connection to a room's call and tell the other participants.

        Returns:
            The participants that were already in the call.
        """
        room_id = normalize_room_id(room_id)
        peers = self._calls.participants(room_id, excluding=connection_id)

        if self._calls.join(room_id, connection_id):
            logger.info(f"Connection {connection_id} joined call in room {room_id}")
            notice = UserJoinedCallMessage(room_id=room_id, user_id=connection_id)
            for peer_id in peers:
                self._presence.unicast(peer_id, notice)

        return peers

    def leave_call(self, room_id: str, connection_id: str) -> bool:
        """
        Remove a connection from a room's call and tell those remaining.

        Returns:
            True if the connection was in the call.
        """
        room_id = normalize_room_id(room_id)
        if not self._calls.leave(room_id, connection_id):
            return False

        logger.info(f"Connection {connection_id} left call in room {room_id}")
        notice = UserLeftCallMessage(room_id=room_id, user_id=connection_id)
        for peer_id in self._calls.participants(room_id):
            self._presence.unicast(peer_id, notice)
        return True

    def list_call_peers(self, room_id: str, excluding: str | None = None) -> list[str]:
        """Get the call participants of a room, optionally minus one connection."""
        return self._calls.participants(room_id, excluding=excluding)

    def drop_connection(self, connection_id: str) -> list[str]:
        """
        Remove a connection from every call it is in.

        Returns:
            Ids of the rooms whose call it left.
        """
        rooms = self._calls.rooms_of(connection_id)
        for room_id in rooms:
            self.leave_call(room_id, connection_id)
        return rooms


__all__ = [
    "SignalKind",
    "SignalingEnvelope",
    "CallRegistry",
    "SignalingRelay",
]
