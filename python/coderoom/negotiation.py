"""
Peer negotiation state machine for Coderoom call participants.

The relay only forwards offers, answers and candidates; each client has
to decide who offers, when to answer and what to do with candidates that
arrive early. This module captures those rules without any media or
transport code: feed it events, execute the actions it returns.

Rules:
- Tie-break: of two participants, the one whose connection id compares
  greater sends the offer; the other waits for it.
- Candidate queueing: a candidate that arrives before the remote
  description is known is buffered per peer and replayed, in receipt
  order, as soon as the description is set.
- Leave cleanup: when a peer leaves, its negotiation state and buffered
  candidates are discarded.

Example:
    negotiator = MeshNegotiator(local_id=my_connection_id)
    for action in negotiator.on_call_peers(peer_ids):
        execute(action)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable


class NegotiationState(str, Enum):
    """Where negotiation with one remote peer stands."""

    NEW = "new"
    AWAITING_OFFER = "awaiting-offer"
    OFFER_SENT = "offer-sent"
    CONNECTED = "connected"
    CLOSED = "closed"


class ActionKind(str, Enum):
    """Things the local client must do in response to an event."""

    SEND_OFFER = "send-offer"
    SEND_ANSWER = "send-answer"
    SET_REMOTE_DESCRIPTION = "set-remote-description"
    ADD_CANDIDATE = "add-candidate"
    BUFFER_CANDIDATE = "buffer-candidate"
    FLUSH_CANDIDATES = "flush-candidates"
    CLOSE_PEER = "close-peer"


@dataclass(frozen=True)
class NegotiationAction:
    """
    One step for the client to execute.

    Attributes:
        kind: What to do.
        peer_id: Remote connection the action concerns.
        payload: Description for SET_REMOTE_DESCRIPTION, a candidate for
            ADD_CANDIDATE/BUFFER_CANDIDATE, or a tuple of candidates in
            receipt order for FLUSH_CANDIDATES.
    """

    kind: ActionKind
    peer_id: str
    payload: Any = None


def initiates(local_id: str, remote_id: str) -> bool:
    """Return True if ``local_id`` must send the offer to ``remote_id``."""
    return local_id > remote_id


@dataclass
class PeerNegotiation:
    """Negotiation state with one remote peer."""

    peer_id: str
    initiator: bool
    state: NegotiationState = NegotiationState.NEW
    pending_candidates: list[Any] = field(default_factory=list)

    @property
    def remote_description_known(self) -> bool:
        return self.state is NegotiationState.CONNECTED


class MeshNegotiator:
    """
    Negotiation state for every peer in one call, from one client's view.

    Every ``on_*`` method returns the list of actions to perform, in
    order. Methods never perform I/O.
    """

    def __init__(self, local_id: str):
        self.local_id = local_id
        self._peers: dict[str, PeerNegotiation] = {}
        # Peers that left; their trickling messages are dropped until they rejoin
        self._closed: set[str] = set()

    @property
    def peer_ids(self) -> list[str]:
        return list(self._peers.keys())

    def peer(self, peer_id: str) -> PeerNegotiation | None:
        return self._peers.get(peer_id)

    def _get_or_create(self, peer_id: str) -> PeerNegotiation:
        peer = self._peers.get(peer_id)
        if peer is None:
            peer = PeerNegotiation(peer_id=peer_id, initiator=initiates(self.local_id, peer_id))
            self._peers[peer_id] = peer
        return peer

    def _discover(self, peer_id: str) -> list[NegotiationAction]:
        if peer_id == self.local_id:
            return []
        self._closed.discard(peer_id)

        peer = self._get_or_create(peer_id)
        if peer.state is not NegotiationState.NEW:
            return []

        if peer.initiator:
            peer.state = NegotiationState.OFFER_SENT
            return [NegotiationAction(ActionKind.SEND_OFFER, peer_id)]

        peer.state = NegotiationState.AWAITING_OFFER
        return []

    def _remote_description_set(self, peer: PeerNegotiation, description: Any) -> list[NegotiationAction]:
        peer.state = NegotiationState.CONNECTED
        actions = [NegotiationAction(ActionKind.SET_REMOTE_DESCRIPTION, peer.peer_id, description)]
        if peer.pending_candidates:
            actions.append(
                NegotiationAction(ActionKind.FLUSH_CANDIDATES, peer.peer_id, tuple(peer.pending_candidates))
            )
            peer.pending_candidates.clear()
        return actions

    def on_call_peers(self, peer_ids: Iterable[str]) -> list[NegotiationAction]:
        """Handle the peer list received right after joining a call."""
        actions: list[NegotiationAction] = []
        for peer_id in peer_ids:
            actions.extend(self._discover(peer_id))
        return actions

    def on_peer_joined(self, peer_id: str) -> list[NegotiationAction]:
        """Handle a notification that a peer joined the call."""
        return self._discover(peer_id)

    def on_offer(self, peer_id: str, description: Any) -> list[NegotiationAction]:
        """
        Handle an incoming offer.

        An offer that collides with one we already sent is ignored: by the
        tie-break rule our offer is the one that stands.
        """
        if peer_id in self._closed:
            return []

        peer = self._get_or_create(peer_id)
        if peer.state is NegotiationState.OFFER_SENT:
            return []

        actions = self._remote_description_set(peer, description)
        # Answer goes out right after the description is applied, before
        # any replayed candidates are added.
        actions.insert(1, NegotiationAction(ActionKind.SEND_ANSWER, peer_id))
        return actions

    def on_answer(self, peer_id: str, description: Any) -> list[NegotiationAction]:
        """Handle an answer to our offer; stray answers are ignored."""
        peer = self._peers.get(peer_id)
        if peer is None or peer.state is not NegotiationState.OFFER_SENT:
            return []
        return self._remote_description_set(peer, description)

    def on_candidate(self, peer_id: str, candidate: Any) -> list[NegotiationAction]:
        """
        Handle a network candidate, buffering it if it arrived early.

        Candidates from a peer that already left are dropped.
        """
        if peer_id in self._closed:
            return []

        peer = self._get_or_create(peer_id)
        if peer.remote_description_known:
            return [NegotiationAction(ActionKind.ADD_CANDIDATE, peer_id, candidate)]

        peer.pending_candidates.append(candidate)
        return [NegotiationAction(ActionKind.BUFFER_CANDIDATE, peer_id, candidate)]

    def on_peer_left(self, peer_id: str) -> list[NegotiationAction]:
        """Tear down negotiation with a peer that left the call or disconnected."""
        self._closed.add(peer_id)
        peer = self._peers.pop(peer_id, None)
        if peer is None:
            return []
        peer.state = NegotiationState.CLOSED
        peer.pending_candidates.clear()
        return [NegotiationAction(ActionKind.CLOSE_PEER, peer_id)]

    def leave(self) -> list[NegotiationAction]:
        """Tear down every peer, e.g. when the local client leaves the call."""
        actions: list[NegotiationAction] = []
        for peer_id in list(self._peers):
            actions.extend(self.on_peer_left(peer_id))
        return actions


__all__ = [
    "NegotiationState",
    "ActionKind",
    "NegotiationAction",
    "PeerNegotiation",
    "MeshNegotiator",
    "initiates",
]
