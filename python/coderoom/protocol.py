"""
WebSocket protocol message types for Coderoom.

Defines all client and server events using Pydantic models for
validation and serialization. Every frame is a JSON object whose
``type`` field names the event; payload keys are camelCase on the wire
and snake_case in Python.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

# Maximum lengths for string fields to prevent DoS
MAX_ID_LENGTH = 256
MAX_NAME_LENGTH = 512
MAX_AVATAR_LENGTH = 2048
MAX_CODE_LENGTH = 512 * 1024
MAX_OUTPUT_LENGTH = 512 * 1024
MAX_CHAT_LENGTH = 8 * 1024


class Language(str, Enum):
    """Languages a room buffer can be edited and run in."""

    JAVASCRIPT = "javascript"
    TYPESCRIPT = "typescript"
    PYTHON = "python"
    JAVA = "java"
    CPP = "cpp"
    CSHARP = "csharp"
    PHP = "php"
    RUBY = "ruby"
    GO = "go"
    RUST = "rust"
    HTML = "html"
    CSS = "css"
    SQL = "sql"


DEFAULT_LANGUAGE = Language.JAVASCRIPT


class WireModel(BaseModel):
    """Base model: camelCase aliases on the wire, either spelling accepted."""

    model_config = ConfigDict(populate_by_name=True)


def to_wire(message: BaseModel) -> Dict[str, Any]:
    """Serialize a message to the JSON-ready dict sent over the socket."""
    return message.model_dump(by_alias=True, mode="json")


# =============================================================================
# Shared Models
# =============================================================================


class MemberInfo(WireModel):
    """A room member as seen by clients."""

    connection_id: str = Field(..., alias="connectionId")
    user_name: str = Field(..., alias="userName")
    avatar: Optional[str] = None
    joined_at: datetime = Field(..., alias="joinedAt")


class CursorPosition(WireModel):
    """A cursor location inside the shared buffer."""

    line: int = Field(..., ge=0)
    column: int = Field(..., ge=0)


# =============================================================================
# Client Message Types
# =============================================================================


class CreateRoomMessage(WireModel):
    """Client asks for a fresh room and joins it."""

    type: Literal["create-room"] = "create-room"
    room_name: str = Field(..., alias="roomName", min_length=1, max_length=MAX_NAME_LENGTH)
    user_name: str = Field(..., alias="userName", min_length=1, max_length=MAX_NAME_LENGTH)
    avatar: Optional[str] = Field(None, max_length=MAX_AVATAR_LENGTH)


class JoinRoomMessage(WireModel):
    """Client asks to join an existing room."""

    type: Literal["join-room"] = "join-room"
    room_id: str = Field(..., alias="roomId", min_length=1, max_length=MAX_ID_LENGTH)
    user_name: str = Field(..., alias="userName", min_length=1, max_length=MAX_NAME_LENGTH)
    avatar: Optional[str] = Field(None, max_length=MAX_AVATAR_LENGTH)


class LeaveRoomMessage(WireModel):
    """Client leaves a room without disconnecting."""

    type: Literal["leave-room"] = "leave-room"
    room_id: str = Field(..., alias="roomId", min_length=1, max_length=MAX_ID_LENGTH)


class CodeChangeMessage(WireModel):
    """Client replaces the shared buffer."""

    type: Literal["code-change"] = "code-change"
    room_id: str = Field(..., alias="roomId", min_length=1, max_length=MAX_ID_LENGTH)
    code: str = Field(..., max_length=MAX_CODE_LENGTH)


class LanguageChangeMessage(WireModel):
    """Client switches the room language."""

    type: Literal["language-change"] = "language-change"
    room_id: str = Field(..., alias="roomId", min_length=1, max_length=MAX_ID_LENGTH)
    language: Language


class InputChangeMessage(WireModel):
    """Client replaces the pending program input (stdin)."""

    type: Literal["input-change"] = "input-change"
    room_id: str = Field(..., alias="roomId", min_length=1, max_length=MAX_ID_LENGTH)
    value: str = Field(..., max_length=MAX_CODE_LENGTH)


class ChatMessage(WireModel):
    """Client posts a chat message to the room."""

    type: Literal["chat-message"] = "chat-message"
    room_id: str = Field(..., alias="roomId", min_length=1, max_length=MAX_ID_LENGTH)
    message: str = Field(..., min_length=1, max_length=MAX_CHAT_LENGTH)
    user_name: str = Field(..., alias="userName", min_length=1, max_length=MAX_NAME_LENGTH)
    avatar: Optional[str] = Field(None, max_length=MAX_AVATAR_LENGTH)


class RunOutputMessage(WireModel):
    """Client publishes the output of a program run."""

    type: Literal["run-output"] = "run-output"
    room_id: str = Field(..., alias="roomId", min_length=1, max_length=MAX_ID_LENGTH)
    output: str = Field(..., max_length=MAX_OUTPUT_LENGTH)
    language: Language


class CursorPositionMessage(WireModel):
    """Client reports where its cursor is."""

    type: Literal["cursor-position"] = "cursor-position"
    room_id: str = Field(..., alias="roomId", min_length=1, max_length=MAX_ID_LENGTH)
    position: CursorPosition
    user_name: Optional[str] = Field(None, alias="userName", max_length=MAX_NAME_LENGTH)


class JoinCallMessage(WireModel):
    """Client enters the room's audio/video mesh."""

    type: Literal["join-call"] = "join-call"
    room_id: str = Field(..., alias="roomId", min_length=1, max_length=MAX_ID_LENGTH)


class LeaveCallMessage(WireModel):
    """Client exits the room's audio/video mesh."""

    type: Literal["leave-call"] = "leave-call"
    room_id: str = Field(..., alias="roomId", min_length=1, max_length=MAX_ID_LENGTH)


class GetCallPeersMessage(WireModel):
    """Client asks who is already in the call."""

    type: Literal["get-call-peers"] = "get-call-peers"
    room_id: str = Field(..., alias="roomId", min_length=1, max_length=MAX_ID_LENGTH)


class _SignalMessage(WireModel):
    room_id: str = Field(..., alias="roomId", min_length=1, max_length=MAX_ID_LENGTH)
    to: str = Field(..., min_length=1, max_length=MAX_ID_LENGTH)
    payload: Any = None


class WebRtcOfferMessage(_SignalMessage):
    """Client sends a connection offer to one peer."""

    type: Literal["webrtc-offer"] = "webrtc-offer"


class WebRtcAnswerMessage(_SignalMessage):
    """Client sends a connection answer to one peer."""

    type: Literal["webrtc-answer"] = "webrtc-answer"


class WebRtcIceCandidateMessage(_SignalMessage):
    """Client sends a network candidate to one peer."""

    type: Literal["webrtc-ice-candidate"] = "webrtc-ice-candidate"


class PingMessage(WireModel):
    """Client sends ping to keep connection alive."""

    type: Literal["ping"] = "ping"
    timestamp: Optional[float] = None


# Union of all client message types
ClientMessage = Union[
    CreateRoomMessage,
    JoinRoomMessage,
    LeaveRoomMessage,
    CodeChangeMessage,
    LanguageChangeMessage,
    InputChangeMessage,
    ChatMessage,
    RunOutputMessage,
    CursorPositionMessage,
    JoinCallMessage,
    LeaveCallMessage,
    GetCallPeersMessage,
    WebRtcOfferMessage,
    WebRtcAnswerMessage,
    WebRtcIceCandidateMessage,
    PingMessage,
]

SignalMessage = Union[WebRtcOfferMessage, WebRtcAnswerMessage, WebRtcIceCandidateMessage]


# =============================================================================
# Server Message Types
# =============================================================================


class ConnectedMessage(WireModel):
    """Server tells a new connection its id."""

    type: Literal["connected"] = "connected"
    connection_id: str = Field(..., alias="connectionId")


class RoomCreatedMessage(WireModel):
    """Server confirms a room was created and joined."""

    type: Literal["room-created"] = "room-created"
    room_id: str = Field(..., alias="roomId")
    users: List[MemberInfo]


class JoinSuccessMessage(WireModel):
    """Server confirms a join."""

    type: Literal["join-success"] = "join-success"
    room_id: str = Field(..., alias="roomId")
    users: List[MemberInfo]


class JoinErrorMessage(WireModel):
    """Server rejects a create or join."""

    type: Literal["join-error"] = "join-error"
    message: str


class UsersUpdateMessage(WireModel):
    """Full membership snapshot, sent after every join and leave."""

    type: Literal["users-update"] = "users-update"
    room_id: str = Field(..., alias="roomId")
    users: List[MemberInfo]


class CodeUpdateMessage(WireModel):
    """Buffer contents, tagged with the connection that wrote them."""

    type: Literal["code-update"] = "code-update"
    room_id: str = Field(..., alias="roomId")
    code: str
    user_id: Optional[str] = Field(None, alias="userId")


class LanguageUpdateMessage(WireModel):
    type: Literal["language-update"] = "language-update"
    room_id: str = Field(..., alias="roomId")
    language: Language
    user_id: Optional[str] = Field(None, alias="userId")


class InputUpdateMessage(WireModel):
    type: Literal["input-update"] = "input-update"
    room_id: str = Field(..., alias="roomId")
    value: str
    user_id: Optional[str] = Field(None, alias="userId")


class RunOutputBroadcast(WireModel):
    type: Literal["run-output"] = "run-output"
    room_id: str = Field(..., alias="roomId")
    output: str
    language: Language
    user_id: Optional[str] = Field(None, alias="userId")


class NewMessageBroadcast(WireModel):
    """Chat message with a server-minted id and timestamp."""

    type: Literal["new-message"] = "new-message"
    id: str
    room_id: str = Field(..., alias="roomId")
    message: str
    user_name: str = Field(..., alias="userName")
    avatar: Optional[str] = None
    user_id: str = Field(..., alias="userId")
    timestamp: datetime


class CursorUpdateMessage(WireModel):
    type: Literal["cursor-update"] = "cursor-update"
    room_id: str = Field(..., alias="roomId")
    user_id: str = Field(..., alias="userId")
    user_name: Optional[str] = Field(None, alias="userName")
    position: CursorPosition


class UserJoinedCallMessage(WireModel):
    type: Literal["user-joined-call"] = "user-joined-call"
    room_id: str = Field(..., alias="roomId")
    user_id: str = Field(..., alias="userId")


class UserLeftCallMessage(WireModel):
    type: Literal["user-left-call"] = "user-left-call"
    room_id: str = Field(..., alias="roomId")
    user_id: str = Field(..., alias="userId")


class CallPeersListMessage(WireModel):
    type: Literal["call-peers-list"] = "call-peers-list"
    room_id: str = Field(..., alias="roomId")
    peer_ids: List[str] = Field(..., alias="peerIds")


class SignalForwardMessage(WireModel):
    """A negotiation message relayed verbatim to its target."""

    type: Literal["webrtc-offer", "webrtc-answer", "webrtc-ice-candidate"]
    room_id: str = Field(..., alias="roomId")
    from_id: str = Field(..., alias="from")
    payload: Any = None


class ErrorMessage(WireModel):
    """Server sends an error message."""

    type: Literal["error"] = "error"
    code: str
    message: str


class PongMessage(WireModel):
    """Server responds to ping."""

    type: Literal["pong"] = "pong"
    timestamp: float


# Union of all server message types
ServerMessage = Union[
    ConnectedMessage,
    RoomCreatedMessage,
    JoinSuccessMessage,
    JoinErrorMessage,
    UsersUpdateMessage,
    CodeUpdateMessage,
    LanguageUpdateMessage,
    InputUpdateMessage,
    RunOutputBroadcast,
    NewMessageBroadcast,
    CursorUpdateMessage,
    UserJoinedCallMessage,
    UserLeftCallMessage,
    CallPeersListMessage,
    SignalForwardMessage,
    ErrorMessage,
    PongMessage,
]


# =============================================================================
# Error Codes
# =============================================================================


class ErrorCode(str, Enum):
    """Standard error codes for the protocol."""

    ROOM_NOT_FOUND = "room_not_found"
    NOT_IN_ROOM = "not_in_room"
    NOT_IN_CALL = "not_in_call"
    INVALID_MESSAGE = "invalid_message"
    INTERNAL_ERROR = "internal_error"
    RATE_LIMITED = "rate_limited"


# =============================================================================
# Message Parsing
# =============================================================================


CLIENT_MESSAGE_TYPES: Dict[str, type] = {
    "create-room": CreateRoomMessage,
    "join-room": JoinRoomMessage,
    "leave-room": LeaveRoomMessage,
    "code-change": CodeChangeMessage,
    "language-change": LanguageChangeMessage,
    "input-change": InputChangeMessage,
    "chat-message": ChatMessage,
    "run-output": RunOutputMessage,
    "cursor-position": CursorPositionMessage,
    "join-call": JoinCallMessage,
    "leave-call": LeaveCallMessage,
    "get-call-peers": GetCallPeersMessage,
    "webrtc-offer": WebRtcOfferMessage,
    "webrtc-answer": WebRtcAnswerMessage,
    "webrtc-ice-candidate": WebRtcIceCandidateMessage,
    "ping": PingMessage,
}


def parse_client_message(data: Dict[str, Any]) -> ClientMessage:
    """
    Parse a raw dictionary into a typed client message.

    Raises:
        ValueError: If the message type is unknown.
        pydantic.ValidationError: If the payload does not match the schema.
    """
    msg_type = data.get("type")

    if msg_type not in CLIENT_MESSAGE_TYPES:
        raise ValueError(f"Unknown message type: {msg_type}")

    return CLIENT_MESSAGE_TYPES[msg_type].model_validate(data)


__all__ = [
    "Language",
    "DEFAULT_LANGUAGE",
    "to_wire",
    "MemberInfo",
    "CursorPosition",
    # Client messages
    "CreateRoomMessage",
    "JoinRoomMessage",
    "LeaveRoomMessage",
    "CodeChangeMessage",
    "LanguageChangeMessage",
    "InputChangeMessage",
    "ChatMessage",
    "RunOutputMessage",
    "CursorPositionMessage",
    "JoinCallMessage",
    "LeaveCallMessage",
    "GetCallPeersMessage",
    "WebRtcOfferMessage",
    "WebRtcAnswerMessage",
    "WebRtcIceCandidateMessage",
    "PingMessage",
    "ClientMessage",
    "SignalMessage",
    # Server messages
    "ConnectedMessage",
    "RoomCreatedMessage",
    "JoinSuccessMessage",
    "JoinErrorMessage",
    "UsersUpdateMessage",
    "CodeUpdateMessage",
    "LanguageUpdateMessage",
    "InputUpdateMessage",
    "RunOutputBroadcast",
    "NewMessageBroadcast",
    "CursorUpdateMessage",
    "UserJoinedCallMessage",
    "UserLeftCallMessage",
    "CallPeersListMessage",
    "SignalForwardMessage",
    "ErrorMessage",
    "PongMessage",
    "ServerMessage",
    # Error codes
    "ErrorCode",
    # Parsing
    "CLIENT_MESSAGE_TYPES",
    "parse_client_message",
]
