"""
Coderoom - Real-time collaborative code rooms.
"""

from coderoom.auth import AuthProvider, AuthUser, JWTAuthProvider, NoAuth
from coderoom.config import Settings
from coderoom.errors import (
    CoderoomError,
    ExecutionError,
    RoomExistsError,
    RoomNotFoundError,
    StorageUnavailableError,
)
from coderoom.executor import CodeExecutor, ExecutionResult
from coderoom.storage import MemoryStorage, PostgresStorage, RoomRecord, SnippetRecord, StorageProvider

# Protocol message types
from coderoom.protocol import (
    Language,
    MemberInfo,
    CursorPosition,
    # Client messages
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
    ClientMessage,
    # Server messages
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
    ServerMessage,
    ErrorCode,
    parse_client_message,
    to_wire,
)

# Connections and rooms
from coderoom.registry import Connection, ConnectionRegistry, SessionState
from coderoom.room import Member, Room, RoomStore
from coderoom.presence import PresenceManager
from coderoom.signaling import CallRegistry, SignalingEnvelope, SignalingRelay, SignalKind
from coderoom.negotiation import ActionKind, MeshNegotiator, NegotiationAction, NegotiationState
from coderoom.session import SessionController

# Server
from coderoom.server import CoderoomServer, create_app

__version__ = "0.1.0"

__all__ = [
    # Auth classes
    "AuthProvider",
    "AuthUser",
    "JWTAuthProvider",
    "NoAuth",
    # Config
    "Settings",
    # Errors
    "CoderoomError",
    "ExecutionError",
    "RoomExistsError",
    "RoomNotFoundError",
    "StorageUnavailableError",
    # Execution
    "CodeExecutor",
    "ExecutionResult",
    # Storage classes
    "StorageProvider",
    "PostgresStorage",
    "MemoryStorage",
    "RoomRecord",
    "SnippetRecord",
    # Protocol - shared
    "Language",
    "MemberInfo",
    "CursorPosition",
    # Protocol - Client messages
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
    # Protocol - Server messages
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
    "ErrorCode",
    # Protocol - Parsing
    "parse_client_message",
    "to_wire",
    # Connections
    "Connection",
    "ConnectionRegistry",
    "SessionState",
    # Rooms and presence
    "Member",
    "Room",
    "RoomStore",
    "PresenceManager",
    # Signaling
    "CallRegistry",
    "SignalingEnvelope",
    "SignalingRelay",
    "SignalKind",
    "ActionKind",
    "MeshNegotiator",
    "NegotiationAction",
    "NegotiationState",
    # Session
    "SessionController",
    # Server
    "CoderoomServer",
    "create_app",
]
