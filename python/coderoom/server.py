"""
FastAPI server for Coderoom.

Provides CoderoomServer, which serves the collaborative WebSocket
endpoint and the HTTP side channel (rooms, snippets, run, health).
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.routing import APIRouter
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .auth import AuthProvider, JWTAuthProvider, NoAuth
from .config import Settings
from .errors import StorageUnavailableError
from .executor import CodeExecutor
from .presence import PresenceManager
from .protocol import (
    ChatMessage,
    CodeChangeMessage,
    CreateRoomMessage,
    CursorPositionMessage,
    ErrorCode,
    ErrorMessage,
    GetCallPeersMessage,
    InputChangeMessage,
    JoinCallMessage,
    JoinRoomMessage,
    LanguageChangeMessage,
    LeaveCallMessage,
    LeaveRoomMessage,
    PingMessage,
    PongMessage,
    RunOutputMessage,
    SignalMessage,
    parse_client_message,
)
from .registry import Connection, ConnectionRegistry
from .room import DEFAULT_SWEEP_INTERVAL, RoomStore
from .routes import create_rooms_router, create_run_router, create_snippets_router, create_system_router
from .session import SessionController
from .signaling import SignalingRelay, SignalKind
from .storage import MemoryStorage, PostgresStorage, StorageProvider

logger = logging.getLogger(__name__)

# Security constants
MAX_MESSAGE_SIZE = 1024 * 1024  # 1MB max message size
DEFAULT_RATE_LIMIT = 100  # messages per second
DEFAULT_RATE_WINDOW = 1.0  # seconds
DEFAULT_MESSAGE_TIMEOUT = 60.0  # seconds
ERROR_FLUSH_TIMEOUT = 1.0  # seconds


class RateLimiter:
    """Simple token bucket rate limiter per connection."""

    def __init__(self, rate: float = DEFAULT_RATE_LIMIT, window: float = DEFAULT_RATE_WINDOW):
        self.rate = rate
        self.window = window
        self._tokens: Dict[str, float] = defaultdict(lambda: rate)
        self._last_update: Dict[str, float] = defaultdict(time.time)

    def is_allowed(self, connection_id: str) -> bool:
        """Check if a request is allowed and consume a token."""
        now = time.time()
        elapsed = now - self._last_update[connection_id]
        self._last_update[connection_id] = now

        self._tokens[connection_id] = min(
            self.rate, self._tokens[connection_id] + elapsed * (self.rate / self.window)
        )

        if self._tokens[connection_id] >= 1:
            self._tokens[connection_id] -= 1
            return True
        return False

    def cleanup(self, connection_id: str) -> None:
        """Clean up state for a disconnected connection."""
        self._tokens.pop(connection_id, None)
        self._last_update.pop(connection_id, None)


class CoderoomServer:
    """
    FastAPI server for collaborative code rooms.

    Handles:
    - WebSocket connections and event routing
    - Room creation, join and leave
    - Last-write-wins buffer, language, input and output sync
    - Chat and cursor fanout
    - Call membership and signaling relay
    - The HTTP side channel (rooms, snippets, run, health)
    """

    def __init__(
        self,
        auth_provider: Optional[AuthProvider] = None,
        storage_provider: Optional[StorageProvider] = None,
        executor: Optional[CodeExecutor] = None,
        path: str = "/ws",
        rate_limit: float = DEFAULT_RATE_LIMIT,
        max_message_size: int = MAX_MESSAGE_SIZE,
        message_timeout: float = DEFAULT_MESSAGE_TIMEOUT,
        idle_room_timeout: Optional[float] = None,
        idle_sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        cors_origins: Optional[List[str]] = None,
    ):
        self._auth = auth_provider or NoAuth()
        self._storage = storage_provider or MemoryStorage()
        self._executor = executor or CodeExecutor()
        self._path = path
        self._max_message_size = max_message_size
        self._message_timeout = message_timeout
        self._cors_origins = cors_origins or []

        self._registry = ConnectionRegistry()
        self._rooms = RoomStore(
            storage=self._storage,
            idle_timeout=idle_room_timeout,
            sweep_interval=idle_sweep_interval,
        )
        self._presence = PresenceManager(self._registry, self._rooms)
        self._relay = SignalingRelay(self._presence)
        self._session = SessionController(
            self._registry,
            self._rooms,
            self._presence,
            self._relay,
            storage=self._storage,
        )

        self._router = APIRouter()
        self._app: Optional[FastAPI] = None
        self._rate_limiter = RateLimiter(rate=rate_limit)

        self._setup_routes()

    @classmethod
    def from_settings(cls, settings: Settings) -> "CoderoomServer":
        """Build a server from environment settings."""
        if settings.database_url:
            storage: StorageProvider = PostgresStorage(settings.database_url)
        else:
            logger.info("DATABASE_URL not set - rooms are kept in memory only")
            storage = MemoryStorage()

        if settings.jwt_secret:
            auth: AuthProvider = JWTAuthProvider(secret_key=settings.jwt_secret)
        else:
            auth = NoAuth()

        executor = CodeExecutor(
            url=settings.judge0_url,
            api_key=settings.rapidapi_key,
            api_host=settings.rapidapi_host,
        )

        return cls(
            auth_provider=auth,
            storage_provider=storage,
            executor=executor,
            rate_limit=settings.rate_limit,
            max_message_size=settings.max_message_size,
            message_timeout=settings.message_timeout,
            idle_room_timeout=settings.idle_room_timeout,
            idle_sweep_interval=settings.idle_sweep_interval,
            cors_origins=settings.client_urls,
        )

    @property
    def app(self) -> FastAPI:
        """Get the FastAPI application with all routes configured."""
        if self._app is None:
            self._app = FastAPI(title="Coderoom", lifespan=self._lifespan)
            if self._cors_origins:
                self._app.add_middleware(
                    CORSMiddleware,
                    allow_origins=self._cors_origins,
                    allow_credentials=True,
                    allow_methods=["*"],
                    allow_headers=["*"],
                )
            self._install_error_handlers(self._app)
            self._app.include_router(self._router)
        return self._app

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        """Lifespan handler for startup/shutdown events."""
        await self.start()

        yield

        await self.stop()

    @property
    def rooms(self) -> RoomStore:
        """Get the room store."""
        return self._rooms

    @property
    def presence(self) -> PresenceManager:
        """Get the presence manager."""
        return self._presence

    @property
    def session(self) -> SessionController:
        """Get the session controller."""
        return self._session

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    @property
    def storage(self) -> StorageProvider:
        return self._storage

    def _setup_routes(self) -> None:
        """Setup the WebSocket route and the HTTP side channel."""
        @self._router.websocket(self._path)
        async def websocket_endpoint(websocket: WebSocket):
            await self._handle_connection(websocket)

        self._router.include_router(create_system_router(self._rooms))
        self._router.include_router(create_rooms_router(self._session, self._storage, self._auth))
        self._router.include_router(create_snippets_router(self._storage, self._auth))
        self._router.include_router(create_run_router(self._executor))

    def mount(self, app: FastAPI, prefix: str = "") -> None:
        """Mount the Coderoom routes on an existing FastAPI application."""
        self._app = app
        self._install_error_handlers(app)
        app.include_router(self._router, prefix=prefix)

    def _install_error_handlers(self, app: FastAPI) -> None:
        """Render HTTP errors as ``{success: false, error}``."""

        @app.exception_handler(StarletteHTTPException)
        async def http_error(request: Request, exc: StarletteHTTPException):
            return JSONResponse(
                {"success": False, "error": exc.detail},
                status_code=exc.status_code,
                headers=getattr(exc, "headers", None),
            )

        @app.exception_handler(RequestValidationError)
        async def validation_error(request: Request, exc: RequestValidationError):
            errors = exc.errors()
            first = errors[0] if errors else {}
            field = ".".join(str(part) for part in first.get("loc", ())[1:])
            detail = f"{field}: {first.get('msg')}" if field else str(first.get("msg", "Invalid request"))
            return JSONResponse({"success": False, "error": detail}, status_code=400)

        @app.exception_handler(StorageUnavailableError)
        async def storage_error(request: Request, exc: StorageUnavailableError):
            logger.error(f"Storage unavailable during {request.method} {request.url.path}: {exc}")
            return JSONResponse({"success": False, "error": "Storage unavailable"}, status_code=503)

    async def _handle_connection(self, websocket: WebSocket) -> None:
        """Handle a new WebSocket connection."""
        await websocket.accept()

        connection = self._session.connect(websocket)
        connection_id = connection.id

        try:
            while True:
                try:
                    raw_data = await asyncio.wait_for(
                        websocket.receive_text(), timeout=self._message_timeout
                    )
                except asyncio.TimeoutError:
                    # Send a ping to check if the connection is still alive
                    if not connection.send({"type": "ping"}):
                        break
                    continue

                if not self._rate_limiter.is_allowed(connection_id):
                    self._send_error(connection, ErrorCode.RATE_LIMITED, "Rate limit exceeded.")
                    continue

                if len(raw_data) > self._max_message_size:
                    self._send_error(connection, ErrorCode.INVALID_MESSAGE, "Message too large.")
                    continue

                try:
                    data = json.loads(raw_data)
                except json.JSONDecodeError:
                    self._send_error(connection, ErrorCode.INVALID_MESSAGE, "Invalid JSON.")
                    continue

                if not isinstance(data, dict):
                    self._send_error(connection, ErrorCode.INVALID_MESSAGE, "Invalid message format.")
                    continue

                await self._handle_message(connection, data)

        except WebSocketDisconnect:
            pass
        except Exception:
            logger.exception("WebSocket error")
            self._send_error(connection, ErrorCode.INTERNAL_ERROR, "Internal error.")
            try:
                await asyncio.wait_for(connection.flush(), timeout=ERROR_FLUSH_TIMEOUT)
            except asyncio.TimeoutError:
                logger.debug(f"Gave up flushing connection {connection_id}")
        finally:
            self._rate_limiter.cleanup(connection_id)
            await self._session.disconnect(connection_id)

    async def _handle_message(self, connection: Connection, data: Dict[str, Any]) -> None:
        """Handle an incoming message."""
        try:
            message = parse_client_message(data)
        except (ValueError, ValidationError):
            self._send_error(connection, ErrorCode.INVALID_MESSAGE, "Invalid message format.")
            return

        handlers = {
            "create-room": self._handle_create_room,
            "join-room": self._handle_join_room,
            "leave-room": self._handle_leave_room,
            "code-change": self._handle_code_change,
            "language-change": self._handle_language_change,
            "input-change": self._handle_input_change,
            "chat-message": self._handle_chat_message,
            "run-output": self._handle_run_output,
            "cursor-position": self._handle_cursor_position,
            "join-call": self._handle_join_call,
            "leave-call": self._handle_leave_call,
            "get-call-peers": self._handle_get_call_peers,
            "webrtc-offer": self._handle_signal,
            "webrtc-answer": self._handle_signal,
            "webrtc-ice-candidate": self._handle_signal,
            "ping": self._handle_ping,
        }

        handler = handlers.get(message.type)
        if handler is None:
            self._send_error(connection, ErrorCode.INVALID_MESSAGE, f"Unknown message type: {message.type}")
            return

        try:
            await handler(connection, message)
        except Exception:
            logger.exception(f"Error handling {message.type} from {connection.id}")
            self._send_error(connection, ErrorCode.INTERNAL_ERROR, "Internal error.")

    async def _handle_create_room(self, connection: Connection, message: CreateRoomMessage) -> None:
        await self._session.create_room(connection.id, message.room_name, message.user_name, message.avatar)

    async def _handle_join_room(self, connection: Connection, message: JoinRoomMessage) -> None:
        await self._session.join_room(connection.id, message.room_id, message.user_name, message.avatar)

    async def _handle_leave_room(self, connection: Connection, message: LeaveRoomMessage) -> None:
        await self._session.leave_room(connection.id, message.room_id)

    async def _handle_code_change(self, connection: Connection, message: CodeChangeMessage) -> None:
        await self._session.change_code(connection.id, message.room_id, message.code)

    async def _handle_language_change(self, connection: Connection, message: LanguageChangeMessage) -> None:
        await self._session.change_language(connection.id, message.room_id, message.language)

    async def _handle_input_change(self, connection: Connection, message: InputChangeMessage) -> None:
        await self._session.change_input(connection.id, message.room_id, message.value)

    async def _handle_chat_message(self, connection: Connection, message: ChatMessage) -> None:
        await self._session.post_chat(
            connection.id, message.room_id, message.message, message.user_name, message.avatar
        )

    async def _handle_run_output(self, connection: Connection, message: RunOutputMessage) -> None:
        await self._session.publish_output(connection.id, message.room_id, message.output, message.language)

    async def _handle_cursor_position(self, connection: Connection, message: CursorPositionMessage) -> None:
        await self._session.move_cursor(connection.id, message.room_id, message.position, message.user_name)

    async def _handle_join_call(self, connection: Connection, message: JoinCallMessage) -> None:
        await self._session.join_call(connection.id, message.room_id)

    async def _handle_leave_call(self, connection: Connection, message: LeaveCallMessage) -> None:
        if not await self._session.leave_call(connection.id, message.room_id):
            self._send_error(connection, ErrorCode.NOT_IN_CALL, "Not in call.")

    async def _handle_get_call_peers(self, connection: Connection, message: GetCallPeersMessage) -> None:
        await self._session.get_call_peers(connection.id, message.room_id)

    async def _handle_signal(self, connection: Connection, message: SignalMessage) -> None:
        self._session.relay_signal(
            connection.id, SignalKind(message.type), message.room_id, message.to, message.payload
        )

    async def _handle_ping(self, connection: Connection, message: PingMessage) -> None:
        """Handle ping message."""
        connection.send(PongMessage(timestamp=time.time()))

    def _send_error(self, connection: Connection, code: ErrorCode, message: str) -> None:
        """Queue an error message for a connection."""
        if not connection.send(ErrorMessage(code=code.value, message=message)):
            logger.debug(f"Failed to queue error message for connection {connection.id}")

    async def start(self) -> None:
        """Connect storage and start background tasks."""
        await self._storage.connect()
        await self._rooms.start()

    async def stop(self) -> None:
        """Stop background tasks and disconnect storage."""
        await self._rooms.stop()
        await self._storage.disconnect()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the FastAPI application from settings (environment by default)."""
    settings = settings or Settings.from_env()
    return CoderoomServer.from_settings(settings).app


__all__ = ["CoderoomServer", "RateLimiter", "create_app"]
