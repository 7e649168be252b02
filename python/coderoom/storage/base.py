"""
Abstract storage provider interface.

Implement this interface to persist rooms and saved snippets. The
session core only ever reads a room on hydration and writes it on
explicit save, create, delete or idle eviction; edits never go through
storage.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any

from ..protocol import DEFAULT_LANGUAGE, Language


@dataclass
class RoomRecord:
    """
    Persisted room data.

    Attributes:
        room_id: Normalized (upper-case) room identifier
        name: Human readable room name
        created_by: Display name of the creator
        code: Last saved buffer contents
        language: Last saved language
        created_at: Unix timestamp of creation
        last_modified: Unix timestamp of last save
    """
    room_id: str
    name: str
    created_by: str
    code: str = ""
    language: Language = DEFAULT_LANGUAGE
    created_at: float = field(default_factory=time.time)
    last_modified: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "roomId": self.room_id,
            "name": self.name,
            "createdBy": self.created_by,
            "code": self.code,
            "language": self.language.value,
            "createdAt": self.created_at,
            "lastModified": self.last_modified,
        }


@dataclass
class SnippetRecord:
    """
    A saved copy of a room's buffer.

    Attributes:
        id: Unique snippet identifier
        room_id: Room the snippet was saved from
        title: Snippet title
        code: Saved source
        language: Language of the source
        saved_by: Display name of whoever saved it
        created_at: Unix timestamp of creation
    """
    id: str
    room_id: str
    title: str
    code: str
    saved_by: str
    language: Language = DEFAULT_LANGUAGE
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "roomId": self.room_id,
            "title": self.title,
            "code": self.code,
            "language": self.language.value,
            "savedBy": self.saved_by,
            "createdAt": self.created_at,
        }


class StorageProvider(ABC):
    """
    Abstract base class for storage providers.

    Implementations raise ``StorageUnavailableError`` when the backing
    store cannot be reached.

    Example:
        class MyStorage(StorageProvider):
            async def get_room(self, room_id: str) -> RoomRecord | None:
                # Load from your database
                ...
    """

    @abstractmethod
    async def connect(self) -> None:
        """Initialize storage connection."""
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Close storage connection."""
        ...

    # Rooms

    @abstractmethod
    async def get_room(self, room_id: str) -> RoomRecord | None:
        """
        Get room data by ID.

        Args:
            room_id: The normalized room identifier

        Returns:
            RoomRecord if room exists, None otherwise
        """
        ...

    @abstractmethod
    async def save_room(self, room: RoomRecord) -> None:
        """
        Save room data.

        Creates or updates the room.
        """
        ...

    @abstractmethod
    async def update_room(
        self,
        room_id: str,
        code: str,
        language: Language,
    ) -> RoomRecord | None:
        """
        Overwrite the saved buffer and language of an existing room.

        Returns:
            The updated record, or None if the room does not exist
        """
        ...

    @abstractmethod
    async def delete_room(self, room_id: str) -> bool:
        """
        Delete a room.

        Returns:
            True if room was deleted, False if it didn't exist
        """
        ...

    async def room_exists(self, room_id: str) -> bool:
        """Check whether a room record exists."""
        return await self.get_room(room_id) is not None

    @abstractmethod
    async def list_rooms(self, limit: int = 100, offset: int = 0) -> list[RoomRecord]:
        """List rooms, newest first."""
        ...

    # Snippets

    @abstractmethod
    async def save_snippet(self, snippet: SnippetRecord) -> None:
        ...

    @abstractmethod
    async def list_snippets(self, room_id: str) -> list[SnippetRecord]:
        """
        Get all snippets saved from a room.

        Returns:
            Snippets ordered newest first
        """
        ...

    @abstractmethod
    async def delete_snippet(self, snippet_id: str) -> bool:
        ...


class MemoryStorage(StorageProvider):
    """
    In-memory storage for development and testing.

    Data is not persisted across restarts.
    """

    def __init__(self):
        self._rooms: dict[str, RoomRecord] = {}
        self._snippets: dict[str, SnippetRecord] = {}

    async def connect(self) -> None:
        """No-op for memory storage."""
        pass

    async def disconnect(self) -> None:
        """No-op for memory storage."""
        pass

    async def get_room(self, room_id: str) -> RoomRecord | None:
        room = self._rooms.get(room_id)
        return replace(room) if room else None

    async def save_room(self, room: RoomRecord) -> None:
        self._rooms[room.room_id] = replace(room)

    async def update_room(
        self,
        room_id: str,
        code: str,
        language: Language,
    ) -> RoomRecord | None:
        room = self._rooms.get(room_id)
        if room is None:
            return None
        room.code = code
        room.language = language
        room.last_modified = time.time()
        return replace(room)

    async def delete_room(self, room_id: str) -> bool:
        return self._rooms.pop(room_id, None) is not None

    async def list_rooms(self, limit: int = 100, offset: int = 0) -> list[RoomRecord]:
        rooms = sorted(self._rooms.values(), key=lambda r: r.created_at, reverse=True)
        return [replace(r) for r in rooms[offset:offset + limit]]

    async def save_snippet(self, snippet: SnippetRecord) -> None:
        self._snippets[snippet.id] = replace(snippet)

    async def list_snippets(self, room_id: str) -> list[SnippetRecord]:
        # Reversed insertion order keeps same-timestamp snippets newest first
        snippets = [s for s in reversed(list(self._snippets.values())) if s.room_id == room_id]
        snippets.sort(key=lambda s: s.created_at, reverse=True)
        return [replace(s) for s in snippets]

    async def delete_snippet(self, snippet_id: str) -> bool:
        return self._snippets.pop(snippet_id, None) is not None
