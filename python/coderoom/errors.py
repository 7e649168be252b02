"""
Exception types for Coderoom.

Lookups that can simply miss return None; these exceptions cover the
conditions a caller has to tell apart from a plain miss.
"""

from __future__ import annotations


class CoderoomError(Exception):
    """Base class for all Coderoom errors."""


class RoomNotFoundError(CoderoomError):
    """A room id does not exist in memory or in durable storage."""

    def __init__(self, room_id: str):
        super().__init__(f"Room '{room_id}' not found")
        self.room_id = room_id


class RoomExistsError(CoderoomError):
    """A room with this id is already live in memory."""

    def __init__(self, room_id: str):
        super().__init__(f"Room '{room_id}' already exists")
        self.room_id = room_id


class StorageUnavailableError(CoderoomError):
    """The durable storage backend could not be reached or failed."""


class ExecutionError(CoderoomError):
    """The remote code execution service failed or returned garbage."""


__all__ = [
    "CoderoomError",
    "RoomNotFoundError",
    "RoomExistsError",
    "StorageUnavailableError",
    "ExecutionError",
]
