"""
Storage module for Coderoom.

Provides storage backends for persisting rooms and snippets.
"""

from __future__ import annotations

from .base import MemoryStorage, RoomRecord, SnippetRecord, StorageProvider
from .postgres import PostgresStorage

__all__ = [
    "StorageProvider",
    "RoomRecord",
    "SnippetRecord",
    "MemoryStorage",
    "PostgresStorage",
]
