"""
HTTP side channel for Coderoom.

Every route answers with the envelope ``{success, data|error, message?}``.
"""

from __future__ import annotations

from .deps import ok, require_user
from .rooms import create_rooms_router
from .run import create_run_router
from .snippets import create_snippets_router
from .system import create_system_router

__all__ = [
    "ok",
    "require_user",
    "create_rooms_router",
    "create_snippets_router",
    "create_run_router",
    "create_system_router",
]
