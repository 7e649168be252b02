"""
Snippet routes: save, list and delete copies of a room's buffer.
"""

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from ..auth import AuthProvider, AuthUser
from ..protocol import DEFAULT_LANGUAGE, MAX_CODE_LENGTH, MAX_ID_LENGTH, MAX_NAME_LENGTH, Language
from ..room import normalize_room_id
from ..storage import SnippetRecord, StorageProvider
from .deps import ok, require_user

logger = logging.getLogger(__name__)


class SaveSnippetRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    room_id: str = Field(..., alias="roomId", min_length=1, max_length=MAX_ID_LENGTH)
    title: str = Field(..., min_length=1, max_length=MAX_NAME_LENGTH)
    code: str = Field(..., min_length=1, max_length=MAX_CODE_LENGTH)
    language: Language = DEFAULT_LANGUAGE
    saved_by: str = Field(..., alias="savedBy", min_length=1, max_length=MAX_NAME_LENGTH)


def create_snippets_router(storage: StorageProvider, auth: AuthProvider) -> APIRouter:
    """Build the ``/api/snippets`` router."""
    router = APIRouter(prefix="/api/snippets", tags=["snippets"])
    authenticated = require_user(auth)

    @router.post("/save", status_code=201)
    async def save_snippet(body: SaveSnippetRequest):
        snippet = SnippetRecord(
            id=uuid.uuid4().hex,
            room_id=normalize_room_id(body.room_id),
            title=body.title,
            code=body.code,
            language=body.language,
            saved_by=body.saved_by,
        )
        await storage.save_snippet(snippet)
        logger.info(f"Snippet {snippet.id} saved for room {snippet.room_id}")
        return ok(snippet.to_dict(), "Snippet saved successfully")

    @router.get("/room/{room_id}")
    async def list_snippets(room_id: str):
        snippets = await storage.list_snippets(normalize_room_id(room_id))
        return ok([snippet.to_dict() for snippet in snippets])

    @router.delete("/{snippet_id}")
    async def delete_snippet(snippet_id: str, user: AuthUser = Depends(authenticated)):
        if not await storage.delete_snippet(snippet_id):
            raise HTTPException(status_code=404, detail="Snippet not found")
        logger.info(f"Snippet {snippet_id} deleted by {user.id}")
        return ok(message="Snippet deleted successfully")

    return router


__all__ = [
    "SaveSnippetRequest",
    "create_snippets_router",
]
