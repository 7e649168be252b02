"""
Room routes: create, fetch, save and delete durable room records.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from ..auth import AuthProvider, AuthUser
from ..errors import CoderoomError, StorageUnavailableError
from ..protocol import MAX_CODE_LENGTH, MAX_NAME_LENGTH, Language
from ..room import normalize_room_id
from ..session import SessionController
from ..storage import StorageProvider
from .deps import ok, require_user

logger = logging.getLogger(__name__)

DEFAULT_ROOM_NAME = "Untitled Room"


class CreateRoomRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = Field(None, max_length=MAX_NAME_LENGTH)
    created_by: str = Field(..., alias="createdBy", min_length=1, max_length=MAX_NAME_LENGTH)


class SaveRoomRequest(BaseModel):
    code: Optional[str] = Field(None, max_length=MAX_CODE_LENGTH)
    language: Optional[Language] = None


def create_rooms_router(
    session: SessionController,
    storage: StorageProvider,
    auth: AuthProvider,
) -> APIRouter:
    """Build the ``/api/rooms`` router."""
    router = APIRouter(prefix="/api/rooms", tags=["rooms"])
    authenticated = require_user(auth)

    @router.post("/create", status_code=201)
    async def create_room(body: CreateRoomRequest):
        try:
            record = await session.create_room_record(body.name or DEFAULT_ROOM_NAME, body.created_by)
        except StorageUnavailableError:
            logger.error("Room creation failed: storage unavailable", exc_info=True)
            raise HTTPException(status_code=503, detail="Storage unavailable")
        except CoderoomError as e:
            logger.error(f"Room creation failed: {e}")
            raise HTTPException(status_code=500, detail="Failed to create room")

        return ok(record.to_dict(), "Room created successfully")

    @router.get("/{room_id}")
    async def get_room(room_id: str):
        record = await storage.get_room(normalize_room_id(room_id))
        if record is None:
            raise HTTPException(status_code=404, detail="Room not found")
        return ok(record.to_dict())

    @router.post("/{room_id}/save")
    async def save_room(room_id: str, body: SaveRoomRequest):
        record = await session.save_room(room_id, body.code, body.language)
        if record is None:
            logger.warning(f"Save failed: room {room_id} not found")
            raise HTTPException(status_code=404, detail="Room not found")
        logger.info(f"Saved room {record.room_id}")
        return ok(record.to_dict(), "Room saved successfully")

    @router.delete("/{room_id}")
    async def delete_room(room_id: str, user: AuthUser = Depends(authenticated)):
        if not await session.delete_room(room_id):
            raise HTTPException(status_code=404, detail="Room not found")
        logger.info(f"Room {normalize_room_id(room_id)} deleted by {user.id}")
        return ok(message="Room deleted successfully")

    return router


__all__ = [
    "CreateRoomRequest",
    "SaveRoomRequest",
    "create_rooms_router",
]
