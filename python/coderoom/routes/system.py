"""
Operational routes: health check and live room listing.
"""

from __future__ import annotations

from fastapi import APIRouter

from ..room import RoomStore


def create_system_router(rooms: RoomStore) -> APIRouter:
    router = APIRouter(tags=["system"])

    @router.get("/health")
    async def health():
        return {"status": "Server is running"}

    @router.get("/api/debug/rooms")
    async def debug_rooms():
        room_ids = rooms.room_ids
        return {"totalRooms": len(room_ids), "rooms": room_ids}

    return router


__all__ = ["create_system_router"]
