"""
Shared helpers for the HTTP routers.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable

from fastapi import Header, HTTPException

from ..auth import AuthProvider, AuthUser


def ok(data: Any = None, message: str | None = None) -> dict[str, Any]:
    """Build a success envelope."""
    body: dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    return body


def require_user(auth: AuthProvider) -> Callable[..., Awaitable[AuthUser]]:
    """
    Build a dependency that demands a valid ``Authorization: Bearer`` token.

    Raises:
        HTTPException: 401 if the token is missing or rejected.
    """

    async def dependency(authorization: str | None = Header(None)) -> AuthUser:
        scheme, _, token = (authorization or "").partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise HTTPException(status_code=401, detail="No token provided")

        user = await auth.authenticate(token.strip())
        if user is None:
            raise HTTPException(status_code=401, detail="Invalid token")
        return user

    return dependency


__all__ = [
    "ok",
    "require_user",
]
