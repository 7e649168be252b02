"""
Token verification for the HTTP side channel.

Coderoom only asks one question of an auth provider: does this bearer
token identify a user? Room collaboration itself is open to anyone who
knows the room id; tokens guard destructive routes only.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class AuthUser:
    """
    Identity resolved from a bearer token.

    Attributes:
        id: Stable user id
        name: Name shown to other users
        metadata: Remaining token claims
    """
    id: str
    name: str
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "metadata": self.metadata}


class AuthProvider(ABC):
    """
    Resolves bearer tokens to users.

    Example:
        class ApiKeyAuth(AuthProvider):
            async def authenticate(self, token: str) -> AuthUser | None:
                user_id = await lookup_api_key(token)
                return AuthUser(id=user_id, name=user_id) if user_id else None
    """

    @abstractmethod
    async def authenticate(self, token: str) -> AuthUser | None:
        """
        Args:
            token: Bearer token without the ``Bearer`` prefix

        Returns:
            The user, or None when the token is not accepted
        """
        ...


class NoAuth(AuthProvider):
    """
    Development provider: any non-empty token is a user named after it.

    Used when ``JWT_SECRET`` is unset. Never deploy with it.
    """

    _warned = False

    async def authenticate(self, token: str) -> AuthUser | None:
        if not NoAuth._warned:
            logger.warning(
                "NoAuth provider is enabled - any bearer token is accepted. "
                "Set JWT_SECRET to require signed tokens."
            )
            NoAuth._warned = True

        if not token:
            return None
        return AuthUser(id=token, name=f"User {token[:8]}")
