"""
Bearer tokens signed with a shared secret.

Tokens minted by the Coderoom web client carry ``userId``/``username``;
tokens from generic identity providers carry ``sub``/``name``. Both are
accepted.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import jwt

from .base import AuthProvider, AuthUser

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_LIFETIME = 7 * 24 * 3600  # seconds

ID_CLAIMS = ("userId", "sub")
NAME_CLAIMS = ("username", "name")
REGISTERED_CLAIMS = ("iat", "exp", "nbf", "iss", "aud")


def _first_claim(payload: dict[str, Any], names: tuple[str, ...]) -> Any:
    for name in names:
        if payload.get(name):
            return payload[name]
    return None


class JWTAuthProvider(AuthProvider):
    """
    Verifies signed bearer tokens with PyJWT.

    Example:
        auth = JWTAuthProvider(secret_key=settings.jwt_secret)
        server = CoderoomServer(auth_provider=auth)
    """

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        issuer: str | None = None,
        audience: str | None = None,
        leeway: int = 0,
    ):
        """
        Args:
            secret_key: Shared signing secret (``JWT_SECRET``)
            algorithm: Signing algorithm
            issuer: Required ``iss`` claim, if any
            audience: Required ``aud`` claim, if any
            leeway: Clock skew tolerated on ``exp``, in seconds
        """
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.issuer = issuer
        self.audience = audience
        self.leeway = leeway

    def _decode(self, token: str) -> dict[str, Any] | None:
        try:
            return jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                audience=self.audience,
                leeway=self.leeway,
            )
        except jwt.ExpiredSignatureError:
            logger.debug("Rejected expired token")
        except jwt.InvalidTokenError as e:
            logger.debug(f"Rejected invalid token: {e}")
        return None

    async def authenticate(self, token: str) -> AuthUser | None:
        payload = self._decode(token)
        if payload is None:
            return None

        user_id = _first_claim(payload, ID_CLAIMS)
        if not user_id:
            logger.debug("Rejected token without a user id claim")
            return None

        user_id = str(user_id)
        name = _first_claim(payload, NAME_CLAIMS) or f"User {user_id[:8]}"
        skip = ID_CLAIMS + NAME_CLAIMS + REGISTERED_CLAIMS
        metadata = {key: value for key, value in payload.items() if key not in skip}
        return AuthUser(id=user_id, name=name, metadata=metadata)

    def create_token(
        self,
        user_id: str,
        username: str,
        expires_in: int = DEFAULT_TOKEN_LIFETIME,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """
        Sign a token in the shape the web client issues.

        Meant for tests and local tooling; deployed clients receive tokens
        from their own login flow.
        """
        issued_at = int(time.time())
        claims: dict[str, Any] = dict(metadata or {})
        claims.update(userId=user_id, username=username, iat=issued_at, exp=issued_at + expires_in)
        if self.issuer:
            claims["iss"] = self.issuer
        if self.audience:
            claims["aud"] = self.audience

        return jwt.encode(claims, self.secret_key, algorithm=self.algorithm)


__all__ = [
    "JWTAuthProvider",
]
