"""
Authentication module for Coderoom.

Provides bearer token verification for the HTTP side channel.
"""

from __future__ import annotations

from .base import AuthProvider, AuthUser, NoAuth
from .jwt import JWTAuthProvider

__all__ = [
    "AuthUser",
    "AuthProvider",
    "NoAuth",
    "JWTAuthProvider",
]
