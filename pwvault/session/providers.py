"""Contracts for the remote services the session manager talks to.

Implementations live outside this package (HTTP clients, test doubles).
``AuthProvider.login`` raises ``AuthError`` on rejected credentials.
"""
from typing import Protocol, runtime_checkable

from ..models import LoginResult


@runtime_checkable
class AuthProvider(Protocol):
    async def login(self, email: str, password: str) -> LoginResult:
        ...

    async def logout(self) -> None:
        ...


@runtime_checkable
class IvProvider(Protocol):
    async def get_iv(self, owner_id: str, password: str) -> str:
        """Return the user's Base64 IV."""
        ...
