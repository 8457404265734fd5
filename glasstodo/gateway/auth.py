from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from fastapi import HTTPException, Request


@dataclass(frozen=True, slots=True)
class AuthContext:
    username: str
    is_admin: bool = False


class Authenticator(Protocol):
    """Resolves the caller of a request.

    Login, sessions and passwords live outside this service; whatever sits in
    front of it only has to produce a username. The result is trusted as-is.
    """

    async def __call__(self, request: Request) -> AuthContext: ...


class HeaderAuthenticator:
    """Trust identity headers injected by an upstream auth proxy."""

    def __init__(self, user_header: str = "X-Auth-User", admin_header: str = "X-Auth-Admin"):
        self._user_header = user_header
        self._admin_header = admin_header

    async def __call__(self, request: Request) -> AuthContext:
        username = (request.headers.get(self._user_header) or "").strip()
        if not username:
            raise HTTPException(status_code=401, detail="authentication required")
        admin_raw = (request.headers.get(self._admin_header) or "").strip().lower()
        return AuthContext(username=username, is_admin=admin_raw in {"1", "true", "yes"})


__all__ = ["AuthContext", "Authenticator", "HeaderAuthenticator"]
