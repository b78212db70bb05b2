"""Caller identity resolution."""

from typing import Protocol

from fastapi import Request

DEFAULT_AUTH_HEADER = "X-User-Id"


class AuthResolver(Protocol):
    """Resolves the authenticated user id for a request."""

    async def resolve(self, request: Request) -> str | None:
        """Return the caller's user id, or None if the request is unauthenticated."""
        ...


class HeaderAuthResolver:
    """Trusts a user id header set by an upstream authenticating proxy."""

    def __init__(self, header: str = DEFAULT_AUTH_HEADER):
        self.header = header

    async def resolve(self, request: Request) -> str | None:
        user_id = request.headers.get(self.header, "").strip()
        return user_id or None
