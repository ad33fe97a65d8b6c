"""Bearer credential handling for outbound calls."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Protocol

from jose import JWTError, jwt

from .config import settings
from .exceptions import UnauthorizedError

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_LIFETIME_SECONDS = 60 * 60

SessionSource = Callable[[], Awaitable[str | None]]


class CredentialProvider(Protocol):
    async def token(self) -> str: ...

    async def refresh(self) -> str: ...

    async def sign_out(self) -> None: ...


def token_expiry(token: str, now: float) -> float:
    """Return the `exp` claim of a JWT without verifying its signature."""
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError:
        return now + DEFAULT_TOKEN_LIFETIME_SECONDS
    exp = claims.get("exp")
    if not isinstance(exp, (int, float)):
        return now + DEFAULT_TOKEN_LIFETIME_SECONDS
    return float(exp)


class TokenManager:
    """Cache a bearer token and share a single in-flight acquisition between callers."""

    def __init__(
        self,
        get_session: SessionSource,
        refresh_session: SessionSource,
        on_sign_out: Callable[[], Awaitable[None]] | None = None,
        margin_seconds: int | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._get_session = get_session
        self._refresh_session = refresh_session
        self._on_sign_out = on_sign_out
        self._margin = settings.token_refresh_margin_seconds if margin_seconds is None else margin_seconds
        self._clock = clock
        self._token: str | None = None
        self._expires_at = 0.0
        self._pending: asyncio.Task[str] | None = None

    @property
    def has_token(self) -> bool:
        return self._token is not None

    async def token(self) -> str:
        now = self._clock()
        if self._token and self._expires_at > now + self._margin:
            return self._token
        return await self._shared(self._acquire)

    async def refresh(self) -> str:
        self._token = None
        self._expires_at = 0.0
        return await self._shared(self._renew)

    async def sign_out(self) -> None:
        logger.info("Signing out and clearing cached credential")
        self.clear()
        if self._on_sign_out is not None:
            await self._on_sign_out()

    def clear(self) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None
        self._token = None
        self._expires_at = 0.0

    async def _shared(self, factory: Callable[[], Awaitable[str]]) -> str:
        if self._pending is None or self._pending.done():
            self._pending = asyncio.ensure_future(factory())
        pending = self._pending
        try:
            return await asyncio.shield(pending)
        finally:
            if self._pending is pending and pending.done():
                self._pending = None

    async def _acquire(self) -> str:
        token = await self._get_session()
        if not token:
            raise UnauthorizedError("No active session")
        now = self._clock()
        expires_at = token_expiry(token, now)
        if expires_at <= now:
            logger.warning("Session token already expired; refreshing")
            return await self._renew()
        return self._store(token, expires_at)

    async def _renew(self) -> str:
        token = await self._refresh_session()
        if not token:
            raise UnauthorizedError("Session refresh failed")
        return self._store(token, token_expiry(token, self._clock()))

    def _store(self, token: str, expires_at: float) -> str:
        self._token = token
        self._expires_at = expires_at
        return token


class StaticCredentials:
    """Credential provider for a fixed token (service accounts, tests)."""

    def __init__(self, token: str):
        self._token = token
        self.refreshes = 0

    async def token(self) -> str:
        return self._token

    async def refresh(self) -> str:
        self.refreshes += 1
        return self._token

    async def sign_out(self) -> None:
        return None
