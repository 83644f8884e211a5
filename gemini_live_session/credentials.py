"""Ephemeral credential provisioning and expiry tracking.

Ephemeral tokens are short-lived, single-use tokens that let a client open
a Live API session without holding the main API key. A fresh token is
provisioned for every connect attempt and a once-per-second countdown
tears the session down when the token lifetime runs out.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from google import genai

from .const import (
    API_VERSION_EPHEMERAL,
    COUNTDOWN_TICK_SECONDS,
    TOKEN_NEW_SESSION_WINDOW_SECONDS,
    TOKEN_USES,
)
from .exceptions import ProvisioningError
from .interfaces import TokenProvisioner

_LOGGER = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass
class EphemeralCredential:
    """A provisioned token and its absolute expiry time."""

    token: str
    expires_at: datetime
    consumed: bool = False

    def remaining(self, now: datetime) -> float:
        """Seconds left before expiry (never negative)."""
        return max(0.0, (self.expires_at - now).total_seconds())


class GenaiTokenProvisioner:
    """Create ephemeral tokens with the google-genai auth token API.

    Note: This requires the v1alpha API endpoint.
    """

    def __init__(
        self,
        api_key: str,
        *,
        now: Callable[[], datetime] = utcnow,
        client: genai.Client | None = None,
    ) -> None:
        self._api_key = api_key
        self._now = now
        self._client = client

    def _get_client(self) -> genai.Client:
        if self._client is None:
            self._client = genai.Client(
                http_options={"api_version": API_VERSION_EPHEMERAL},
                api_key=self._api_key,
            )
        return self._client

    async def create_token(self, duration_minutes: float) -> tuple[str, datetime]:
        now = self._now()
        expire_time = now + timedelta(minutes=duration_minutes)
        new_session_expire_time = now + timedelta(seconds=TOKEN_NEW_SESSION_WINDOW_SECONDS)
        token = await self._get_client().aio.auth_tokens.create(
            config={
                "uses": TOKEN_USES,
                "expire_time": expire_time,
                "new_session_expire_time": new_session_expire_time,
                "http_options": {"api_version": API_VERSION_EPHEMERAL},
            }
        )
        name = getattr(token, "name", None)
        if not name:
            raise ProvisioningError("Token service returned no token name")
        return name, expire_time


class CredentialManager:
    """Provision single-use credentials and count down to their expiry."""

    def __init__(
        self,
        provisioner: TokenProvisioner,
        *,
        now: Callable[[], datetime] = utcnow,
        tick_interval: float = COUNTDOWN_TICK_SECONDS,
    ) -> None:
        self._provisioner = provisioner
        self._now = now
        self._tick_interval = tick_interval
        self._credential: EphemeralCredential | None = None
        self._countdown_task: asyncio.Task | None = None
        self._remaining: float = 0.0

    @property
    def credential(self) -> EphemeralCredential | None:
        return self._credential

    @property
    def remaining_seconds(self) -> float:
        """Remaining credential lifetime as of the last countdown tick."""
        if self._credential is None:
            return 0.0
        return self._remaining

    @property
    def pending_timers(self) -> int:
        task = self._countdown_task
        return 1 if task is not None and not task.done() else 0

    async def provision(self, duration_minutes: float) -> EphemeralCredential:
        """Obtain a fresh credential without holding it.

        The caller decides whether the result is still wanted and passes it
        to ``install``; a credential that is never installed is dropped.

        Raises:
            ProvisioningError: when the backend rejects the request.
        """
        try:
            token, expires_at = await self._provisioner.create_token(duration_minutes)
        except ProvisioningError:
            raise
        except Exception as err:
            _LOGGER.error("Failed to create ephemeral token: %s", err)
            raise ProvisioningError(str(err)) from err
        if not token:
            raise ProvisioningError("Empty ephemeral token")
        credential = EphemeralCredential(token=token, expires_at=expires_at)
        _LOGGER.info(
            "Provisioned ephemeral credential (expires in %.0fs)",
            credential.remaining(self._now()),
        )
        return credential

    async def install(self, credential: EphemeralCredential) -> None:
        """Hold ``credential``, replacing (and releasing) any previous one."""
        await self.release()
        self._credential = credential
        self._remaining = credential.remaining(self._now())

    def consume(self) -> str:
        """Mark the held credential as used and return its token."""
        credential = self._credential
        if credential is None:
            raise ProvisioningError("No credential provisioned")
        if credential.consumed:
            raise ProvisioningError("Ephemeral credential already used")
        credential.consumed = True
        return credential.token

    async def start_countdown(
        self,
        on_expired: Callable[[], Awaitable[None]],
        on_tick: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        """Recompute remaining time every tick and call ``on_expired`` at zero."""
        if self._credential is None:
            return
        await self._cancel_countdown()
        self._countdown_task = asyncio.create_task(self._countdown(on_expired, on_tick))

    async def _countdown(
        self,
        on_expired: Callable[[], Awaitable[None]],
        on_tick: Callable[[float], Awaitable[None]] | None,
    ) -> None:
        try:
            while self._credential is not None:
                await asyncio.sleep(self._tick_interval)
                credential = self._credential
                if credential is None:
                    return
                self._remaining = credential.remaining(self._now())
                if on_tick is not None:
                    await on_tick(self._remaining)
                if self._remaining <= 0:
                    _LOGGER.info("Ephemeral credential expired")
                    self._credential = None
                    # Detach before the callback so teardown does not cancel us
                    self._countdown_task = None
                    await on_expired()
                    return
        except asyncio.CancelledError:
            pass

    async def _cancel_countdown(self) -> None:
        task = self._countdown_task
        self._countdown_task = None
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def release(self) -> None:
        """Drop the credential and stop the countdown."""
        await self._cancel_countdown()
        self._credential = None
        self._remaining = 0.0

    def describe(self) -> dict[str, Any]:
        credential = self._credential
        return {
            "held": credential is not None,
            "expires_at": credential.expires_at.isoformat() if credential else None,
            "remaining_seconds": self.remaining_seconds,
        }
