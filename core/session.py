"""Session bookkeeping: sliding-expiry sessions, action rate limiting and
login lockout.

All state lives in injected ``KeyValueStore`` instances. The ephemeral
store holds ``session:<id> -> {public_key, expiry}``; the durable store
holds ``active:<public_key> -> <id>`` (one live session per key) plus the
rate-limit and lockout counters.
"""

import asyncio
import logging
import math
import secrets
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

from config import (
    LOCKOUT_DURATION,
    LOGIN_TIMEOUT,
    MAX_LOGIN_ATTEMPTS,
    RATE_LIMIT_ACTIONS,
    RATE_LIMIT_WINDOW,
    SESSION_DURATION,
)
from core.errors import AuthError, RateLimitError, UpstreamError
from core.kvstore import KeyValueStore
from core.nostr import is_valid_pubkey
from core.signer import Signer, no_signer_error

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"
    EXPIRED = "expired"


@dataclass
class Session:
    session_id: str
    public_key: str
    expiry: float

    def remaining(self, now: float) -> int:
        return max(0, int(self.expiry - now))


def _format_wait(seconds: int) -> str:
    if seconds >= 60:
        return f"{math.ceil(seconds / 60)} minutes"
    return f"{seconds} seconds"


class RateLimiter:
    """Sliding window: at most ``limit`` actions per ``window`` seconds."""

    def __init__(
        self,
        store: KeyValueStore,
        limit: int = RATE_LIMIT_ACTIONS,
        window: int = RATE_LIMIT_WINDOW,
        clock=time.time,
    ):
        self.store = store
        self.limit = limit
        self.window = window
        self.clock = clock

    async def hit(self, action: str, subject: str) -> int:
        """Record one action; returns how many are left in the window."""
        key = f"ratelimit:{action}:{subject}"
        now = self.clock()
        async with self.store.lock:
            stamps = [t for t in await self.store.get(key, []) if now - t < self.window]
            if len(stamps) >= self.limit:
                retry_after = math.ceil(stamps[0] + self.window - now)
                logger.warning(f"Rate limit hit for {action} by {subject}")
                raise RateLimitError(
                    f"Too many attempts. Please try again in {_format_wait(retry_after)}",
                    retry_after,
                )
            stamps.append(now)
            await self.store.set(key, stamps)
        return self.limit - len(stamps)

    async def sweep(self) -> int:
        """Drop counters whose window has emptied."""
        now = self.clock()
        removed = 0
        async with self.store.lock:
            for key in await self.store.keys("ratelimit:"):
                stamps = await self.store.get(key, [])
                if not any(now - t < self.window for t in stamps):
                    await self.store.remove(key)
                    removed += 1
        return removed


class LoginLockout:
    """Locks a subject out after ``max_attempts`` consecutive failures."""

    def __init__(
        self,
        store: KeyValueStore,
        max_attempts: int = MAX_LOGIN_ATTEMPTS,
        duration: int = LOCKOUT_DURATION,
        clock=time.time,
    ):
        self.store = store
        self.max_attempts = max_attempts
        self.duration = duration
        self.clock = clock

    def _key(self, subject: str) -> str:
        return f"lockout:{subject}"

    async def check(self, subject: str) -> None:
        data = await self.store.get(self._key(subject))
        if not data or not data.get("locked_until"):
            return
        remaining = math.ceil(data["locked_until"] - self.clock())
        if remaining > 0:
            raise RateLimitError(
                f"Too many failed login attempts. Please try again in {remaining} seconds",
                remaining,
                "LoginLocked",
            )
        await self.store.remove(self._key(subject))

    async def record_failure(self, subject: str) -> int:
        key = self._key(subject)
        async with self.store.lock:
            data = await self.store.get(key) or {"attempts": 0}
            attempts = data.get("attempts", 0) + 1
            now = self.clock()
            if attempts >= self.max_attempts:
                data = {"attempts": 0, "locked_until": now + self.duration, "last_failure": now}
                logger.warning(f"Login locked for {subject} after {attempts} failures")
            else:
                data = {"attempts": attempts, "last_failure": now}
            await self.store.set(key, data)
        return attempts

    async def reset(self, subject: str) -> None:
        await self.store.remove(self._key(subject))

    async def sweep(self) -> int:
        """Drop elapsed lockouts and failure counts older than ``duration``."""
        now = self.clock()
        removed = 0
        async with self.store.lock:
            for key in await self.store.keys("lockout:"):
                data = await self.store.get(key) or {}
                locked_until = data.get("locked_until")
                if locked_until:
                    stale = locked_until <= now
                else:
                    stale = now - data.get("last_failure", 0) >= self.duration
                if stale:
                    await self.store.remove(key)
                    removed += 1
        return removed


class SessionManager:
    def __init__(
        self,
        ephemeral: KeyValueStore,
        durable: KeyValueStore,
        duration: int = SESSION_DURATION,
        login_timeout: float = LOGIN_TIMEOUT,
        lockout: LoginLockout | None = None,
        clock=time.time,
        on_expired: Callable[[str], Awaitable[None]] | None = None,
    ):
        self.ephemeral = ephemeral
        self.durable = durable
        self.duration = duration
        self.login_timeout = login_timeout
        self.clock = clock
        self.lockout = lockout or LoginLockout(durable, clock=clock)
        self.on_expired = on_expired

    async def login(self, signer: Signer, subject: str) -> Session:
        await self.lockout.check(subject)
        if not signer.available:
            raise no_signer_error()

        try:
            public_key = await asyncio.wait_for(signer.get_public_key(), self.login_timeout)
        except asyncio.TimeoutError:
            await self.lockout.record_failure(subject)
            raise AuthError("Login timed out. Please try again.", "LoginTimeout")
        except UpstreamError:
            raise
        except AuthError:
            await self.lockout.record_failure(subject)
            raise
        except Exception as e:
            await self.lockout.record_failure(subject)
            logger.error(f"Signer failed during login: {e}")
            raise AuthError("Login error. Please try again.", "LoginFailed") from e

        if not public_key or not is_valid_pubkey(public_key):
            await self.lockout.record_failure(subject)
            raise AuthError("Unable to retrieve Public Key", "LoginFailed")

        await self.lockout.reset(subject)
        previous = await self.durable.get(f"active:{public_key}")
        if previous:
            await self.ephemeral.remove(f"session:{previous}")
        session = Session(
            session_id=secrets.token_urlsafe(32),
            public_key=public_key,
            expiry=self.clock() + self.duration,
        )
        await self.ephemeral.set(
            f"session:{session.session_id}",
            {"public_key": public_key, "expiry": session.expiry},
        )
        await self.durable.set(f"active:{public_key}", session.session_id)
        logger.info(f"Session started for {public_key[:16]}…")
        return session

    async def _load(self, session_id: str | None) -> tuple[SessionState, Session | None]:
        if not session_id:
            return SessionState.ANONYMOUS, None
        data = await self.ephemeral.get(f"session:{session_id}")
        if not data:
            return SessionState.ANONYMOUS, None
        session = Session(session_id, data["public_key"], data["expiry"])
        if self.clock() >= session.expiry:
            return SessionState.EXPIRED, session
        active = await self.durable.get(f"active:{session.public_key}")
        if active != session_id:
            return SessionState.EXPIRED, session
        return SessionState.AUTHENTICATED, session

    async def state(self, session_id: str | None) -> SessionState:
        state, _ = await self._load(session_id)
        return state

    async def check(self, session_id: str | None, refresh: bool = True) -> Session:
        """Return the live session or raise ``AuthError``.

        Slides the expiry forward when ``refresh`` is set.
        """
        state, session = await self._load(session_id)
        if state is SessionState.ANONYMOUS:
            raise AuthError("Not authenticated", "NotAuthenticated")
        if state is SessionState.EXPIRED:
            hijacked = self.clock() < session.expiry
            await self.ephemeral.remove(f"session:{session_id}")
            await self.durable.compare_and_set(f"active:{session.public_key}", session_id, None)
            if hijacked:
                logger.warning(f"Session for {session.public_key[:16]}… replaced by a newer login")
                raise AuthError("Session was opened elsewhere. Please log in again.", "SessionHijacked")
            if self.on_expired is not None:
                await self.on_expired(session.public_key)
            raise AuthError("Session expired. Please log in again.", "SessionExpired")

        if refresh:
            session.expiry = self.clock() + self.duration
            await self.ephemeral.set(
                f"session:{session_id}",
                {"public_key": session.public_key, "expiry": session.expiry},
            )
        return session

    async def logout(self, session_id: str | None) -> None:
        if not session_id:
            return
        data = await self.ephemeral.get(f"session:{session_id}")
        await self.ephemeral.remove(f"session:{session_id}")
        if data:
            await self.durable.compare_and_set(f"active:{data['public_key']}", session_id, None)
            logger.info(f"Session ended for {data['public_key'][:16]}…")

    async def sweep(self) -> int:
        """Remove sessions whose expiry has passed."""
        now = self.clock()
        removed = 0
        for key in await self.ephemeral.keys("session:"):
            data = await self.ephemeral.get(key)
            if data and data["expiry"] > now:
                continue
            await self.ephemeral.remove(key)
            if data:
                session_id = key.split(":", 1)[1]
                await self.durable.compare_and_set(f"active:{data['public_key']}", session_id, None)
            removed += 1
        if removed:
            logger.info(f"Swept {removed} expired session(s)")
        return removed

    async def watch(self, session_id: str, interval: float = 1.0) -> SessionState:
        """Poll until the session is no longer authenticated."""
        while True:
            state = await self.state(session_id)
            if state is not SessionState.AUTHENTICATED:
                return state
            await asyncio.sleep(interval)
