import asyncio
import logging
from fastapi import Request, Response

from config import COOKIE_SECURE, SESSION_DURATION, SWEEP_INTERVAL
from core.kvstore import MemoryStore, SqliteStore
from core.notifications import notify_session_expired
from core.session import LoginLockout, RateLimiter, Session, SessionManager

logger = logging.getLogger(__name__)

SESSION_COOKIE = "session_token"

ephemeral_store = MemoryStore("sessions")
durable_store = SqliteStore("durable")
login_lockout = LoginLockout(durable_store)
session_manager = SessionManager(
    ephemeral_store,
    durable_store,
    lockout=login_lockout,
    on_expired=notify_session_expired,
)
action_limiter = RateLimiter(durable_store)


def client_id(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def set_session_cookie(response: Response, session: Session) -> None:
    response.set_cookie(
        key=SESSION_COOKIE,
        value=session.session_id,
        httponly=True,
        secure=COOKIE_SECURE,
        samesite="strict" if COOKIE_SECURE else "lax",
        max_age=SESSION_DURATION,
        path="/",
    )


async def get_current_session(request: Request, response: Response) -> Session:
    """FastAPI dependency: the caller's live session, refreshed.

    Re-issues the cookie so its lifetime slides with the session. Raises
    ``AuthError`` when there is none, which the app renders as 401.
    """
    session = await session_manager.check(request.cookies.get(SESSION_COOKIE))
    set_session_cookie(response, session)
    return session


async def sweep_expired() -> None:
    await session_manager.sweep()
    await action_limiter.sweep()
    await login_lockout.sweep()


async def schedule_sweep(interval: float = SWEEP_INTERVAL) -> None:
    """Periodically drop expired sessions and stale counters."""
    while True:
        await asyncio.sleep(interval)
        try:
            await sweep_expired()
        except Exception as e:
            logger.error(f"Error sweeping expired session state: {e}")
