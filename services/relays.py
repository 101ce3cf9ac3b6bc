import asyncio
import logging
import time
from datetime import datetime, timezone

import websockets

from config import POPULAR_RELAYS, RELAY_TIMEOUT
from core.errors import ValidationError
from core.nostr import is_valid_relay_url

logger = logging.getLogger(__name__)


def validate_relay_url(url: str) -> str:
    url = (url or "").strip()
    if not is_valid_relay_url(url):
        raise ValidationError("Relay URL must start with wss:// or ws://", "InvalidRelay")
    return url


async def _open_and_close(url: str) -> None:
    async with websockets.connect(url, open_timeout=None):
        pass


async def check_relay(url: str, timeout: float = RELAY_TIMEOUT) -> dict:
    """Classify a relay as online if a websocket opens within ``timeout``."""
    started = time.monotonic()
    try:
        await asyncio.wait_for(_open_and_close(url), timeout)
        status = "online"
        response_time = int((time.monotonic() - started) * 1000)
    except Exception as e:
        logger.info(f"Relay {url} offline: {e.__class__.__name__}")
        status = "offline"
        response_time = 0
    return {
        "url": url,
        "status": status,
        "response_time": response_time,
        "last_checked": datetime.now(timezone.utc).isoformat(),
    }


async def check_relays(urls: list[str] | None = None, timeout: float = RELAY_TIMEOUT) -> list[dict]:
    """Check relays concurrently; each one has its own timeout."""
    urls = urls or POPULAR_RELAYS
    return list(await asyncio.gather(*(check_relay(url, timeout) for url in urls)))


def online_relays(statuses: list[dict]) -> list[dict]:
    return [s for s in statuses if s["status"] == "online"]


def fastest_relays(statuses: list[dict], count: int = 3) -> list[dict]:
    return sorted(online_relays(statuses), key=lambda s: s["response_time"])[:count]
