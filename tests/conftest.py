import os
import time

os.environ.setdefault("DOMAIN", "example.com")
os.environ.setdefault("COOKIE_SECURE", "false")

import httpx
import pytest
import pytest_asyncio
from pynostr.key import PrivateKey  # type: ignore[import-untyped]

from core import security
from core.nostr import HTTP_AUTH_KIND
from core.signer import KeySigner
from db.connection import close_db, init_db
from main import app
from routers import nip05, notifications, profile, public, session, support, zaps

ALICE_KEY = "ab" * 32
BOB_KEY = "cd" * 32


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def db(tmp_path):
    await init_db(tmp_path / "test.sqlite")
    yield
    await close_db()


@pytest.fixture(autouse=True)
def reset_limits():
    for module in (public, nip05, profile, session, zaps, support, notifications):
        module.limiter.reset()
    security.ephemeral_store._data.clear()
    yield


@pytest_asyncio.fixture
async def client(db):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


@pytest.fixture
def key_signer():
    return KeySigner(PrivateKey().hex())


async def make_login_event(signer: KeySigner, created_at: int | None = None, kind: int = HTTP_AUTH_KIND) -> dict:
    return await signer.sign_event({
        "kind": kind,
        "content": "",
        "tags": [["u", "http://testserver/api/session/login"], ["method", "POST"]],
        "created_at": created_at or int(time.time()),
    })
