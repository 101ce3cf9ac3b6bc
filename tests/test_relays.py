import asyncio

import pytest

import services.relays as relays_svc
from core.errors import ValidationError
from services.relays import check_relay, check_relays, fastest_relays, online_relays, validate_relay_url


class FakeConnection:
    def __init__(self, delay):
        self.delay = delay

    async def __aenter__(self):
        if self.delay is None:
            raise OSError("connection refused")
        await asyncio.sleep(self.delay)
        return self

    async def __aexit__(self, *exc):
        return False


@pytest.fixture
def fake_relays(monkeypatch):
    delays = {}

    def connect(url, **kwargs):
        return FakeConnection(delays[url])

    monkeypatch.setattr(relays_svc.websockets, "connect", connect)
    return delays


@pytest.mark.asyncio
async def test_online_relay(fake_relays):
    fake_relays["wss://up"] = 0
    status = await check_relay("wss://up", timeout=1)
    assert status["url"] == "wss://up"
    assert status["status"] == "online"
    assert status["response_time"] >= 0
    assert status["last_checked"]


@pytest.mark.asyncio
async def test_refused_relay_is_offline(fake_relays):
    fake_relays["wss://down"] = None
    status = await check_relay("wss://down", timeout=1)
    assert status["status"] == "offline"
    assert status["response_time"] == 0


@pytest.mark.asyncio
async def test_slow_relay_times_out(fake_relays):
    fake_relays["wss://slow"] = 5
    status = await check_relay("wss://slow", timeout=0.05)
    assert status["status"] == "offline"


@pytest.mark.asyncio
async def test_check_relays_keeps_order(fake_relays):
    fake_relays.update({"wss://a": 0, "wss://b": None, "wss://c": 0})
    statuses = await check_relays(["wss://a", "wss://b", "wss://c"], timeout=1)
    assert [s["url"] for s in statuses] == ["wss://a", "wss://b", "wss://c"]
    assert [s["status"] for s in statuses] == ["online", "offline", "online"]


@pytest.mark.asyncio
async def test_check_relays_defaults_to_popular(fake_relays, monkeypatch):
    monkeypatch.setattr(relays_svc, "POPULAR_RELAYS", ["wss://one", "wss://two"])
    fake_relays.update({"wss://one": 0, "wss://two": 0})
    statuses = await check_relays(timeout=1)
    assert [s["url"] for s in statuses] == ["wss://one", "wss://two"]


def test_fastest_relays_picks_online_by_response_time():
    statuses = [
        {"url": "wss://a", "status": "online", "response_time": 300},
        {"url": "wss://b", "status": "offline", "response_time": 0},
        {"url": "wss://c", "status": "online", "response_time": 100},
        {"url": "wss://d", "status": "online", "response_time": 200},
        {"url": "wss://e", "status": "online", "response_time": 400},
    ]
    assert [s["url"] for s in online_relays(statuses)] == ["wss://a", "wss://c", "wss://d", "wss://e"]
    assert [s["url"] for s in fastest_relays(statuses)] == ["wss://c", "wss://d", "wss://a"]
    assert [s["url"] for s in fastest_relays(statuses, count=1)] == ["wss://c"]


def test_validate_relay_url():
    assert validate_relay_url(" wss://nos.lol ") == "wss://nos.lol"
    with pytest.raises(ValidationError) as exc:
        validate_relay_url("https://nos.lol")
    assert exc.value.code == "InvalidRelay"
    with pytest.raises(ValidationError):
        validate_relay_url("")


@pytest.mark.asyncio
async def test_relay_status_endpoint(client, fake_relays):
    fake_relays.update({"wss://a": 0, "wss://b": None})
    response = await client.get("/api/relays/status", params=[("url", "wss://a"), ("url", "wss://b")])
    assert response.status_code == 200
    body = response.json()
    assert [r["status"] for r in body["relays"]] == ["online", "offline"]
    assert [r["url"] for r in body["fastest"]] == ["wss://a"]


@pytest.mark.asyncio
async def test_relay_status_rejects_bad_url(client):
    response = await client.get("/api/relays/status", params={"url": "http://nope"})
    assert response.status_code == 400
    assert response.json()["code"] == "InvalidRelay"
