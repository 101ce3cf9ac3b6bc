import aiosqlite
import pytest

from conftest import ALICE_KEY, BOB_KEY, make_login_event
from core import notifications, registrar
from core.errors import AuthError, NotFoundError
from core.kvstore import MemoryStore
from core.session import SessionManager
from core.signer import KeySigner


@pytest.mark.asyncio
async def test_registration_notifies_owner(db):
    await registrar.register("alice", ALICE_KEY)
    feed = await notifications.feed(ALICE_KEY)
    assert feed["unread_count"] == 1
    [entry] = feed["notifications"]
    assert entry["type"] == notifications.NEW_REGISTRATION
    assert entry["message"] == "Registered alice@example.com"
    assert entry["read"] is False
    assert (await notifications.feed(BOB_KEY))["notifications"] == []


@pytest.mark.asyncio
async def test_profile_update_lists_changed_fields(db):
    await registrar.register("alice", ALICE_KEY)
    await registrar.update_profile(ALICE_KEY, "alice", name="Alice", relays=["wss://nos.lol"])
    latest = (await notifications.feed(ALICE_KEY))["notifications"][0]
    assert latest["type"] == notifications.PROFILE_UPDATE
    assert latest["details"] == {
        "updated_fields": ["name", "relays"],
        "old_values": {"name": None, "relays": []},
        "new_values": {"name": "Alice", "relays": ["wss://nos.lol"]},
    }

    await registrar.update_profile(ALICE_KEY, "alice", name="Alice", relays=["wss://nos.lol"])
    assert len((await notifications.feed(ALICE_KEY))["notifications"]) == 2


@pytest.mark.asyncio
async def test_session_expiry_notifies(db, clock, key_signer):
    manager = SessionManager(
        MemoryStore(), MemoryStore(), clock=clock, on_expired=notifications.notify_session_expired
    )
    session = await manager.login(key_signer, "1.2.3.4")
    clock.advance(manager.duration)
    with pytest.raises(AuthError):
        await manager.check(session.session_id)
    [entry] = (await notifications.feed(session.public_key))["notifications"]
    assert entry["type"] == notifications.SESSION_EXPIRY


@pytest.mark.asyncio
async def test_mark_read_and_clear(db):
    for message in ("one", "two", "three"):
        await notifications.notify(ALICE_KEY, notifications.PROFILE_UPDATE, message)
    first = (await notifications.feed(ALICE_KEY))["notifications"][-1]

    await notifications.mark_read(ALICE_KEY, first["id"])
    feed = await notifications.feed(ALICE_KEY, unread_only=True)
    assert feed["unread_count"] == 2
    assert [n["message"] for n in feed["notifications"]] == ["three", "two"]

    with pytest.raises(NotFoundError):
        await notifications.mark_read(BOB_KEY, first["id"])

    assert await notifications.mark_all_read(ALICE_KEY) == 2
    assert (await notifications.feed(ALICE_KEY))["unread_count"] == 0
    assert await notifications.clear(ALICE_KEY) == 3
    assert (await notifications.feed(ALICE_KEY))["notifications"] == []


@pytest.mark.asyncio
async def test_notify_failure_does_not_fail_registration(db, monkeypatch):
    async def broken(*args, **kwargs):
        raise aiosqlite.OperationalError("database is locked")

    monkeypatch.setattr(notifications, "db_insert_notification", broken)
    assert await registrar.register("alice", ALICE_KEY) == {"names": {"alice": ALICE_KEY}}


@pytest.mark.asyncio
async def test_delete_clears_notifications(db):
    await registrar.register("alice", ALICE_KEY)
    await registrar.delete(ALICE_KEY)
    assert (await notifications.feed(ALICE_KEY))["unread_count"] == 0


@pytest.mark.asyncio
async def test_notification_api(client, key_signer: KeySigner):
    pk = await key_signer.get_public_key()
    response = await client.get("/api/notifications")
    assert response.status_code == 401

    await client.post("/api/nip05", json={"username": "alice", "publicKey": pk})
    await client.post("/api/session/login", json={"event": await make_login_event(key_signer)})
    await client.put("/api/profile", json={"username": "alice", "name": "Alice"})

    response = await client.get("/api/notifications")
    assert response.status_code == 200
    body = response.json()
    assert body["unread_count"] == 2
    newest = body["notifications"][0]
    assert newest["details"]["updated_fields"] == ["name"]

    response = await client.post(f"/api/notifications/{newest['id']}/read")
    assert response.json() == {"success": True}
    response = await client.get("/api/notifications", params={"unread": "true"})
    assert response.json()["unread_count"] == 1

    response = await client.post("/api/notifications/read")
    assert response.json() == {"updated": 1}
    response = await client.post("/api/notifications/9999/read")
    assert response.status_code == 404

    response = await client.delete("/api/notifications")
    assert response.json() == {"deleted": 2}
