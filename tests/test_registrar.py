import json

import aiosqlite
import pytest

from core import registrar
from core.errors import ConflictError, NotFoundError, StorageError, ValidationError
from conftest import ALICE_KEY, BOB_KEY
from db.connection import get_db


@pytest.mark.asyncio
async def test_register_returns_names_shape(db):
    result = await registrar.register("alice", ALICE_KEY)
    assert result == {"names": {"alice": ALICE_KEY}}


@pytest.mark.asyncio
@pytest.mark.parametrize("username,key", [("", ALICE_KEY), ("alice", ""), (None, ALICE_KEY), ("alice", None)])
async def test_register_missing_field(db, username, key):
    with pytest.raises(ValidationError) as exc:
        await registrar.register(username, key)
    assert exc.value.code == "MissingField"


@pytest.mark.asyncio
@pytest.mark.parametrize("key", [ALICE_KEY[:63], ALICE_KEY.upper(), "npub1" + "q" * 58, ALICE_KEY + "0"])
async def test_register_invalid_key(db, key):
    with pytest.raises(ValidationError) as exc:
        await registrar.register("alice", key)
    assert exc.value.code == "InvalidKeyFormat"


@pytest.mark.asyncio
async def test_duplicate_username_rejected(db):
    await registrar.register("alice", ALICE_KEY)
    with pytest.raises(ConflictError) as exc:
        await registrar.register("alice", BOB_KEY)
    assert exc.value.code == "UsernameTaken"


@pytest.mark.asyncio
async def test_duplicate_key_rejected(db):
    await registrar.register("alice", ALICE_KEY)
    with pytest.raises(ConflictError) as exc:
        await registrar.register("alice2", ALICE_KEY)
    assert exc.value.code == "KeyAlreadyRegistered"


@pytest.mark.asyncio
async def test_username_is_case_sensitive(db):
    await registrar.register("alice", ALICE_KEY)
    await registrar.register("Alice", BOB_KEY)
    assert await registrar.resolve("Alice") == {"names": {"Alice": BOB_KEY}}


@pytest.mark.asyncio
async def test_invalid_key_checked_before_uniqueness(db):
    await registrar.register("alice", ALICE_KEY)
    with pytest.raises(ValidationError) as exc:
        await registrar.register("alice", "xyz")
    assert exc.value.code == "InvalidKeyFormat"


@pytest.mark.asyncio
async def test_insert_race_maps_to_conflict(db, monkeypatch):
    async def not_taken(*args, **kwargs):
        return False

    monkeypatch.setattr(registrar, "db_username_taken", not_taken)
    await registrar.register("alice", ALICE_KEY)
    with pytest.raises(ConflictError) as exc:
        await registrar.register("alice", BOB_KEY)
    assert exc.value.code == "UsernameTaken"


@pytest.mark.asyncio
async def test_storage_failure_is_opaque(db, monkeypatch):
    async def broken(*args, **kwargs):
        raise aiosqlite.OperationalError("disk I/O error")

    monkeypatch.setattr(registrar, "db_insert_record", broken)
    with pytest.raises(StorageError) as exc:
        await registrar.register("alice", ALICE_KEY)
    assert "disk" not in exc.value.message


@pytest.mark.asyncio
async def test_resolve_single_name(db):
    await registrar.register("alice", ALICE_KEY)
    await registrar.register("bob", BOB_KEY)
    assert await registrar.resolve("alice") == {"names": {"alice": ALICE_KEY}}
    assert await registrar.resolve("carol") is None


@pytest.mark.asyncio
async def test_resolve_single_name_with_relays(db):
    await registrar.register("alice", ALICE_KEY)
    await registrar.update_profile(ALICE_KEY, "alice", relays=["wss://nos.lol", "", "wss://relay.damus.io"])
    assert await registrar.resolve("alice") == {
        "names": {"alice": ALICE_KEY},
        "relays": {ALICE_KEY: ["wss://nos.lol", "wss://relay.damus.io"]},
    }


@pytest.mark.asyncio
async def test_resolve_all_names(db):
    await registrar.register("alice", ALICE_KEY)
    await registrar.register("bob", BOB_KEY)
    await registrar.update_profile(BOB_KEY, "bob", relays=["wss://nos.lol"])
    document = await registrar.resolve()
    assert set(document["names"]) == {"alice", "bob"}
    assert document["relays"] == {BOB_KEY: ["wss://nos.lol"]}


@pytest.mark.asyncio
async def test_resolve_keeps_key_when_no_relay_survives_filter(db):
    await registrar.register("alice", ALICE_KEY)
    db_conn = await get_db()
    await db_conn.execute(
        "UPDATE registered_users SET relays = ? WHERE public_key = ?",
        (json.dumps(["", 5, None]), ALICE_KEY),
    )
    await db_conn.commit()

    assert await registrar.resolve("alice") == {"names": {"alice": ALICE_KEY}, "relays": {ALICE_KEY: []}}
    assert (await registrar.resolve())["relays"] == {ALICE_KEY: []}


@pytest.mark.asyncio
async def test_resolve_empty_registry(db):
    assert await registrar.resolve() == {"names": {}, "relays": {}}


@pytest.mark.asyncio
async def test_register_resolve_delete_round_trip(db):
    await registrar.register("alice", ALICE_KEY)
    assert (await registrar.resolve("alice"))["names"]["alice"] == ALICE_KEY
    assert await registrar.delete(ALICE_KEY) is True
    assert await registrar.resolve("alice") is None


@pytest.mark.asyncio
async def test_delete_is_idempotent(db):
    assert await registrar.delete(ALICE_KEY) is False


@pytest.mark.asyncio
async def test_lookup(db):
    await registrar.register("alice", ALICE_KEY)
    assert await registrar.lookup("alice") == {"names": {"alice": ALICE_KEY}}
    with pytest.raises(NotFoundError):
        await registrar.lookup("bob")
    with pytest.raises(ValidationError):
        await registrar.lookup("")


@pytest.mark.asyncio
async def test_update_profile_keeps_own_username(db):
    await registrar.register("alice", ALICE_KEY)
    profile = await registrar.update_profile(
        ALICE_KEY, "alice", name="Alice", lightning_address="alice@getalby.com"
    )
    assert profile["name"] == "Alice"
    assert profile["lightning_address"] == "alice@getalby.com"
    assert profile["metadata_updated_at"] is not None


@pytest.mark.asyncio
async def test_update_profile_rejects_someone_elses_username(db):
    await registrar.register("alice", ALICE_KEY)
    await registrar.register("bob", BOB_KEY)
    with pytest.raises(ConflictError) as exc:
        await registrar.update_profile(BOB_KEY, "alice")
    assert exc.value.code == "UsernameTaken"


@pytest.mark.asyncio
async def test_update_profile_can_clear_fields(db):
    await registrar.register("alice", ALICE_KEY)
    await registrar.update_profile(
        ALICE_KEY, "alice", lightning_address="alice@getalby.com", relays=["wss://nos.lol"]
    )
    profile = await registrar.update_profile(ALICE_KEY, "alice", lightning_address="", relays=[])
    assert profile["lightning_address"] is None
    assert profile["relays"] == []
    assert await registrar.resolve("alice") == {"names": {"alice": ALICE_KEY}}


@pytest.mark.asyncio
async def test_update_profile_dedupes_relays(db):
    await registrar.register("alice", ALICE_KEY)
    profile = await registrar.update_profile(
        ALICE_KEY, "alice", relays=["wss://nos.lol", "wss://nos.lol", "wss://relay.damus.io"]
    )
    assert profile["relays"] == ["wss://nos.lol", "wss://relay.damus.io"]


@pytest.mark.asyncio
async def test_update_profile_validates_inputs(db):
    await registrar.register("alice", ALICE_KEY)
    with pytest.raises(ValidationError) as exc:
        await registrar.update_profile(ALICE_KEY, "alice", relays=["https://nos.lol"])
    assert exc.value.code == "InvalidRelay"
    with pytest.raises(ValidationError) as exc:
        await registrar.update_profile(ALICE_KEY, "alice", lightning_address="not-an-address")
    assert exc.value.code == "InvalidLightningAddress"
    with pytest.raises(ValidationError) as exc:
        await registrar.update_profile(ALICE_KEY, "")
    assert exc.value.code == "MissingField"


@pytest.mark.asyncio
async def test_update_profile_unknown_key(db):
    with pytest.raises(NotFoundError):
        await registrar.update_profile(ALICE_KEY, "alice")


@pytest.mark.asyncio
async def test_list_members_includes_npub(db):
    await registrar.register("alice", ALICE_KEY)
    members = await registrar.list_members()
    assert len(members) == 1
    assert members[0]["username"] == "alice"
    assert members[0]["npub"].startswith("npub1")


@pytest.mark.asyncio
async def test_stats(db):
    await registrar.register("alice", ALICE_KEY)
    await registrar.register("bob", BOB_KEY)
    stats = await registrar.stats()
    assert stats["total_users"] == 2
    assert stats["active_users"] == 0
    assert sum(day["count"] for day in stats["user_registration_timeline"]) == 2
