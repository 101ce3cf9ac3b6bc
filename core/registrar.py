"""Identity registration, lookup and NIP-05 resolution over ``registered_users``."""

import logging
import time
import aiosqlite

from config import DOMAIN
from core import notifications
from core.errors import ConflictError, NotFoundError, StorageError, ValidationError
from core.nostr import (
    display_key,
    filter_relays,
    is_valid_lightning_address,
    is_valid_pubkey,
    is_valid_relay_url,
)
from db.records import (
    db_count_records,
    db_delete_record,
    db_get_by_public_key,
    db_get_by_username,
    db_insert_record,
    db_public_key_taken,
    db_registration_timeline,
    db_update_profile,
    db_username_taken,
    get_all_records,
)

logger = logging.getLogger(__name__)

_TRACKED_FIELDS = ("username", "name", "lightning_address", "relays")


def _username_taken() -> ConflictError:
    return ConflictError("Username already taken", "UsernameTaken")


def _key_registered() -> ConflictError:
    return ConflictError("Public key already registered", "KeyAlreadyRegistered")


async def register(username: str | None, public_key: str | None) -> dict:
    if not username or not public_key:
        raise ValidationError("Username and public key are required", "MissingField")
    if not is_valid_pubkey(public_key):
        raise ValidationError("Invalid public key format", "InvalidKeyFormat")

    try:
        if await db_username_taken(username):
            raise _username_taken()
        if await db_public_key_taken(public_key):
            raise _key_registered()
        await db_insert_record(username, public_key)
    except aiosqlite.IntegrityError as e:
        # Lost a race between the checks and the insert.
        logger.warning(f"Uniqueness violation on insert for {username}: {e}")
        if "public_key" in str(e):
            raise _key_registered() from e
        raise _username_taken() from e
    except aiosqlite.Error as e:
        logger.error(f"Failed to save NIP-05 address for {username}: {e}")
        raise StorageError("Failed to save NIP-05 address") from e

    logger.info(f"Registered {username} -> {public_key[:16]}…")
    await notifications.notify(
        public_key, notifications.NEW_REGISTRATION, f"Registered {username}@{DOMAIN}"
    )
    return {"names": {username: public_key}}


async def lookup(name: str | None) -> dict:
    if not name:
        raise ValidationError("Name parameter is required", "MissingField")
    try:
        record = await db_get_by_username(name)
    except aiosqlite.Error as e:
        logger.error(f"Database error looking up {name}: {e}")
        raise StorageError("Database error") from e
    if record is None:
        raise NotFoundError("NIP-05 address not found")
    return {"names": {record["username"]: record["public_key"]}}


async def resolve(name: str | None = None) -> dict | None:
    """Build the ``nostr.json`` document.

    Returns ``None`` when a single name was asked for and is unknown.
    Storage errors propagate as ``StorageError``.
    """
    try:
        if name:
            record = await db_get_by_username(name)
            if record is None:
                return None
            records = [record]
        else:
            records = await get_all_records()
    except aiosqlite.Error as e:
        logger.error(f"Error fetching NIP-05 data: {e}")
        raise StorageError() from e

    names: dict[str, str] = {}
    relays: dict[str, list[str]] = {}
    for record in records:
        names[record["username"]] = record["public_key"]
        # A stored non-empty list is published even if nothing survives the filter.
        if isinstance(record["relays"], list) and record["relays"]:
            relays[record["public_key"]] = filter_relays(record["relays"])

    if name:
        response = {"names": names}
        if relays:
            response["relays"] = relays
        return response
    return {"names": names, "relays": relays}


def _clean_relays(relays: list[str] | None) -> list[str]:
    cleaned: list[str] = []
    for relay in relays or []:
        relay = relay.strip() if isinstance(relay, str) else relay
        if not relay:
            continue
        if not is_valid_relay_url(relay):
            raise ValidationError(f"Relay URL must start with wss:// or ws://: {relay}", "InvalidRelay")
        if relay not in cleaned:
            cleaned.append(relay)
    return cleaned


async def update_profile(
    public_key: str,
    username: str | None,
    name: str | None = None,
    lightning_address: str | None = None,
    relays: list[str] | None = None,
) -> dict:
    if not username:
        raise ValidationError("Please enter a username", "MissingField")
    lightning_address = (lightning_address or "").strip() or None
    if lightning_address and not is_valid_lightning_address(lightning_address):
        raise ValidationError("Invalid lightning address", "InvalidLightningAddress")
    cleaned_relays = _clean_relays(relays)

    try:
        previous = await db_get_by_public_key(public_key)
        if await db_username_taken(username, exclude_public_key=public_key):
            raise _username_taken()
        updated = await db_update_profile(
            public_key,
            username,
            (name or "").strip() or None,
            lightning_address,
            cleaned_relays,
        )
    except aiosqlite.IntegrityError as e:
        raise _username_taken() from e
    except aiosqlite.Error as e:
        logger.error(f"Update error for {public_key[:16]}…: {e}")
        raise StorageError("Failed to update profile") from e

    if updated == 0:
        raise NotFoundError("No user found with this public key")
    profile = await get_profile(public_key)
    await _notify_changes(public_key, previous, profile)
    return profile


async def _notify_changes(public_key: str, previous: dict | None, profile: dict) -> None:
    if previous is None:
        return
    before = {field: previous[field] for field in _TRACKED_FIELDS}
    before["relays"] = filter_relays(before["relays"])
    changed = [field for field in _TRACKED_FIELDS if before[field] != profile[field]]
    if not changed:
        return
    await notifications.notify(
        public_key,
        notifications.PROFILE_UPDATE,
        "Profile updated",
        {
            "updated_fields": changed,
            "old_values": {field: before[field] for field in changed},
            "new_values": {field: profile[field] for field in changed},
        },
    )


async def get_profile(public_key: str) -> dict:
    try:
        record = await db_get_by_public_key(public_key)
    except aiosqlite.Error as e:
        logger.error(f"Error fetching user data: {e}")
        raise StorageError("Error fetching user data") from e
    if record is None:
        raise NotFoundError("User data not found. Please register NIP-05 first.")
    return _public_view(record)


async def delete(public_key: str) -> bool:
    try:
        deleted = await db_delete_record(public_key)
    except aiosqlite.Error as e:
        logger.error(f"Delete error for {public_key[:16]}…: {e}")
        raise StorageError("Failed to delete user") from e
    if deleted:
        await notifications.clear(public_key)
    return deleted > 0


def _public_view(record: dict) -> dict:
    return {
        "username": record["username"],
        "public_key": record["public_key"],
        "npub": display_key(record["public_key"]),
        "name": record["name"],
        "lightning_address": record["lightning_address"],
        "relays": filter_relays(record["relays"]),
        "metadata_updated_at": record["metadata_updated_at"],
    }


async def list_members() -> list[dict]:
    try:
        records = await get_all_records()
    except aiosqlite.Error as e:
        logger.error(f"Error fetching users: {e}")
        raise StorageError("Error fetching user data") from e
    return [_public_view(record) for record in records]


async def stats() -> dict:
    try:
        total = await db_count_records()
        active = await db_count_records(since=int(time.time()) - 86400)
        timeline = await db_registration_timeline()
    except aiosqlite.Error as e:
        logger.error(f"Error fetching stats: {e}")
        raise StorageError("Failed to fetch statistics") from e

    last_week = timeline[-7:]
    growth_rate = sum(day["count"] for day in last_week) / 7
    return {
        "total_users": total,
        "active_users": active,
        "growth_rate": round(growth_rate, 2),
        "user_registration_timeline": timeline,
    }
