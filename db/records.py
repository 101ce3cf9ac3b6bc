import json
import logging
import time
import aiosqlite
from db.connection import get_db

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id, username, public_key, name, lightning_address, relays, "
    "created_at, updated_at, metadata_updated_at, last_login"
)


def _decode_relays(raw: str | None):
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Discarding undecodable relays column")
        return None


def _row_to_record(row: aiosqlite.Row) -> dict:
    return {
        "id": row["id"],
        "username": row["username"],
        "public_key": row["public_key"],
        "name": row["name"],
        "lightning_address": row["lightning_address"],
        "relays": _decode_relays(row["relays"]),
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
        "metadata_updated_at": row["metadata_updated_at"],
        "last_login": row["last_login"],
    }


async def get_all_records() -> list[dict]:
    db = await get_db()
    cursor = await db.execute(f"SELECT {_COLUMNS} FROM registered_users ORDER BY id")
    rows = await cursor.fetchall()
    return [_row_to_record(row) for row in rows]


async def db_get_by_username(username: str) -> dict | None:
    db = await get_db()
    cursor = await db.execute(
        f"SELECT {_COLUMNS} FROM registered_users WHERE username = ?", (username,)
    )
    row = await cursor.fetchone()
    return _row_to_record(row) if row else None


async def db_get_by_public_key(public_key: str) -> dict | None:
    db = await get_db()
    cursor = await db.execute(
        f"SELECT {_COLUMNS} FROM registered_users WHERE public_key = ?", (public_key,)
    )
    row = await cursor.fetchone()
    return _row_to_record(row) if row else None


async def db_username_taken(username: str, exclude_public_key: str | None = None) -> bool:
    db = await get_db()
    if exclude_public_key is None:
        cursor = await db.execute(
            "SELECT 1 FROM registered_users WHERE username = ?", (username,)
        )
    else:
        cursor = await db.execute(
            "SELECT 1 FROM registered_users WHERE username = ? AND public_key != ?",
            (username, exclude_public_key),
        )
    return (await cursor.fetchone()) is not None


async def db_public_key_taken(public_key: str) -> bool:
    db = await get_db()
    cursor = await db.execute(
        "SELECT 1 FROM registered_users WHERE public_key = ?", (public_key,)
    )
    return (await cursor.fetchone()) is not None


async def db_insert_record(username: str, public_key: str) -> int:
    """Insert a new identity. Lets ``aiosqlite.IntegrityError`` propagate."""
    db = await get_db()
    timestamp = int(time.time())
    try:
        cursor = await db.execute(
            """INSERT INTO registered_users (username, public_key, created_at, updated_at)
               VALUES (?, ?, ?, ?)""",
            (username, public_key, timestamp, timestamp),
        )
        await db.commit()
    except aiosqlite.Error:
        await db.rollback()
        raise
    logger.info(f"DB insert record id={cursor.lastrowid} username={username}")
    return cursor.lastrowid


async def db_update_profile(
    public_key: str,
    username: str,
    name: str | None,
    lightning_address: str | None,
    relays: list[str] | None,
) -> int:
    db = await get_db()
    timestamp = int(time.time())
    try:
        cursor = await db.execute(
            """UPDATE registered_users
               SET username = ?, name = ?, lightning_address = ?, relays = ?,
                   updated_at = ?, metadata_updated_at = ?
               WHERE public_key = ?""",
            (
                username,
                name,
                lightning_address,
                json.dumps(relays) if relays else None,
                timestamp,
                timestamp,
                public_key,
            ),
        )
        await db.commit()
    except aiosqlite.Error:
        await db.rollback()
        raise
    if cursor.rowcount > 0:
        logger.info(f"DB updated profile for public_key={public_key[:16]}…")
    return cursor.rowcount


async def db_touch_last_login(public_key: str) -> None:
    db = await get_db()
    await db.execute(
        "UPDATE registered_users SET last_login = ? WHERE public_key = ?",
        (int(time.time()), public_key),
    )
    await db.commit()


async def db_delete_record(public_key: str) -> int:
    db = await get_db()
    cursor = await db.execute("DELETE FROM registered_users WHERE public_key = ?", (public_key,))
    await db.commit()
    if cursor.rowcount > 0:
        logger.info(f"DB deleted record public_key={public_key[:16]}…")
    return cursor.rowcount


async def db_count_records(since: int | None = None) -> int:
    db = await get_db()
    if since is None:
        cursor = await db.execute("SELECT COUNT(*) AS total FROM registered_users")
    else:
        cursor = await db.execute(
            "SELECT COUNT(*) AS total FROM registered_users WHERE last_login >= ?", (since,)
        )
    return (await cursor.fetchone())["total"]


async def db_registration_timeline() -> list[dict]:
    db = await get_db()
    cursor = await db.execute(
        """SELECT date(created_at, 'unixepoch') AS day, COUNT(*) AS count
           FROM registered_users GROUP BY day ORDER BY day"""
    )
    rows = await cursor.fetchall()
    return [{"date": row["day"], "count": row["count"]} for row in rows]
