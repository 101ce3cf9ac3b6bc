import json
import logging
import time
import aiosqlite
from db.connection import get_db

logger = logging.getLogger(__name__)


def _row_to_notification(row: aiosqlite.Row) -> dict:
    return {
        "id": row["id"],
        "type": row["type"],
        "message": row["message"],
        "details": json.loads(row["details"]) if row["details"] else None,
        "read": bool(row["read"]),
        "timestamp": row["created_at"],
    }


async def db_insert_notification(public_key: str, type_: str, message: str, details: dict | None) -> int:
    db = await get_db()
    cursor = await db.execute(
        """INSERT INTO notifications (public_key, type, message, details, read, created_at)
           VALUES (?, ?, ?, ?, 0, ?)""",
        (public_key, type_, message, json.dumps(details) if details else None, int(time.time())),
    )
    await db.commit()
    return cursor.lastrowid


async def db_list_notifications(public_key: str, unread_only: bool = False) -> list[dict]:
    db = await get_db()
    query = "SELECT id, type, message, details, read, created_at FROM notifications WHERE public_key = ?"
    if unread_only:
        query += " AND read = 0"
    cursor = await db.execute(query + " ORDER BY created_at DESC, id DESC", (public_key,))
    return [_row_to_notification(row) for row in await cursor.fetchall()]


async def db_count_unread(public_key: str) -> int:
    db = await get_db()
    cursor = await db.execute(
        "SELECT COUNT(*) AS total FROM notifications WHERE public_key = ? AND read = 0", (public_key,)
    )
    return (await cursor.fetchone())["total"]


async def db_mark_read(public_key: str, notification_id: int | None = None) -> int:
    db = await get_db()
    if notification_id is None:
        cursor = await db.execute(
            "UPDATE notifications SET read = 1 WHERE public_key = ? AND read = 0", (public_key,)
        )
    else:
        cursor = await db.execute(
            "UPDATE notifications SET read = 1 WHERE public_key = ? AND id = ?",
            (public_key, notification_id),
        )
    await db.commit()
    return cursor.rowcount


async def db_clear_notifications(public_key: str) -> int:
    db = await get_db()
    cursor = await db.execute("DELETE FROM notifications WHERE public_key = ?", (public_key,))
    await db.commit()
    if cursor.rowcount > 0:
        logger.info(f"DB cleared {cursor.rowcount} notification(s) for public_key={public_key[:16]}…")
    return cursor.rowcount
