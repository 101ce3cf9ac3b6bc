import logging
import time
import aiosqlite
from db.connection import get_db

logger = logging.getLogger(__name__)

_TICKET_COLUMNS = "id, public_key, subject, message, status, created_at, updated_at"


def _row_to_ticket(row: aiosqlite.Row) -> dict:
    return {
        "id": row["id"],
        "public_key": row["public_key"],
        "subject": row["subject"],
        "message": row["message"],
        "status": row["status"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


async def db_insert_ticket(public_key: str, subject: str, message: str) -> dict:
    db = await get_db()
    timestamp = int(time.time())
    try:
        cursor = await db.execute(
            """INSERT INTO support_tickets (public_key, subject, message, status, created_at, updated_at)
               VALUES (?, ?, ?, 'open', ?, ?)""",
            (public_key, subject, message, timestamp, timestamp),
        )
        await db.commit()
    except aiosqlite.Error:
        await db.rollback()
        raise
    logger.info(f"DB insert ticket id={cursor.lastrowid} public_key={public_key[:16]}…")
    return await db_get_ticket(cursor.lastrowid, public_key)


async def db_get_ticket(ticket_id: int, public_key: str) -> dict | None:
    db = await get_db()
    cursor = await db.execute(
        f"SELECT {_TICKET_COLUMNS} FROM support_tickets WHERE id = ? AND public_key = ?",
        (ticket_id, public_key),
    )
    row = await cursor.fetchone()
    return _row_to_ticket(row) if row else None


async def db_list_tickets(public_key: str, status: str | None = None) -> list[dict]:
    db = await get_db()
    if status is None:
        cursor = await db.execute(
            f"""SELECT {_TICKET_COLUMNS} FROM support_tickets WHERE public_key = ?
                ORDER BY created_at DESC, id DESC""",
            (public_key,),
        )
    else:
        cursor = await db.execute(
            f"""SELECT {_TICKET_COLUMNS} FROM support_tickets WHERE public_key = ? AND status = ?
                ORDER BY created_at DESC, id DESC""",
            (public_key, status),
        )
    return [_row_to_ticket(row) for row in await cursor.fetchall()]


async def db_update_ticket_status(ticket_id: int, public_key: str, status: str) -> int:
    db = await get_db()
    try:
        cursor = await db.execute(
            "UPDATE support_tickets SET status = ?, updated_at = ? WHERE id = ? AND public_key = ?",
            (status, int(time.time()), ticket_id, public_key),
        )
        await db.commit()
    except aiosqlite.Error:
        await db.rollback()
        raise
    return cursor.rowcount


async def db_list_faqs(category: str | None = None) -> list[dict]:
    db = await get_db()
    if category is None:
        cursor = await db.execute(
            "SELECT id, question, answer, category, sort_order FROM faqs ORDER BY category, sort_order, id"
        )
    else:
        cursor = await db.execute(
            """SELECT id, question, answer, category, sort_order FROM faqs WHERE category = ?
               ORDER BY sort_order, id""",
            (category,),
        )
    rows = await cursor.fetchall()
    return [
        {
            "id": row["id"],
            "question": row["question"],
            "answer": row["answer"],
            "category": row["category"],
            "order": row["sort_order"],
        }
        for row in rows
    ]
