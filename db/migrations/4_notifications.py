import aiosqlite


async def upgrade(db: aiosqlite.Connection) -> None:
    from db.migrations.manager import table_exists

    if not await table_exists(db, "notifications"):
        await db.execute("""
            CREATE TABLE notifications (
                id          INTEGER PRIMARY KEY AUTOINCREMENT,
                public_key  TEXT    NOT NULL,
                type        TEXT    NOT NULL,
                message     TEXT    NOT NULL,
                details     TEXT,
                read        INTEGER NOT NULL DEFAULT 0,
                created_at  INTEGER NOT NULL
            )
        """)
        await db.execute(
            "CREATE INDEX idx_notifications_public_key ON notifications(public_key, created_at)"
        )
