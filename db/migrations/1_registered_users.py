import aiosqlite


async def upgrade(db: aiosqlite.Connection) -> None:
    from db.migrations.manager import table_exists

    if not await table_exists(db, "registered_users"):
        await db.execute("""
            CREATE TABLE registered_users (
                id                   INTEGER PRIMARY KEY AUTOINCREMENT,
                username             TEXT    NOT NULL UNIQUE,
                public_key           TEXT    NOT NULL UNIQUE,
                name                 TEXT,
                lightning_address    TEXT,
                relays               TEXT,
                created_at           INTEGER NOT NULL,
                updated_at           INTEGER NOT NULL,
                metadata_updated_at  INTEGER,
                last_login           INTEGER
            )
        """)
        await db.execute("CREATE INDEX IF NOT EXISTS idx_users_created ON registered_users(created_at)")
