import aiosqlite


async def upgrade(db: aiosqlite.Connection) -> None:
    from db.migrations.manager import table_exists

    if not await table_exists(db, "kv_store"):
        await db.execute("""
            CREATE TABLE kv_store (
                namespace   TEXT    NOT NULL,
                key         TEXT    NOT NULL,
                value       TEXT    NOT NULL,
                updated_at  INTEGER NOT NULL,
                PRIMARY KEY (namespace, key)
            )
        """)
