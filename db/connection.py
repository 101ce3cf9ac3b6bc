import logging
from pathlib import Path
import aiosqlite
from config import DB_PATH
from db.migrations.manager import init_schema_version, run_migrations

logger = logging.getLogger(__name__)

_db_pool: aiosqlite.Connection | None = None
_db_path: Path = DB_PATH


async def get_db() -> aiosqlite.Connection:
    global _db_pool
    if _db_pool is None:
        _db_pool = await aiosqlite.connect(_db_path)
        _db_pool.row_factory = aiosqlite.Row
        await _db_pool.execute("PRAGMA journal_mode=WAL")
        await _db_pool.execute("PRAGMA foreign_keys=ON")
    return _db_pool


async def init_db(db_path: Path | None = None) -> None:
    global _db_path
    if db_path is not None and Path(db_path) != _db_path:
        await close_db()
        _db_path = Path(db_path)

    db = await get_db()
    await init_schema_version(db)
    await run_migrations(db)
    logger.info(f"Database initialized at {_db_path}")


async def close_db() -> None:
    global _db_pool
    if _db_pool is not None:
        await _db_pool.close()
        _db_pool = None
