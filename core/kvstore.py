import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any

from db.connection import get_db

logger = logging.getLogger(__name__)

_MISSING = object()


class KeyValueStore(ABC):
    """Namespaced key-value store holding JSON-serialisable values.

    ``lock`` serialises read-modify-write sequences issued by callers.
    """

    def __init__(self, namespace: str):
        self.namespace = namespace
        self.lock = asyncio.Lock()

    @abstractmethod
    async def get(self, key: str, default: Any = None) -> Any: ...

    @abstractmethod
    async def set(self, key: str, value: Any) -> None: ...

    @abstractmethod
    async def remove(self, key: str) -> None: ...

    @abstractmethod
    async def keys(self, prefix: str = "") -> list[str]: ...

    async def compare_and_set(self, key: str, expected: Any, value: Any) -> bool:
        """Write ``value`` only if the current value equals ``expected``.

        ``value=None`` removes the key.
        """
        async with self.lock:
            current = await self.get(key)
            if current != expected:
                return False
            if value is None:
                await self.remove(key)
            else:
                await self.set(key, value)
            return True


class MemoryStore(KeyValueStore):
    def __init__(self, namespace: str = "memory"):
        super().__init__(namespace)
        self._data: dict[str, str] = {}

    async def get(self, key: str, default: Any = None) -> Any:
        raw = self._data.get(key, _MISSING)
        if raw is _MISSING:
            return default
        return json.loads(raw)

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    async def keys(self, prefix: str = "") -> list[str]:
        return [key for key in self._data if key.startswith(prefix)]

    def __len__(self) -> int:
        return len(self._data)


class SqliteStore(KeyValueStore):
    """Durable store backed by the ``kv_store`` table."""

    async def get(self, key: str, default: Any = None) -> Any:
        db = await get_db()
        cursor = await db.execute(
            "SELECT value FROM kv_store WHERE namespace = ? AND key = ?",
            (self.namespace, key),
        )
        row = await cursor.fetchone()
        if row is None:
            return default
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError:
            logger.error(f"Corrupt kv_store entry {self.namespace}/{key}, ignoring")
            return default

    async def set(self, key: str, value: Any) -> None:
        db = await get_db()
        await db.execute(
            """INSERT INTO kv_store (namespace, key, value, updated_at) VALUES (?, ?, ?, ?)
               ON CONFLICT(namespace, key) DO UPDATE SET value = excluded.value,
                                                         updated_at = excluded.updated_at""",
            (self.namespace, key, json.dumps(value), int(time.time())),
        )
        await db.commit()

    async def remove(self, key: str) -> None:
        db = await get_db()
        await db.execute(
            "DELETE FROM kv_store WHERE namespace = ? AND key = ?", (self.namespace, key)
        )
        await db.commit()

    async def keys(self, prefix: str = "") -> list[str]:
        db = await get_db()
        cursor = await db.execute(
            "SELECT key FROM kv_store WHERE namespace = ? AND substr(key, 1, ?) = ?",
            (self.namespace, len(prefix), prefix),
        )
        return [row["key"] for row in await cursor.fetchall()]
