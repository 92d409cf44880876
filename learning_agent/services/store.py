import json
from typing import Any, Protocol

import aiosqlite

from learning_agent.config import settings
from learning_agent.database import get_async_conn, init_db

# Keys shared with the rest of the application.
LIVE_ALERTS_KEY = "live-alerts"
ACCESSIBILITY_MODE_KEY = "accessibility-mode"
PREFERRED_LANGUAGE_KEY = "preferred-language"
PREFERRED_DIALECT_KEY = "preferred-dialect"


def session_key(session_id: str) -> str:
    return f"lecture-session:{session_id}"


class KeyValueStore(Protocol):
    """Application-scoped key-value state. Values must be JSON-serialisable."""

    async def get(self, key: str, default: Any = None) -> Any: ...

    async def set(self, key: str, value: Any) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def keys(self, prefix: str = "") -> list[str]: ...

    async def close(self) -> None: ...


class MemoryStore:
    """Ephemeral store; nothing survives the process."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    async def get(self, key: str, default: Any = None) -> Any:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else default

    async def set(self, key: str, value: Any) -> None:
        # Serialise on write so callers never share mutable state with the store.
        self._data[key] = json.dumps(value)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self._data if k.startswith(prefix))

    async def close(self) -> None:
        return None


class SQLiteStore:
    """Key-value store backed by the ``kv`` table of the SQLite database."""

    def __init__(self, path: str | None = None) -> None:
        self.path = path or settings.database_path
        self._conn: aiosqlite.Connection | None = None

    async def open(self) -> "SQLiteStore":
        await init_db(self.path)
        self._conn = await get_async_conn(self.path)
        return self

    async def _connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            await self.open()
        return self._conn

    async def get(self, key: str, default: Any = None) -> Any:
        conn = await self._connection()
        row = await conn.execute("SELECT value FROM kv WHERE key = ?", (key,))
        found = await row.fetchone()
        return json.loads(found["value"]) if found else default

    async def set(self, key: str, value: Any) -> None:
        conn = await self._connection()
        await conn.execute(
            "INSERT INTO kv (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value, "
            "updated_at = CURRENT_TIMESTAMP",
            (key, json.dumps(value)),
        )
        await conn.commit()

    async def delete(self, key: str) -> None:
        conn = await self._connection()
        await conn.execute("DELETE FROM kv WHERE key = ?", (key,))
        await conn.commit()

    async def keys(self, prefix: str = "") -> list[str]:
        conn = await self._connection()
        rows = await conn.execute(
            "SELECT key FROM kv WHERE substr(key, 1, length(?)) = ? ORDER BY key",
            (prefix, prefix),
        )
        return [row["key"] for row in await rows.fetchall()]

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None


def create_store(backend: str | None = None) -> KeyValueStore:
    backend = (backend or settings.store_backend).lower()
    if backend == "memory":
        return MemoryStore()
    if backend == "sqlite":
        return SQLiteStore()
    raise ValueError(f"Unsupported store backend: {backend}")
