"""Key-value repository backing persisted preferences."""

from pathlib import Path
from typing import Dict, Optional, Union

import aiosqlite
import structlog

from breathwork.core.exceptions import StorageError

log = structlog.get_logger(__name__)


class SettingsRepository:
    """SQLite implementation of the KeyValueStore protocol.

    Each call opens its own connection, like the other repositories; the
    database must have been initialised with init_database().
    """

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = str(db_path)

    async def get(self, key: str) -> Optional[str]:
        try:
            async with aiosqlite.connect(self.db_path) as db:
                cursor = await db.execute(
                    "SELECT value FROM settings_kv WHERE key = ?", (key,)
                )
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            log.error("settings_read_failed", key=key, error=str(e))
            raise StorageError(f"Failed to read {key}", {"key": key, "error": str(e)}) from e
        return row[0] if row else None

    async def set(self, key: str, value: str) -> None:
        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute(
                    "INSERT INTO settings_kv (key, value, updated_at) "
                    "VALUES (?, ?, datetime('now')) "
                    "ON CONFLICT(key) DO UPDATE SET "
                    "value = excluded.value, updated_at = excluded.updated_at",
                    (key, value),
                )
                await db.commit()
        except aiosqlite.Error as e:
            log.error("settings_write_failed", key=key, error=str(e))
            raise StorageError(f"Failed to write {key}", {"key": key, "error": str(e)}) from e
        log.debug("settings_written", key=key, size=len(value))

    async def delete(self, key: str) -> bool:
        try:
            async with aiosqlite.connect(self.db_path) as db:
                cursor = await db.execute("DELETE FROM settings_kv WHERE key = ?", (key,))
                await db.commit()
                deleted = cursor.rowcount > 0
        except aiosqlite.Error as e:
            log.error("settings_delete_failed", key=key, error=str(e))
            raise StorageError(f"Failed to delete {key}", {"key": key, "error": str(e)}) from e
        return deleted

    async def list_all(self) -> Dict[str, str]:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("SELECT key, value FROM settings_kv ORDER BY key")
            rows = await cursor.fetchall()
        return {row[0]: row[1] for row in rows}
