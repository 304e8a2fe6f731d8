"""Async SQLite key-value store backing the ticket and membership registries."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence

import aiosqlite

from .constants import STORE_CONNECT_TIMEOUT_SECONDS, STORE_MAX_RETRIES

logger = logging.getLogger(__name__)

StoreKey = Sequence[str]


def encode_key(key: StoreKey) -> str:
    """Serialize a composite key such as ``("memberships",)`` to its column value."""
    if isinstance(key, str):
        key = (key,)
    return json.dumps([str(part) for part in key], separators=(",", ":"))


def encode_value(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"))


class KeyValueStore:
    """Durable map from composite keys to JSON values."""

    def __init__(
        self,
        db_path: str | Path = "support_core.db",
        connect_timeout: float = STORE_CONNECT_TIMEOUT_SECONDS,
        max_retries: int = STORE_MAX_RETRIES,
    ) -> None:
        self.db_path = db_path if db_path == ":memory:" else Path(db_path)
        self.connect_timeout = connect_timeout
        self.max_retries = max_retries
        self._connection: Optional[aiosqlite.Connection] = None
        self.target_schema_version = 1

    @property
    def connected(self) -> bool:
        return self._connection is not None

    async def connect(self) -> None:
        """Connect with timeout protection and exponential backoff between retries."""
        if self._connection is not None:
            return

        for attempt in range(self.max_retries + 1):
            try:
                self._connection = await asyncio.wait_for(
                    aiosqlite.connect(str(self.db_path)),
                    timeout=self.connect_timeout,
                )
            except asyncio.TimeoutError:
                self._connection = None
                error_msg = (
                    f"Store connection timed out after {self.connect_timeout}s "
                    f"(attempt {attempt + 1}/{self.max_retries + 1}). Database path: {self.db_path}"
                )
                last_error: Exception = TimeoutError(error_msg)
            except Exception as conn_error:
                self._connection = None
                error_msg = (
                    f"Failed to connect to store (attempt {attempt + 1}/{self.max_retries + 1}): "
                    f"{conn_error}. Database path: {self.db_path}"
                )
                last_error = RuntimeError(error_msg)
                last_error.__cause__ = conn_error
            else:
                try:
                    self._connection.row_factory = aiosqlite.Row
                    await self._initialize_schema()
                except Exception as init_error:
                    await self._connection.close()
                    self._connection = None
                    logger.error(
                        "Failed to initialize store after connection: %s. Database path: %s",
                        init_error,
                        self.db_path,
                    )
                    raise
                logger.info("Key-value store connected: %s", self.db_path)
                return

            if attempt < self.max_retries:
                wait_seconds = 2 ** attempt  # 1, 2, 4, 8, 16
                logger.warning("%s. Waiting %ss before retry...", error_msg, wait_seconds)
                await asyncio.sleep(wait_seconds)
            else:
                logger.error("%s. Max retries exhausted.", error_msg)
                raise last_error

    async def close(self) -> None:
        if self._connection:
            await self._connection.close()
            self._connection = None

    def _require_connection(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError("Key-value store connection not initialized.")
        return self._connection

    async def _initialize_schema(self) -> None:
        connection = self._require_connection()
        await connection.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
                version INTEGER PRIMARY KEY,
                name TEXT NOT NULL UNIQUE,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
            """
        )
        await connection.commit()

        cursor = await connection.execute("SELECT MAX(version) AS version FROM schema_migrations")
        row = await cursor.fetchone()
        current_version = row["version"] if row and row["version"] else 0

        migrations = {
            1: ("kv_store_table", self._migration_v1),
        }

        for version in sorted(migrations):
            if version <= current_version:
                continue
            name, migration_fn = migrations[version]
            logger.info("Applying store migration v%s: %s", version, name)
            try:
                await migration_fn()
                await connection.execute(
                    "INSERT INTO schema_migrations (version, name) VALUES (?, ?)",
                    (version, name),
                )
                await connection.commit()
            except Exception as e:
                logger.exception("Failed to apply store migration v%s (%s)", version, name)
                raise RuntimeError(f"Migration v{version} ({name}) failed: {e}") from e

    async def _migration_v1(self) -> None:
        connection = self._require_connection()
        await connection.execute(
            """
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
            """
        )

    async def get(self, key: StoreKey) -> Any | None:
        """Return the stored value, or ``None`` when the key is absent or unreadable."""
        connection = self._require_connection()
        cursor = await connection.execute(
            "SELECT value FROM kv_store WHERE key = ?",
            (encode_key(key),),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable value stored under %s", list(key))
            return None

    async def get_raw(self, key: StoreKey) -> str | None:
        """Return the serialized value exactly as persisted."""
        connection = self._require_connection()
        cursor = await connection.execute(
            "SELECT value FROM kv_store WHERE key = ?",
            (encode_key(key),),
        )
        row = await cursor.fetchone()
        return row["value"] if row else None

    async def set(self, key: StoreKey, value: Any) -> None:
        await self.set_many([(key, value)])

    async def set_many(self, items: Iterable[tuple[StoreKey, Any]]) -> None:
        """Write several keys in a single transaction."""
        connection = self._require_connection()
        rows = [(encode_key(key), encode_value(value)) for key, value in items]
        try:
            await connection.executemany(
                """
                INSERT INTO kv_store (key, value, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                rows,
            )
            await connection.commit()
        except Exception:
            await connection.rollback()
            raise

    async def delete(self, key: StoreKey) -> None:
        connection = self._require_connection()
        await connection.execute("DELETE FROM kv_store WHERE key = ?", (encode_key(key),))
        await connection.commit()
