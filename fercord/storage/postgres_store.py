from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Iterable, List, Optional

import asyncpg

from ..errors import StorageError
from .reminders import (
    REMINDER_COLUMNS,
    Reminder,
    ReminderRepository,
    normalize_ids,
    reminder_from_row,
    reminder_params,
)
from .utils import to_utc


logger = logging.getLogger("fercord")

REMINDERS_BETWEEN_QUERY = f"""
SELECT {REMINDER_COLUMNS}
FROM reminders
WHERE "when" >= $1 AND "when" < $2
ORDER BY "when", id
"""

INSERT_QUERY = """
INSERT INTO reminders (who, server, channel, "when", what)
VALUES ($1, $2, $3, $4, $5)
RETURNING id
"""

DELETE_QUERY = "DELETE FROM reminders WHERE id = $1"

BATCH_DELETE_QUERY = "DELETE FROM reminders WHERE id = ANY($1::bigint[])"

GET_ONE_QUERY = f"SELECT {REMINDER_COLUMNS} FROM reminders WHERE id = $1"


def _row_to_reminder(row: asyncpg.Record) -> Reminder:
    return reminder_from_row(row["id"], row["who"], row["server"], row["channel"], row["when"], row["what"])


@asynccontextmanager
async def _storage_errors(action: str) -> AsyncIterator[None]:
    try:
        yield
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
        logger.error("Postgres error while %s: %s", action, exc)
        raise StorageError(f"Postgres error while {action}: {exc}") from exc


class PostgresReminderRepository(ReminderRepository):
    """Postgres-backed reminder repository implementing the same API as SqliteReminderRepository."""

    SCHEMA_VERSION = 1
    backend_name = "postgres"

    def __init__(self, dsn: str, *, max_pool_size: int = 2) -> None:
        self.dsn = dsn.strip()
        if not self.dsn:
            raise ValueError("Postgres database url cannot be empty")
        self.max_pool_size = max(1, int(max_pool_size))
        self._pool: asyncpg.Pool | None = None
        self._init_lock = asyncio.Lock()
        self._initialized = False

    async def _ensure_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            async with _storage_errors("connecting"):
                self._pool = await asyncpg.create_pool(
                    dsn=self.dsn,
                    min_size=1,
                    max_size=self.max_pool_size,
                    command_timeout=30.0,
                )
        return self._pool

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
        self._initialized = False

    async def ping(self) -> None:
        pool = await self._ensure_pool()
        async with _storage_errors("pinging"):
            async with pool.acquire() as conn:
                await conn.execute("SELECT 1")

    async def init(self) -> None:
        async with self._init_lock:
            if self._initialized:
                return
            pool = await self._ensure_pool()
            async with _storage_errors("initializing schema"):
                async with pool.acquire() as conn:
                    async with conn.transaction():
                        await self._create_schema(conn)
                        version = await self._get_schema_version(conn)
                        if version > self.SCHEMA_VERSION:
                            raise RuntimeError(
                                f"Postgres schema version {version} is newer than supported {self.SCHEMA_VERSION}. "
                                "Upgrade the bot before starting."
                            )
                        if version != self.SCHEMA_VERSION:
                            await self._set_schema_version(conn, self.SCHEMA_VERSION)
            self._initialized = True

    async def _create_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS fercord_meta (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS reminders (
                id BIGSERIAL PRIMARY KEY,
                who TEXT NOT NULL,
                server TEXT NOT NULL,
                channel TEXT NOT NULL,
                "when" TIMESTAMPTZ NOT NULL,
                what TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_reminders_when ON reminders ("when");
            """
        )

    async def _get_schema_version(self, conn: asyncpg.Connection) -> int:
        row = await conn.fetchrow("SELECT value FROM fercord_meta WHERE key = 'schema_version'")
        if row is None:
            return 0
        try:
            return int(row["value"])
        except (TypeError, ValueError):
            return 0

    async def _set_schema_version(self, conn: asyncpg.Connection, version: int) -> None:
        await conn.execute(
            """
            INSERT INTO fercord_meta (key, value)
            VALUES ('schema_version', $1)
            ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value
            """,
            str(version),
        )

    async def insert(self, entity: Reminder) -> int:
        logger.debug("Inserting reminder for %s in channel %s", entity.who, entity.channel)
        params = reminder_params(entity)
        pool = await self._ensure_pool()
        async with _storage_errors("inserting a reminder"):
            async with pool.acquire() as conn:
                async with conn.transaction():
                    reminder_id = await conn.fetchval(INSERT_QUERY, *params)
        return int(reminder_id)

    async def delete(self, entity: Reminder) -> None:
        logger.debug("Deleting reminder %s", entity.id)
        pool = await self._ensure_pool()
        async with _storage_errors("deleting a reminder"):
            async with pool.acquire() as conn:
                async with conn.transaction():
                    await conn.execute(DELETE_QUERY, int(entity.id))

    async def get(self, reminder_id: int) -> Optional[Reminder]:
        pool = await self._ensure_pool()
        async with _storage_errors("fetching a reminder"):
            async with pool.acquire() as conn:
                row = await conn.fetchrow(GET_ONE_QUERY, int(reminder_id))
        if row is None:
            return None
        return _row_to_reminder(row)

    async def get_between(self, lower: datetime, upper: datetime) -> List[Reminder]:
        pool = await self._ensure_pool()
        async with _storage_errors("fetching reminders"):
            async with pool.acquire() as conn:
                rows = await conn.fetch(REMINDERS_BETWEEN_QUERY, to_utc(lower), to_utc(upper))
        logger.debug("Found %s reminders", len(rows))
        return [_row_to_reminder(row) for row in rows]

    async def delete_many(self, ids: Iterable[int]) -> None:
        reminder_ids = normalize_ids(ids)
        logger.debug("Deleting %s reminders", len(reminder_ids))
        if not reminder_ids:
            return
        pool = await self._ensure_pool()
        async with _storage_errors("deleting reminders"):
            async with pool.acquire() as conn:
                async with conn.transaction():
                    status = await conn.execute(BATCH_DELETE_QUERY, reminder_ids)
        logger.debug("Batch delete finished: %s", status)
