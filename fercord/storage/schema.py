from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

from ..errors import StorageError
from .utils import _sqlite_connection


logger = logging.getLogger("fercord")


class SqliteSchemaMixin:
    SCHEMA_VERSION = 1

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    async def init(self) -> None:
        async with _sqlite_connection(self.db_path) as db:
            await db.execute("PRAGMA journal_mode=WAL")
            async with db.execute("PRAGMA user_version") as cursor:
                row = await cursor.fetchone()
            version = int(row[0]) if row else 0

            # A newer database is left untouched; this build cannot know its layout.
            if version > self.SCHEMA_VERSION:
                raise StorageError(
                    f"SQLite schema version mismatch: found user_version={version}, "
                    f"this build supports {self.SCHEMA_VERSION}"
                )

            await self._create_schema(db)
            if version != self.SCHEMA_VERSION:
                logger.info("SQLite schema at %s set to version %s", self.db_path, self.SCHEMA_VERSION)
                await db.execute(f"PRAGMA user_version = {self.SCHEMA_VERSION}")
            await db.commit()

    async def _create_schema(self, db: aiosqlite.Connection) -> None:
        await db.executescript(
            """
            CREATE TABLE IF NOT EXISTS reminders (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                who TEXT NOT NULL,
                server TEXT NOT NULL,
                channel TEXT NOT NULL,
                "when" TEXT NOT NULL,
                what TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_reminders_when ON reminders ("when");
            """
        )
