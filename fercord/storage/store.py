from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, List, Optional

import aiosqlite

from .reminders import (
    REMINDER_COLUMNS,
    Reminder,
    ReminderRepository,
    normalize_ids,
    reminder_from_row,
    reminder_params,
)
from .schema import SqliteSchemaMixin
from .utils import _sqlite_connection, _sqlite_transaction, parse_sqlite_timestamp, sqlite_timestamp


logger = logging.getLogger("fercord")

# SQLite caps bound parameters per statement (999 on older builds).
_DELETE_CHUNK_SIZE = 500

REMINDERS_BETWEEN_QUERY = f"""
SELECT {REMINDER_COLUMNS}
FROM reminders
WHERE "when" >= ? AND "when" < ?
ORDER BY "when", id
"""

INSERT_QUERY = """
INSERT INTO reminders (who, server, channel, "when", what)
VALUES (?, ?, ?, ?, ?)
"""

DELETE_QUERY = "DELETE FROM reminders WHERE id = ?"

GET_ONE_QUERY = f"SELECT {REMINDER_COLUMNS} FROM reminders WHERE id = ?"


def _row_to_reminder(row: aiosqlite.Row) -> Reminder:
    return reminder_from_row(
        row["id"],
        row["who"],
        row["server"],
        row["channel"],
        parse_sqlite_timestamp(row["when"]),
        row["what"],
    )


class SqliteReminderRepository(SqliteSchemaMixin, ReminderRepository):
    """Reminder repository on a local SQLite file, one connection per call."""

    backend_name = "sqlite"

    async def ping(self) -> None:
        async with _sqlite_connection(self.db_path) as db:
            await db.execute("SELECT 1")

    async def insert(self, entity: Reminder) -> int:
        logger.debug("Inserting reminder for %s in channel %s", entity.who, entity.channel)
        who, server, channel, when, what = reminder_params(entity)
        async with _sqlite_connection(self.db_path) as db:
            async with _sqlite_transaction(db):
                cursor = await db.execute(
                    INSERT_QUERY,
                    (who, server, channel, sqlite_timestamp(when), what),
                )
                reminder_id = int(cursor.lastrowid)
        return reminder_id

    async def delete(self, entity: Reminder) -> None:
        logger.debug("Deleting reminder %s", entity.id)
        async with _sqlite_connection(self.db_path) as db:
            async with _sqlite_transaction(db):
                await db.execute(DELETE_QUERY, (int(entity.id),))

    async def get(self, reminder_id: int) -> Optional[Reminder]:
        async with _sqlite_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(GET_ONE_QUERY, (int(reminder_id),)) as cursor:
                row = await cursor.fetchone()
        if row is None:
            return None
        return _row_to_reminder(row)

    async def get_between(self, lower: datetime, upper: datetime) -> List[Reminder]:
        async with _sqlite_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                REMINDERS_BETWEEN_QUERY,
                (sqlite_timestamp(lower), sqlite_timestamp(upper)),
            ) as cursor:
                rows = await cursor.fetchall()
        logger.debug("Found %s reminders", len(rows))
        return [_row_to_reminder(row) for row in rows]

    async def delete_many(self, ids: Iterable[int]) -> None:
        reminder_ids = normalize_ids(ids)
        logger.debug("Deleting %s reminders", len(reminder_ids))
        if not reminder_ids:
            return

        deleted = 0
        async with _sqlite_connection(self.db_path) as db:
            async with _sqlite_transaction(db):
                for start in range(0, len(reminder_ids), _DELETE_CHUNK_SIZE):
                    chunk = reminder_ids[start : start + _DELETE_CHUNK_SIZE]
                    placeholders = ", ".join("?" for _ in chunk)
                    cursor = await db.execute(
                        f"DELETE FROM reminders WHERE id IN ({placeholders})",
                        tuple(chunk),
                    )
                    deleted += max(0, int(cursor.rowcount))
        logger.debug("Deleted %s reminders", deleted)
