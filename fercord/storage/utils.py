from __future__ import annotations

import os
import re
import sqlite3
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from ..errors import ConversionError, StorageError


U64_MAX = 2**64 - 1
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_DECIMAL_RE = re.compile(r"[0-9]{1,20}")

# Fixed-width, so lexical order of the stored text is chronological order.
SQLITE_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def id_to_text(value: int) -> str:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConversionError(f"Identifier must be an integer, got {type(value).__name__}")
    if value < 0 or value > U64_MAX:
        raise ConversionError(f"Identifier {value} does not fit in 64 unsigned bits")
    return str(value)


def id_from_text(text: object) -> int:
    raw = str(text).strip() if text is not None else ""
    if not _DECIMAL_RE.fullmatch(raw):
        raise ConversionError(f"Stored identifier {text!r} is not a decimal number")
    value = int(raw)
    if value > U64_MAX:
        raise ConversionError(f"Stored identifier {raw} does not fit in 64 unsigned bits")
    return value


def sqlite_timestamp(moment: datetime) -> str:
    return to_utc(moment).strftime(SQLITE_TIMESTAMP_FORMAT)


def parse_sqlite_timestamp(raw: object) -> datetime:
    try:
        return datetime.strptime(str(raw), SQLITE_TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError as exc:
        raise StorageError(f"Stored timestamp {raw!r} is not in the expected format") from exc


def sqlite_path_from_url(database_url: str) -> Path:
    raw = database_url.strip()
    if not raw.lower().startswith("sqlite://"):
        raise ValueError(f"Not an sqlite url: {database_url!r}")
    path = raw[len("sqlite://"):]
    path = path.split("?", 1)[0]
    return Path(path).expanduser()


def _sqlite_busy_timeout_ms() -> int:
    raw = os.getenv("FERCORD_SQLITE_BUSY_TIMEOUT_MS", "5000").strip()
    try:
        timeout = int(raw)
    except ValueError:
        timeout = 5000
    return max(0, min(timeout, 60000))


@asynccontextmanager
async def _sqlite_connection(db_path: str | Path) -> AsyncIterator[aiosqlite.Connection]:
    try:
        async with aiosqlite.connect(db_path) as db:
            timeout_ms = _sqlite_busy_timeout_ms()
            if timeout_ms > 0:
                await db.execute(f"PRAGMA busy_timeout={timeout_ms}")
            yield db
    except sqlite3.Error as exc:
        raise StorageError(f"SQLite error: {exc}") from exc


@asynccontextmanager
async def _sqlite_transaction(db: aiosqlite.Connection) -> AsyncIterator[aiosqlite.Connection]:
    await db.execute("BEGIN")
    try:
        yield db
    except BaseException:
        await db.rollback()
        raise
    await db.commit()
