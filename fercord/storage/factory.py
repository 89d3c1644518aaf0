from __future__ import annotations

from ..errors import ConfigurationError
from .reminders import ReminderRepository
from .utils import sqlite_path_from_url


def _resolve_backend(database_url: str) -> str:
    lowered = database_url.strip().lower()
    if lowered.startswith("sqlite://"):
        return "sqlite"
    if lowered.startswith(("postgres://", "postgresql://")):
        return "postgres"
    raise ConfigurationError(f"Unsupported database url {database_url!r}; use sqlite:// or postgres://")


def build_reminder_repository(database_url: str, *, max_pool_size: int = 2) -> ReminderRepository:
    backend = _resolve_backend(database_url)
    if backend == "sqlite":
        path = sqlite_path_from_url(database_url)
        if not str(path) or str(path) in {".", ":memory:"}:
            raise ConfigurationError(
                "In-memory SQLite is not supported; point FERCORD_DATABASE_URL at a file, e.g. sqlite://./data/fercord.db"
            )
        from .store import SqliteReminderRepository

        return SqliteReminderRepository(path)

    from .postgres_store import PostgresReminderRepository

    return PostgresReminderRepository(database_url, max_pool_size=max_pool_size)
