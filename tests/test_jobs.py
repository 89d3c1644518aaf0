from __future__ import annotations

import asyncio
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from fercord.errors import StorageError  # noqa: E402
from fercord.jobs import JobContext, RemindersCleanupJob, RemindersJob, default_jobs  # noqa: E402
from fercord.storage.reminders import Reminder  # noqa: E402
from fercord.storage.store import SqliteReminderRepository  # noqa: E402


NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


class _FakeMessenger:
    def __init__(self, *, failing_channels: set[int] | None = None) -> None:
        self.sent: list[tuple[int, str]] = []
        self.failing_channels = failing_channels or set()

    async def mention(self, user_id: int) -> str:
        return f"<@{user_id}>"

    async def send(self, channel_id: int, text: str) -> None:
        if channel_id in self.failing_channels:
            raise RuntimeError("missing access")
        self.sent.append((channel_id, text))


def _context(repository, messenger, *, last_run: datetime, now: datetime = NOW) -> JobContext:  # type: ignore[no-untyped-def]
    return JobContext(
        last_run=last_run,
        now=now,
        repository=repository,
        kv=SimpleNamespace(),
        settings=SimpleNamespace(job_interval=timedelta(minutes=1)),
        messenger=messenger,
    )


def _repo(tmp_path: Path) -> SqliteReminderRepository:
    repo = SqliteReminderRepository(tmp_path / "jobs.db")
    asyncio.run(repo.init())
    return repo


def _add(repo: SqliteReminderRepository, when: datetime, what: str, *, channel: int = 10, who: int = 20) -> int:
    return asyncio.run(repo.insert(Reminder(who=who, server=1, channel=channel, when=when, what=what)))


def test_default_jobs_order() -> None:
    jobs = default_jobs()

    assert [type(job) for job in jobs] == [RemindersJob, RemindersCleanupJob]


def test_dispatch_sends_reminders_due_in_window(tmp_path: Path) -> None:
    repo = _repo(tmp_path)
    last_run = NOW - timedelta(minutes=1)
    _add(repo, last_run - timedelta(seconds=1), "previous window")
    _add(repo, last_run, "at window start")
    _add(repo, NOW - timedelta(seconds=1), "just in time")
    _add(repo, NOW, "next window")
    messenger = _FakeMessenger()

    sent = asyncio.run(RemindersJob().run(_context(repo, messenger, last_run=last_run)))

    assert sent == 2
    assert messenger.sent == [
        (10, "<@20> I was supposed to remind you of at window start"),
        (10, "<@20> I was supposed to remind you of just in time"),
    ]


def test_dispatch_continues_past_failing_delivery(tmp_path: Path) -> None:
    repo = _repo(tmp_path)
    last_run = NOW - timedelta(minutes=1)
    _add(repo, last_run + timedelta(seconds=1), "broken channel", channel=666)
    _add(repo, last_run + timedelta(seconds=2), "fine", channel=10)
    messenger = _FakeMessenger(failing_channels={666})

    sent = asyncio.run(RemindersJob().run(_context(repo, messenger, last_run=last_run)))

    assert sent == 1
    assert messenger.sent == [(10, "<@20> I was supposed to remind you of fine")]


def test_dispatch_fetch_failure_propagates() -> None:
    class _BrokenRepo:
        async def get_between(self, lower, upper):  # type: ignore[no-untyped-def]
            raise StorageError("db down")

    with pytest.raises(StorageError):
        asyncio.run(RemindersJob().run(_context(_BrokenRepo(), _FakeMessenger(), last_run=NOW)))


def test_cleanup_deletes_only_rows_before_cutoff(tmp_path: Path) -> None:
    repo = _repo(tmp_path)
    old = _add(repo, NOW - timedelta(minutes=10), "old")
    edge = _add(repo, NOW - timedelta(minutes=2, seconds=1), "just before cutoff")
    kept_at_cutoff = _add(repo, NOW - timedelta(minutes=2), "at cutoff")
    kept_recent = _add(repo, NOW - timedelta(seconds=30), "recent")

    deleted = asyncio.run(RemindersCleanupJob().run(_context(repo, _FakeMessenger(), last_run=NOW)))

    assert deleted == 2
    assert asyncio.run(repo.get(old)) is None
    assert asyncio.run(repo.get(edge)) is None
    assert asyncio.run(repo.get(kept_at_cutoff)) is not None
    assert asyncio.run(repo.get(kept_recent)) is not None


def test_cleanup_noops_when_fetch_fails() -> None:
    class _BrokenRepo:
        def __init__(self) -> None:
            self.deleted: list[list[int]] = []

        async def get_before(self, moment):  # type: ignore[no-untyped-def]
            raise StorageError("db down")

        async def delete_many(self, ids):  # type: ignore[no-untyped-def]
            self.deleted.append(list(ids))

    repo = _BrokenRepo()

    deleted = asyncio.run(RemindersCleanupJob().run(_context(repo, _FakeMessenger(), last_run=NOW)))

    assert deleted == 0
    assert repo.deleted == []


def test_cleanup_delete_failure_propagates() -> None:
    class _FlakyRepo:
        async def get_before(self, moment):  # type: ignore[no-untyped-def]
            return [Reminder(who=1, server=1, channel=1, when=moment - timedelta(hours=1), what="x", id=3)]

        async def delete_many(self, ids):  # type: ignore[no-untyped-def]
            raise StorageError("locked")

    with pytest.raises(StorageError):
        asyncio.run(RemindersCleanupJob().run(_context(_FlakyRepo(), _FakeMessenger(), last_run=NOW)))
