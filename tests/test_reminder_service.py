from __future__ import annotations

import asyncio
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from fercord.errors import ParseError, ReminderTooSoonError  # noqa: E402
from fercord.reminders import parse_failure_message, schedule_reminder  # noqa: E402
from fercord.storage.guild_timezone import GuildTimezoneStore  # noqa: E402
from fercord.storage.kv import KVClient  # noqa: E402
from fercord.storage.store import SqliteReminderRepository  # noqa: E402


NOW = datetime(2026, 10, 18, 10, 30, tzinfo=timezone.utc)


class _FakeRedis:
    def __init__(self) -> None:
        self.data: dict[str, Any] = {}

    async def set(self, key: str, value: Any) -> bool:
        self.data[key] = value
        return True

    async def get(self, key: str) -> Any:
        return self.data.get(key)

    async def exists(self, key: str) -> int:
        return int(key in self.data)


def _setup(tmp_path: Path) -> tuple[SqliteReminderRepository, GuildTimezoneStore]:
    repo = SqliteReminderRepository(tmp_path / "service.db")
    asyncio.run(repo.init())
    return repo, GuildTimezoneStore(KVClient(client=_FakeRedis()))


def _schedule(repo, timezones, when_text: str, *, guild_id: int | None = 500):  # type: ignore[no-untyped-def]
    return asyncio.run(
        schedule_reminder(
            repo,
            timezones,
            guild_id=guild_id,
            channel_id=600,
            user_id=700,
            when_text=when_text,
            what="stretch",
            min_interval=timedelta(minutes=1),
            now=NOW,
        )
    )


def test_schedules_in_guild_timezone_and_stores_utc(tmp_path: Path) -> None:
    repo, timezones = _setup(tmp_path)
    asyncio.run(timezones.set_timezone(500, "Europe/Berlin"))

    scheduled = _schedule(repo, timezones, "tomorrow at 8am")

    assert scheduled.local_when.tzinfo == ZoneInfo("Europe/Berlin")
    assert (scheduled.local_when.hour, scheduled.local_when.minute) == (8, 0)
    assert scheduled.utc_when == datetime(2026, 10, 19, 6, 0, tzinfo=timezone.utc)
    stored = asyncio.run(repo.get(scheduled.id))
    assert stored is not None
    assert (stored.who, stored.server, stored.channel, stored.what) == (700, 500, 600, "stretch")
    assert stored.when == scheduled.utc_when
    assert scheduled.confirmation() == "Got it! I will remind you at 19/10/2026 08:00 about stretch"


def test_falls_back_to_utc_without_guild(tmp_path: Path) -> None:
    repo, timezones = _setup(tmp_path)

    scheduled = _schedule(repo, timezones, "in 2 hours", guild_id=None)

    assert scheduled.utc_when == NOW + timedelta(hours=2)
    stored = asyncio.run(repo.get(scheduled.id))
    assert stored is not None and stored.server == 0


def test_rejects_times_inside_minimum_interval(tmp_path: Path) -> None:
    repo, timezones = _setup(tmp_path)

    with pytest.raises(ReminderTooSoonError, match="1 minute"):
        _schedule(repo, timezones, "in 30 seconds")
    with pytest.raises(ReminderTooSoonError):
        _schedule(repo, timezones, "today at 9am")

    assert asyncio.run(repo.get_before(NOW + timedelta(days=365))) == []


def test_unparseable_time_raises_parse_error(tmp_path: Path) -> None:
    repo, timezones = _setup(tmp_path)

    with pytest.raises(ParseError):
        _schedule(repo, timezones, "whenever you feel like it")

    assert parse_failure_message("blah") == "What the hell am I supposed to make of blah?!"
