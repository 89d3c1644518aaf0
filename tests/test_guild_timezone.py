from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from redis.exceptions import ConnectionError as RedisConnectionError  # noqa: E402

from fercord.storage.guild_timezone import UTC, GuildTimezone, GuildTimezoneStore  # noqa: E402
from fercord.storage.kv import KVClient  # noqa: E402


class _FakeRedis:
    def __init__(self, *, fail: bool = False) -> None:
        self.data: dict[str, Any] = {}
        self.fail = fail

    async def set(self, key: str, value: Any) -> bool:
        if self.fail:
            raise RedisConnectionError("down")
        self.data[key] = value
        return True

    async def get(self, key: str) -> Any:
        if self.fail:
            raise RedisConnectionError("down")
        return self.data.get(key)

    async def exists(self, key: str) -> int:
        if self.fail:
            raise RedisConnectionError("down")
        return int(key in self.data)


def test_set_then_resolve_returns_configured_zone() -> None:
    store = GuildTimezoneStore(KVClient(client=_FakeRedis()))

    saved = asyncio.run(store.set_timezone(77, " Asia/Tokyo "))
    zone = asyncio.run(store.resolve(77))

    assert saved == GuildTimezone(guild_id=77, timezone="Asia/Tokyo")
    assert zone == ZoneInfo("Asia/Tokyo")
    assert asyncio.run(store.get(77)) == saved


def test_set_timezone_overwrites_previous_value() -> None:
    fake = _FakeRedis()
    store = GuildTimezoneStore(KVClient(client=fake))

    asyncio.run(store.set_timezone(5, "Europe/Paris"))
    asyncio.run(store.set_timezone(5, "America/Chicago"))

    assert list(fake.data) == ["guild_timezone_5"]
    assert asyncio.run(store.resolve(5)) == ZoneInfo("America/Chicago")


def test_resolve_without_guild_or_record_is_utc() -> None:
    store = GuildTimezoneStore(KVClient(client=_FakeRedis()))

    assert asyncio.run(store.resolve(None)) is UTC
    assert asyncio.run(store.resolve(123)) is UTC


@pytest.mark.parametrize(
    "payload",
    [
        '{"guild_id": 9, "timezone": "Not/AZone"}',
        '{"guild_id": 9, "timezone": ""}',
        '{"guild_id": 9, "timezone": "Europe"}',
        '{"guild_id": 9, "timezone": "America"}',
        "garbage",
    ],
)
def test_resolve_falls_back_to_utc_for_unusable_values(payload: str) -> None:
    fake = _FakeRedis()
    fake.data["guild_timezone_9"] = payload
    store = GuildTimezoneStore(KVClient(client=fake))

    assert asyncio.run(store.resolve(9)) is UTC


def test_resolve_falls_back_to_utc_when_store_is_down() -> None:
    store = GuildTimezoneStore(KVClient(client=_FakeRedis(fail=True)))

    assert asyncio.run(store.resolve(9)) is UTC


@pytest.mark.parametrize("name", ["Mars/Olympus_Mons", "Europe", "America"])
def test_to_zoneinfo_rejects_unknown_names(name: str) -> None:
    with pytest.raises(ValueError):
        GuildTimezone(guild_id=1, timezone=name).to_zoneinfo()
