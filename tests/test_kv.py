from __future__ import annotations

import asyncio
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from redis.exceptions import ConnectionError as RedisConnectionError  # noqa: E402

from fercord.errors import CorruptRecordError, StorageError  # noqa: E402
from fercord.storage.guild_timezone import GuildTimezone  # noqa: E402
from fercord.storage.kv import KVClient  # noqa: E402


class _FakeRedis:
    def __init__(self, *, fail: bool = False, ping_delay: float = 0.0, ping_reply: bool = True) -> None:
        self.data: dict[str, Any] = {}
        self.calls: list[str] = []
        self.closed = False
        self._fail = fail
        self._ping_delay = ping_delay
        self._ping_reply = ping_reply

    def _check(self, name: str) -> None:
        self.calls.append(name)
        if self._fail:
            raise RedisConnectionError("connection refused")

    async def set(self, key: str, value: Any) -> bool:
        self._check("set")
        self.data[key] = value
        return True

    async def get(self, key: str) -> Any:
        self._check("get")
        return self.data.get(key)

    async def exists(self, key: str) -> int:
        self._check("exists")
        return int(key in self.data)

    async def ping(self) -> bool:
        self._check("ping")
        if self._ping_delay:
            await asyncio.sleep(self._ping_delay)
        return self._ping_reply

    async def aclose(self) -> None:
        self.closed = True


@dataclass
class _Counter:
    name: str
    value: int

    def kv_key(self) -> str:
        return f"counter_{self.name}"

    def kv_value(self) -> int:
        return self.value


def test_get_json_on_missing_key_is_none_and_skips_get() -> None:
    fake = _FakeRedis()
    kv = KVClient(client=fake)

    result = asyncio.run(kv.get_json(GuildTimezone(guild_id=42)))

    assert result is None
    assert fake.calls == ["exists"]


def test_save_json_then_get_json_returns_equal_record() -> None:
    fake = _FakeRedis()
    kv = KVClient(client=fake)
    record = GuildTimezone(guild_id=18446744073709551615, timezone="Europe/Amsterdam")

    asyncio.run(kv.save_json(record))
    loaded = asyncio.run(kv.get_json(GuildTimezone(guild_id=record.guild_id)))

    assert loaded == record
    assert "guild_timezone_18446744073709551615" in fake.data


def test_scalar_save_and_get() -> None:
    fake = _FakeRedis()
    kv = KVClient(client=fake)

    asyncio.run(kv.save(_Counter("ticks", 7)))

    assert fake.data["counter_ticks"] == 7
    fake.data["counter_ticks"] = b"7"
    assert asyncio.run(kv.get(_Counter("ticks", 0))) == "7"


@pytest.mark.parametrize("payload", ["{not json", "[1, 2]", '{"guild_id": 1}'])
def test_malformed_payload_is_an_error(payload: str) -> None:
    fake = _FakeRedis()
    fake.data["guild_timezone_1"] = payload
    kv = KVClient(client=fake)

    with pytest.raises(CorruptRecordError):
        asyncio.run(kv.get_json(GuildTimezone(guild_id=1)))


def test_transport_errors_become_storage_errors() -> None:
    kv = KVClient(client=_FakeRedis(fail=True))

    with pytest.raises(StorageError):
        asyncio.run(kv.save_json(GuildTimezone(guild_id=1, timezone="UTC")))
    with pytest.raises(StorageError):
        asyncio.run(kv.get_json(GuildTimezone(guild_id=1)))


def test_connection_check_outcomes() -> None:
    asyncio.run(KVClient(client=_FakeRedis()).connection_check())

    with pytest.raises(StorageError):
        asyncio.run(KVClient(client=_FakeRedis(fail=True)).connection_check())
    with pytest.raises(StorageError):
        asyncio.run(KVClient(client=_FakeRedis(ping_reply=False)).connection_check())
    with pytest.raises(StorageError, match="within"):
        asyncio.run(KVClient(client=_FakeRedis(ping_delay=1.0)).connection_check(timeout=0.01))


def test_close_closes_client() -> None:
    fake = _FakeRedis()
    asyncio.run(KVClient(client=fake).close())
    assert fake.closed is True


def test_url_is_required_without_client() -> None:
    with pytest.raises(ValueError):
        KVClient("")


def test_transport_errors_are_not_reported_as_corrupt_records() -> None:
    kv = KVClient(client=_FakeRedis(fail=True))

    with pytest.raises(StorageError) as excinfo:
        asyncio.run(kv.get_json(GuildTimezone(guild_id=1)))

    assert not isinstance(excinfo.value, CorruptRecordError)
