"""Redis-backed key-value store for small pieces of bot state.

Records are addressed by a key they derive from their own identity
(`kv_key()`), so two records describing the same thing always land on the same
key. Writes are last-writer-wins; there is no compare-and-set.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Protocol, TypeVar

from redis.asyncio import Redis
from redis.exceptions import RedisError

from ..errors import CorruptRecordError, StorageError


logger = logging.getLogger("fercord")

DEFAULT_CONNECT_TIMEOUT_SECONDS = 15.0


class Identifiable(Protocol):
    def kv_key(self) -> str: ...


class ScalarRecord(Identifiable, Protocol):
    def kv_value(self) -> str | int | float: ...


class JsonRecord(Identifiable, Protocol):
    def to_dict(self) -> dict[str, Any]: ...

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Any: ...


RecordT = TypeVar("RecordT", bound=JsonRecord)


class KVClient:
    def __init__(
        self,
        redis_url: str = "",
        *,
        client: Redis | None = None,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
    ) -> None:
        if client is None:
            if not redis_url.strip():
                raise ValueError("redis_url is required when no client is given")
            client = Redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=connect_timeout,
            )
        self._client = client
        self.connect_timeout = connect_timeout

    async def close(self) -> None:
        await self._client.aclose()

    async def save(self, record: ScalarRecord) -> None:
        key = record.kv_key()
        logger.debug("Saving a record to the KV store under %s", key)
        await self._set(key, record.kv_value())

    async def save_json(self, record: JsonRecord) -> None:
        key = record.kv_key()
        logger.debug("Saving a record to the KV store in json mode under %s", key)
        payload = json.dumps(record.to_dict())
        await self._set(key, payload)

    async def get(self, record: Identifiable) -> str | None:
        key = record.kv_key()
        try:
            if not await self._client.exists(key):
                return None
            value = await self._client.get(key)
        except RedisError as exc:
            logger.error("Error reading %s from the kv store: %s", key, exc)
            raise StorageError(f"Error reading {key} from the kv store") from exc
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    async def get_json(self, template: RecordT) -> RecordT | None:
        """Load the record stored under `template`'s key, or None if there is none.

        A stored value that is not valid JSON for the template's type raises
        CorruptRecordError rather than reading as a miss.
        """
        key = template.kv_key()
        logger.debug("Retrieving %s from the kv store", key)
        raw = await self.get(template)
        if raw is None:
            return None
        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise TypeError(f"expected a JSON object, got {type(data).__name__}")
            return type(template).from_dict(data)
        except (ValueError, TypeError, KeyError) as exc:
            raise CorruptRecordError(f"Stored value for {key} is not a valid {type(template).__name__}: {exc}") from exc

    async def connection_check(self, timeout: float | None = None) -> None:
        """Succeed only when the store answers a PING within `timeout` seconds."""
        limit = self.connect_timeout if timeout is None else timeout
        try:
            alive = await asyncio.wait_for(self._client.ping(), timeout=limit)
        except asyncio.TimeoutError as exc:
            raise StorageError(f"Could not reach the kv store within {limit:g}s") from exc
        except (RedisError, OSError) as exc:
            raise StorageError(f"Could not open connection: {exc}") from exc
        if not alive:
            raise StorageError("Could not open connection")

    async def _set(self, key: str, value: object) -> None:
        try:
            await self._client.set(key, value)
        except RedisError as exc:
            logger.error("Error saving value to kv store under %s: %s", key, exc)
            raise StorageError(f"Error saving value to kv store under {key}") from exc
