from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..errors import StorageError
from .kv import KVClient


logger = logging.getLogger("fercord")

UTC = ZoneInfo("UTC")


@dataclass(slots=True)
class GuildTimezone:
    """Timezone configured for a guild, as an IANA name."""

    guild_id: int
    timezone: str = ""

    def kv_key(self) -> str:
        return f"guild_timezone_{self.guild_id}"

    def to_dict(self) -> dict[str, Any]:
        return {"guild_id": self.guild_id, "timezone": self.timezone}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GuildTimezone":
        return cls(guild_id=int(data["guild_id"]), timezone=str(data["timezone"]))

    def to_zoneinfo(self) -> ZoneInfo:
        name = self.timezone.strip()
        if not name:
            raise ValueError("Timezone name is empty")
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError, OSError) as exc:
            raise ValueError(f"Unknown timezone {name!r}") from exc


class GuildTimezoneStore:
    def __init__(self, kv: KVClient) -> None:
        self.kv = kv

    async def set_timezone(self, guild_id: int, timezone: str) -> GuildTimezone:
        record = GuildTimezone(guild_id=int(guild_id), timezone=timezone.strip())
        logger.debug("Setting timezone %s for guild %s", record.timezone, record.guild_id)
        await self.kv.save_json(record)
        return record

    async def get(self, guild_id: int) -> GuildTimezone | None:
        return await self.kv.get_json(GuildTimezone(guild_id=int(guild_id)))

    async def resolve(self, guild_id: int | None) -> ZoneInfo:
        """Timezone to interpret times in for `guild_id`; UTC whenever that cannot be determined."""
        if guild_id is None:
            return UTC
        try:
            record = await self.get(guild_id)
        except StorageError:
            logger.warning("Could not load the timezone for guild %s, using UTC", guild_id, exc_info=True)
            return UTC
        if record is None:
            return UTC
        try:
            zone = record.to_zoneinfo()
        except ValueError:
            logger.warning("Guild %s has an unusable timezone %r, using UTC", guild_id, record.timezone)
            return UTC
        logger.debug("Found specific timezone %s for guild %s", zone.key, guild_id)
        return zone
