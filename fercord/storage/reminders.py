from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from .utils import EPOCH, id_from_text, id_to_text, to_utc, utc_now


logger = logging.getLogger("fercord")

REMINDER_COLUMNS = 'id, who, server, channel, "when", what'


@dataclass(slots=True)
class Reminder:
    """A message to deliver to `who` in `channel` once `when` has passed.

    `id` is assigned by storage; the default 0 marks an unsaved reminder and is
    ignored on insert.
    """

    who: int
    server: int
    channel: int
    when: datetime
    what: str
    id: int = 0


def reminder_from_row(
    reminder_id: object,
    who: object,
    server: object,
    channel: object,
    when: datetime,
    what: object,
) -> Reminder:
    return Reminder(
        id=int(reminder_id),  # type: ignore[arg-type]
        who=id_from_text(who),
        server=id_from_text(server),
        channel=id_from_text(channel),
        when=to_utc(when),
        what=str(what),
    )


def reminder_params(entity: Reminder) -> tuple[str, str, str, datetime, str]:
    return (
        id_to_text(entity.who),
        id_to_text(entity.server),
        id_to_text(entity.channel),
        to_utc(entity.when),
        entity.what,
    )


def normalize_ids(ids: Iterable[int]) -> List[int]:
    unique: List[int] = []
    seen: set[int] = set()
    for value in ids:
        reminder_id = int(value)
        if reminder_id in seen:
            continue
        seen.add(reminder_id)
        unique.append(reminder_id)
    return unique


class ReminderRepository:
    """Reminder persistence shared by every SQL dialect.

    Range lookups are half-open, `[lower, upper)`, so the windows handed out by
    `get_since` and `get_before` never overlap and leave no gaps between ticks.
    Mutations run inside a single transaction each.
    """

    backend_name = "abstract"

    async def init(self) -> None:
        raise NotImplementedError

    async def ping(self) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        return None

    async def insert(self, entity: Reminder) -> int:
        raise NotImplementedError

    async def delete(self, entity: Reminder) -> None:
        raise NotImplementedError

    async def get(self, reminder_id: int) -> Optional[Reminder]:
        raise NotImplementedError

    async def get_between(self, lower: datetime, upper: datetime) -> List[Reminder]:
        raise NotImplementedError

    async def delete_many(self, ids: Iterable[int]) -> None:
        raise NotImplementedError

    async def get_since(self, moment: datetime) -> List[Reminder]:
        now = utc_now()
        logger.debug("Getting all reminders between %s and %s", moment, now)
        return await self.get_between(moment, now)

    async def get_before(self, moment: datetime) -> List[Reminder]:
        logger.debug("Getting all reminders before %s", moment)
        return await self.get_between(EPOCH, moment)
