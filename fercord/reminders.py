from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from .errors import ReminderTooSoonError
from .storage.guild_timezone import GuildTimezoneStore
from .storage.reminders import Reminder, ReminderRepository
from .storage.utils import to_utc, utc_now
from .time_parser import parse_human_time


logger = logging.getLogger("fercord")

DISPLAY_FORMAT = "%d/%m/%Y %H:%M"


@dataclass(slots=True, frozen=True)
class ScheduledReminder:
    id: int
    local_when: datetime
    utc_when: datetime
    what: str

    def confirmation(self) -> str:
        return f"Got it! I will remind you at {self.local_when.strftime(DISPLAY_FORMAT)} about {self.what}"


def parse_failure_message(when_text: str) -> str:
    return f"What the hell am I supposed to make of {when_text}?!"


async def schedule_reminder(
    repository: ReminderRepository,
    timezones: GuildTimezoneStore,
    *,
    guild_id: int | None,
    channel_id: int,
    user_id: int,
    when_text: str,
    what: str,
    min_interval: timedelta,
    now: datetime | None = None,
) -> ScheduledReminder:
    """Parse `when_text` in the guild's timezone and store the reminder.

    Raises ParseError when the phrase cannot be parsed, and its subclass
    ReminderTooSoonError when it lands less than `min_interval` after `now`.
    """
    zone: ZoneInfo = await timezones.resolve(guild_id)
    current = to_utc(now) if now is not None else utc_now()
    local_when = parse_human_time(when_text, zone, current)
    utc_when = to_utc(local_when)
    if utc_when - current < min_interval:
        minutes = int(min_interval.total_seconds() // 60)
        raise ReminderTooSoonError(f"The minimum amount of time for a reminder is {minutes} minute.")

    reminder = Reminder(
        who=user_id,
        server=guild_id or 0,
        channel=channel_id,
        when=utc_when,
        what=what,
    )
    reminder_id = await repository.insert(reminder)
    logger.info("Scheduled reminder id=%s for user=%s at %s", reminder_id, user_id, utc_when.isoformat())
    return ScheduledReminder(id=reminder_id, local_when=local_when, utc_when=utc_when, what=what)
