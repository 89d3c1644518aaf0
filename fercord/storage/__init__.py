from .factory import build_reminder_repository
from .guild_timezone import GuildTimezone, GuildTimezoneStore
from .kv import KVClient
from .reminders import Reminder, ReminderRepository

__all__ = [
    "GuildTimezone",
    "GuildTimezoneStore",
    "KVClient",
    "Reminder",
    "ReminderRepository",
    "build_reminder_repository",
]
