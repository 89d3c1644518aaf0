from __future__ import annotations

import logging

from ..errors import FercordError
from .base import Job, JobContext


logger = logging.getLogger("fercord")


def reminder_text(mention: str, what: str) -> str:
    return f"{mention} I was supposed to remind you of {what}"


class RemindersJob(Job):
    """Delivers every reminder that fell due inside the tick's window."""

    name = "reminders"

    async def run(self, context: JobContext) -> int:
        reminders = await context.repository.get_between(context.last_run, context.now)
        logger.debug("Found %s reminders due between %s and %s", len(reminders), context.last_run, context.now)
        sent = 0
        for reminder in reminders:
            try:
                mention = await context.messenger.mention(reminder.who)
                await context.messenger.send(reminder.channel, reminder_text(mention, reminder.what))
            except Exception:
                logger.exception(
                    "Could not deliver reminder id=%s to channel=%s user=%s",
                    reminder.id,
                    reminder.channel,
                    reminder.who,
                )
                continue
            sent += 1
        return sent


class RemindersCleanupJob(Job):
    """Deletes reminders old enough that no future window can include them."""

    name = "reminders-cleanup"

    async def run(self, context: JobContext) -> int:
        cutoff = context.now - 2 * context.settings.job_interval
        try:
            reminders = await context.repository.get_before(cutoff)
        except FercordError:
            logger.exception("Could not fetch reminders before %s for cleanup", cutoff)
            return 0
        if not reminders:
            return 0
        logger.debug("Cleaning up %s reminders before %s", len(reminders), cutoff)
        await context.repository.delete_many([reminder.id for reminder in reminders])
        return len(reminders)


def default_jobs() -> list[Job]:
    return [RemindersJob(), RemindersCleanupJob()]
