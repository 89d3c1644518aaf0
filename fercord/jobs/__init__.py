from .base import Job, JobContext, JobState, Messenger
from .reminders import RemindersCleanupJob, RemindersJob, default_jobs
from .scheduler import JobScheduler, TickReport, next_tick_delay

__all__ = [
    "Job",
    "JobContext",
    "JobScheduler",
    "JobState",
    "Messenger",
    "RemindersCleanupJob",
    "RemindersJob",
    "TickReport",
    "default_jobs",
    "next_tick_delay",
]
