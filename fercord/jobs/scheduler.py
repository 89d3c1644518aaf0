"""Periodic driver for the registered jobs.

Each tick reads the shard's last run from the KV store, runs every job in
registration order over the window `[last_run, now)` and writes `now` back as
the new last run. Ticks are aligned to `start + k * interval` on a monotonic
clock; when a tick overruns, the missed boundaries are skipped instead of
being run back to back.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Sequence

from ..errors import CorruptRecordError, StorageError
from ..storage.utils import utc_now
from .base import Job, JobContext, JobState, Messenger


logger = logging.getLogger("fercord")


@dataclass(slots=True)
class TickReport:
    last_run: datetime | None
    now: datetime
    completed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    persisted: bool = False
    skipped: bool = False


def next_tick_delay(elapsed: float, interval: float) -> float:
    """Seconds until the next `k * interval` boundary strictly after `elapsed`."""
    if interval <= 0:
        raise ValueError("interval must be positive")
    elapsed = max(0.0, elapsed)
    return interval - (elapsed % interval)


class JobScheduler:
    def __init__(
        self,
        jobs: Sequence[Job],
        *,
        shard_key: uuid.UUID,
        interval: timedelta,
        kv,
        repository,
        settings,
        messenger: Messenger,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        if interval <= timedelta(0):
            raise ValueError("Job interval must be positive")
        self.jobs: list[Job] = list(jobs)
        self.shard_key = shard_key
        self.interval = interval
        self.kv = kv
        self.repository = repository
        self.settings = settings
        self.messenger = messenger
        self._clock = clock
        self._sleep = sleep
        self._monotonic = monotonic

        self.ticks = 0
        self.skipped_ticks = 0
        self.failures = 0

    async def _load_last_run(self, now: datetime) -> datetime:
        stored = await self.kv.get_json(JobState(job_shard_key=self.shard_key, last_run=now))
        if stored is None:
            logger.debug("No run state stored for shard %s, starting from now", self.shard_key)
            return now
        return stored.last_run

    async def tick(self) -> TickReport:
        now = self._clock()
        self.ticks += 1
        try:
            last_run = await self._load_last_run(now)
        except CorruptRecordError:
            # Overwritten by this tick's save, otherwise every later tick would skip too.
            logger.warning("Run state for shard %s is unreadable, starting from now", self.shard_key, exc_info=True)
            last_run = now
        except StorageError:
            self.skipped_ticks += 1
            logger.exception("Could not read run state for shard %s, skipping this tick", self.shard_key)
            return TickReport(last_run=None, now=now, skipped=True)

        report = TickReport(last_run=last_run, now=now)
        context = JobContext(
            last_run=last_run,
            now=now,
            repository=self.repository,
            kv=self.kv,
            settings=self.settings,
            messenger=self.messenger,
        )
        for job in self.jobs:
            try:
                await job.run(context)
            except asyncio.CancelledError:
                raise
            except Exception:
                self.failures += 1
                report.failed.append(job.name)
                logger.exception("Job %s failed for window %s - %s", job.name, last_run, now)
            else:
                report.completed.append(job.name)

        try:
            await self.kv.save_json(JobState(job_shard_key=self.shard_key, last_run=now))
        except StorageError:
            logger.exception("Could not persist run state for shard %s", self.shard_key)
        else:
            report.persisted = True
        return report

    async def run_forever(self, *, max_ticks: int | None = None) -> None:
        if not self.jobs:
            logger.info("No jobs registered, job scheduler not started")
            return

        interval_seconds = self.interval.total_seconds()
        started = self._monotonic()
        logger.info(
            "Job scheduler started: shard=%s interval=%ss jobs=%s",
            self.shard_key,
            interval_seconds,
            ", ".join(job.name for job in self.jobs),
        )
        runs = 0
        while True:
            try:
                report = await self.tick()
                if report.failed:
                    logger.warning("Tick finished with failed jobs: %s", ", ".join(report.failed))
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Job scheduler tick error")
            runs += 1
            if max_ticks is not None and runs >= max_ticks:
                return
            await self._sleep(next_tick_delay(self._monotonic() - started, interval_seconds))
