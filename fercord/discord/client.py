from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Sequence

import discord
from discord import app_commands

from ..config import Settings
from ..jobs import Job, JobScheduler, default_jobs
from ..storage import GuildTimezoneStore, KVClient, ReminderRepository
from .commands import register_commands
from .messenger import DiscordMessenger


logger = logging.getLogger("fercord")


class FercordDiscordBot(discord.Client):
    def __init__(
        self,
        settings: Settings,
        repository: ReminderRepository,
        kv: KVClient,
        *,
        jobs: Sequence[Job] | None = None,
    ) -> None:
        intents = discord.Intents.default()
        super().__init__(intents=intents)

        self.settings = settings
        self.repository = repository
        self.kv = kv
        self.timezones = GuildTimezoneStore(kv)
        self.messenger = DiscordMessenger(self)

        self.tree = app_commands.CommandTree(self)
        register_commands(self.tree, self)

        self.scheduler = JobScheduler(
            default_jobs() if jobs is None else jobs,
            shard_key=settings.shard_key,
            interval=settings.job_interval,
            kv=kv,
            repository=repository,
            settings=settings,
            messenger=self.messenger,
        )
        self.scheduler_task: asyncio.Task[None] | None = None

    async def setup_hook(self) -> None:
        await self.repository.init()
        await self.kv.connection_check()
        synced = await self.tree.sync()
        logger.info("Registered %s application commands", len(synced))
        logger.info("Setting up background jobs for shard %s", self.settings.shard_key)
        self.scheduler_task = asyncio.create_task(self.scheduler.run_forever(), name="job-scheduler")

    async def close(self) -> None:
        await self._cancel_task(self.scheduler_task)
        await self._run_shutdown_step("repository.close", self.repository.close(), timeout=6.0)
        await self._run_shutdown_step("kv.close", self.kv.close(), timeout=3.0)
        await self._run_shutdown_step("discord.Client.close", super().close(), timeout=6.0)

    async def _run_shutdown_step(self, label: str, coro: object, *, timeout: float) -> None:
        try:
            await asyncio.wait_for(coro, timeout=timeout)  # type: ignore[arg-type]
        except asyncio.TimeoutError:
            logger.warning("Shutdown step timed out: %s", label)
        except Exception as exc:
            logger.warning("Shutdown step failed: %s (%s)", label, exc)

    async def _cancel_task(self, task: asyncio.Task[None] | None) -> None:
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def on_ready(self) -> None:
        if self.user:
            logger.info("Connected as %s (%s)", self.user, self.user.id)
        await self.change_presence(activity=discord.Activity(type=discord.ActivityType.watching, name="all of you"))
