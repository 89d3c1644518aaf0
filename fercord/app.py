from __future__ import annotations

import asyncio
import json
import logging
import os
import sys

from .config import ENV_PREFIX, Settings
from .discord.client import FercordDiscordBot
from .healthchecks import perform_healthchecks
from .storage import KVClient, build_reminder_repository

logger = logging.getLogger("fercord")

CONFIG_FILE_ENV = f"{ENV_PREFIX}CONFIG_FILE"


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    logging.getLogger("discord").setLevel(logging.WARNING)
    logging.getLogger("discord.gateway").setLevel(logging.WARNING)
    logging.getLogger("discord.http").setLevel(logging.WARNING)


def load_settings() -> Settings:
    config_file = os.getenv(CONFIG_FILE_ENV, "").strip()
    if config_file:
        logger.debug("Reading configuration from %s", config_file)
        return Settings.from_env_and_file(config_file)
    return Settings.from_env()


def build_bot(settings: Settings) -> FercordDiscordBot:
    repository = build_reminder_repository(
        settings.database_url,
        max_pool_size=settings.postgres_pool_max_size,
    )
    kv = KVClient(settings.redis_url, connect_timeout=settings.kv_connect_timeout_seconds)
    return FercordDiscordBot(settings=settings, repository=repository, kv=kv)


async def _run_bot(settings: Settings) -> None:
    bot = build_bot(settings)
    async with bot:
        await bot.start(settings.discord_token)


def main() -> None:
    configure_logging()
    settings = load_settings()
    settings.validate()
    logger.info("Starting with shard key %s", settings.shard_key)
    try:
        asyncio.run(_run_bot(settings))
    except KeyboardInterrupt:
        logger.info("Shutdown requested, exiting.")


def healthcheck_main() -> None:
    configure_logging()
    settings = load_settings()
    settings.validate_storage()
    output = asyncio.run(perform_healthchecks(settings))
    print(output)
    healthy = all(check["success"] for check in json.loads(output))
    sys.exit(0 if healthy else 1)
