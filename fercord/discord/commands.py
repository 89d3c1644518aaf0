from __future__ import annotations

import logging
from itertools import islice
from typing import Any

import discord
from discord import app_commands

from ..errors import FercordError, ParseError, ReminderTooSoonError
from ..reminders import parse_failure_message, schedule_reminder
from ..storage.guild_timezone import GuildTimezone
from ..time_parser import filter_timezones


logger = logging.getLogger("fercord")

# Discord rejects autocomplete responses with more than 25 choices.
MAX_AUTOCOMPLETE_CHOICES = 25


def timezone_choices(current: str) -> list[app_commands.Choice[str]]:
    names = islice(filter_timezones(current), MAX_AUTOCOMPLETE_CHOICES)
    return [app_commands.Choice(name=name, value=name) for name in names]


async def set_timezone(bot: Any, interaction: discord.Interaction, timezone: str) -> None:
    await interaction.response.defer(ephemeral=True)
    guild_id = interaction.guild_id
    if guild_id is None:
        logger.warning("Timezone command used outside of a guild")
        await interaction.followup.send("Could not determine the guild id", ephemeral=True)
        return

    name = timezone.strip()
    try:
        GuildTimezone(guild_id=guild_id, timezone=name).to_zoneinfo()
    except ValueError:
        await interaction.followup.send(f"{name or timezone!r} is not a timezone I know.", ephemeral=True)
        return

    try:
        await bot.timezones.set_timezone(guild_id, name)
    except FercordError:
        logger.exception("Error setting the timezone for guild %s", guild_id)
        await interaction.followup.send("Error setting the timezone for the server.", ephemeral=True)
        return
    await interaction.followup.send(f"Set timezone {name} for the server.", ephemeral=True)


async def create_reminder(bot: Any, interaction: discord.Interaction, when: str, what: str) -> None:
    await interaction.response.defer(ephemeral=True)
    try:
        scheduled = await schedule_reminder(
            bot.repository,
            bot.timezones,
            guild_id=interaction.guild_id,
            channel_id=interaction.channel_id,
            user_id=interaction.user.id,
            when_text=when,
            what=what,
            min_interval=bot.settings.job_interval,
        )
    except ReminderTooSoonError as exc:
        await interaction.followup.send(str(exc), ephemeral=True)
        return
    except ParseError:
        logger.debug("Could not parse reminder time %r", when, exc_info=True)
        await interaction.followup.send(parse_failure_message(when), ephemeral=True)
        return
    except FercordError:
        logger.exception("Error saving reminder for user %s", interaction.user.id)
        await interaction.followup.send("Something went wrong while saving your reminder.", ephemeral=True)
        return
    await interaction.followup.send(scheduled.confirmation(), ephemeral=True)


def register_commands(tree: app_commands.CommandTree, bot: Any) -> None:
    @tree.command(name="timezone", description="Set the timezone for this server (used by time related commands).")
    @app_commands.describe(
        timezone="The IANA name of the timezone. Type the first 3 letters of the timezone to autocomplete."
    )
    async def timezone_command(interaction: discord.Interaction, timezone: str) -> None:
        await set_timezone(bot, interaction, timezone)

    @timezone_command.autocomplete("timezone")
    async def timezone_autocomplete(interaction: discord.Interaction, current: str) -> list[app_commands.Choice[str]]:
        return timezone_choices(current)

    @tree.command(name="reminder", description="Create a reminder")
    @app_commands.describe(when="When should I remind you?", what="What should I remind you of?")
    async def reminder_command(interaction: discord.Interaction, when: str, what: str) -> None:
        await create_reminder(bot, interaction, when, what)
