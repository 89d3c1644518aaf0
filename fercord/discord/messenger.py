from __future__ import annotations

import logging

import discord


logger = logging.getLogger("fercord")


class DiscordMessenger:
    """Sends job output through a connected discord.py client."""

    def __init__(self, client: discord.Client) -> None:
        self.client = client

    async def send(self, channel_id: int, text: str) -> None:
        channel = self.client.get_channel(channel_id)
        if channel is None:
            channel = await self.client.fetch_channel(channel_id)
        if not isinstance(channel, discord.abc.Messageable):
            raise TypeError(f"Channel {channel_id} does not accept messages")
        await channel.send(text)

    async def mention(self, user_id: int) -> str:
        user = self.client.get_user(user_id)
        if user is None:
            user = await self.client.fetch_user(user_id)
        return user.mention
