from .client import FercordDiscordBot
from .messenger import DiscordMessenger

__all__ = ["DiscordMessenger", "FercordDiscordBot"]
