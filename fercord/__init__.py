"""Discord reminder bot: scheduled reminder delivery backed by SQL and Redis."""

__version__ = "0.1.0"
