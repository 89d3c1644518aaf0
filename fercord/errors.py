from __future__ import annotations


class FercordError(Exception):
    """Base class for all errors raised by the bot core."""


class ParseError(FercordError, ValueError):
    """A time phrase could not be turned into a moment."""


class StorageError(FercordError, RuntimeError):
    """Database or key-value store I/O failed, or returned unusable data."""


class ConversionError(FercordError, ValueError):
    """A stored identifier could not be converted back to a 64-bit unsigned integer."""


class ConfigurationError(FercordError, ValueError):
    pass


class ReminderTooSoonError(ParseError):
    """A reminder was parsed fine but falls due before the scheduler could deliver it."""


class CorruptRecordError(StorageError):
    """A stored record exists but cannot be decoded into its type."""
