from __future__ import annotations

import os
import tomllib
import uuid
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, Mapping

from dotenv import load_dotenv

from .errors import ConfigurationError


load_dotenv()

ENV_PREFIX = "FERCORD_"

SUPPORTED_DATABASE_SCHEMES = ("sqlite://", "postgres://", "postgresql://")


def _env_lookup(name: str) -> str | None:
    key = f"{ENV_PREFIX}{name}"
    # Be tolerant to UTF-8 BOM accidentally saved in .env key names.
    for candidate in (key, f"\ufeff{key}"):
        raw = os.getenv(candidate)
        if raw is not None:
            return raw
    return None


def _clean_token(value: str) -> str:
    cleaned = value.strip()
    if cleaned.lower().startswith("bot "):
        cleaned = cleaned[4:].strip()
    if (cleaned.startswith('"') and cleaned.endswith('"')) or (
        cleaned.startswith("'") and cleaned.endswith("'")
    ):
        cleaned = cleaned[1:-1].strip()
    return cleaned


def _as_str(raw: object, default: str) -> str:
    if raw is None:
        return default
    value = str(raw).strip()
    return value if value else default


def _as_int(name: str, raw: object, default: int) -> int:
    if raw is None:
        return default
    try:
        return int(str(raw).strip())
    except ValueError as exc:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from exc


def _as_float(name: str, raw: object, default: float) -> float:
    if raw is None:
        return default
    try:
        return float(str(raw).strip())
    except ValueError as exc:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}") from exc


def _as_uuid(raw: object) -> uuid.UUID:
    if raw is None or not str(raw).strip():
        return uuid.uuid4()
    try:
        return uuid.UUID(str(raw).strip())
    except ValueError as exc:
        raise ConfigurationError(f"{ENV_PREFIX}SHARD_KEY is not a valid UUID: {raw!r}") from exc


@dataclass(slots=True)
class Settings:
    discord_token: str
    database_url: str
    redis_url: str
    job_interval_min: int
    shard_key: uuid.UUID
    kv_connect_timeout_seconds: float = 15.0
    postgres_pool_max_size: int = 2

    @classmethod
    def from_env(cls) -> "Settings":
        return cls._from_mapping({})

    @classmethod
    def from_env_and_file(cls, path: str | Path) -> "Settings":
        """File values first, then any FERCORD_* environment variable on top."""
        file_path = Path(path).expanduser()
        try:
            with file_path.open("rb") as handle:
                data = tomllib.load(handle)
        except FileNotFoundError as exc:
            raise ConfigurationError(f"Config file not found: {file_path}") from exc
        except tomllib.TOMLDecodeError as exc:
            raise ConfigurationError(f"Config file {file_path} is not valid TOML: {exc}") from exc
        return cls._from_mapping(data)

    @classmethod
    def _from_mapping(cls, data: Mapping[str, Any]) -> "Settings":
        def pick(name: str) -> object:
            env_value = _env_lookup(name.upper())
            if env_value is not None:
                return env_value
            return data.get(name)

        return cls(
            discord_token=_clean_token(_as_str(pick("discord_token"), "")),
            database_url=_as_str(pick("database_url"), "sqlite://./data/fercord.db"),
            redis_url=_as_str(pick("redis_url"), "redis://localhost:6379/0"),
            job_interval_min=_as_int("JOB_INTERVAL_MIN", pick("job_interval_min"), 1),
            shard_key=_as_uuid(pick("shard_key")),
            kv_connect_timeout_seconds=_as_float(
                "KV_CONNECT_TIMEOUT_SECONDS", pick("kv_connect_timeout_seconds"), 15.0
            ),
            postgres_pool_max_size=_as_int("POSTGRES_POOL_MAX_SIZE", pick("postgres_pool_max_size"), 2),
        )

    @property
    def job_interval(self) -> timedelta:
        return timedelta(minutes=self.job_interval_min)

    def validate(self) -> None:
        if not self.discord_token:
            raise ConfigurationError("FERCORD_DISCORD_TOKEN is required")
        if self.discord_token == "put_your_discord_bot_token_here":
            raise ConfigurationError("FERCORD_DISCORD_TOKEN is still placeholder")
        self.validate_storage()

    def validate_storage(self) -> None:
        if not self.database_url.lower().startswith(SUPPORTED_DATABASE_SCHEMES):
            raise ConfigurationError(
                "FERCORD_DATABASE_URL must start with one of: " + ", ".join(SUPPORTED_DATABASE_SCHEMES)
            )
        if not self.redis_url:
            raise ConfigurationError("FERCORD_REDIS_URL cannot be empty")
        if self.job_interval_min < 1:
            raise ConfigurationError("FERCORD_JOB_INTERVAL_MIN must be >= 1")
        if self.kv_connect_timeout_seconds <= 0:
            raise ConfigurationError("FERCORD_KV_CONNECT_TIMEOUT_SECONDS must be > 0")
        if self.postgres_pool_max_size < 1:
            raise ConfigurationError("FERCORD_POSTGRES_POOL_MAX_SIZE must be >= 1")
