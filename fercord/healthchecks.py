from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict, dataclass

from .config import Settings
from .errors import FercordError
from .storage import KVClient, build_reminder_repository


logger = logging.getLogger("fercord")


@dataclass(slots=True)
class HealthCheck:
    time: int
    check_type: str
    success: bool


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


async def _check_database(settings: Settings) -> HealthCheck:
    started = time.monotonic()
    success = False
    repository = None
    try:
        repository = build_reminder_repository(
            settings.database_url,
            max_pool_size=settings.postgres_pool_max_size,
        )
        await repository.init()
        await repository.ping()
        success = True
    except (FercordError, OSError, RuntimeError) as exc:
        logger.warning("Database health check failed: %s", exc)
    finally:
        if repository is not None:
            try:
                await repository.close()
            except (FercordError, OSError, RuntimeError) as exc:
                logger.debug("Closing the repository after the health check failed: %s", exc)
    return HealthCheck(time=_elapsed_ms(started), check_type="Database", success=success)


async def _check_kv(settings: Settings) -> HealthCheck:
    started = time.monotonic()
    success = False
    kv = None
    try:
        kv = KVClient(settings.redis_url, connect_timeout=settings.kv_connect_timeout_seconds)
        await kv.connection_check()
        success = True
    except (FercordError, ValueError) as exc:
        logger.warning("KV health check failed: %s", exc)
    finally:
        if kv is not None:
            try:
                await kv.close()
            except Exception as exc:
                logger.debug("Closing the kv client after the health check failed: %s", exc)
    return HealthCheck(time=_elapsed_ms(started), check_type="Redis", success=success)


async def perform_healthchecks(settings: Settings) -> str:
    """Probe the database and the KV store, reporting each as a JSON list entry.

    Unreachable backends show up as `"success": false`; this never raises for them.
    """
    logger.debug("Performing health checks")
    checks = [await _check_database(settings), await _check_kv(settings)]
    return json.dumps([asdict(check) for check in checks], indent=2)
