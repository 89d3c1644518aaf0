from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol

from ..storage.utils import to_utc

if TYPE_CHECKING:
    from ..config import Settings
    from ..storage.kv import KVClient
    from ..storage.reminders import ReminderRepository


class Messenger(Protocol):
    """Outbound side of the chat platform, as far as jobs are concerned."""

    async def send(self, channel_id: int, text: str) -> None: ...

    async def mention(self, user_id: int) -> str: ...


@dataclass(slots=True)
class JobState:
    """Last completed tick of one scheduler shard, stored under `jobstate_<uuid>`."""

    job_shard_key: uuid.UUID
    last_run: datetime

    def kv_key(self) -> str:
        return f"jobstate_{self.job_shard_key}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "last_run": to_utc(self.last_run).isoformat(),
            "job_shard_key": str(self.job_shard_key),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JobState":
        return cls(
            job_shard_key=uuid.UUID(str(data["job_shard_key"])),
            last_run=to_utc(datetime.fromisoformat(str(data["last_run"]))),
        )


@dataclass(slots=True, frozen=True)
class JobContext:
    """Everything a job may touch during one tick.

    `[last_run, now)` is the window this tick is responsible for.
    """

    last_run: datetime
    now: datetime
    repository: "ReminderRepository"
    kv: "KVClient"
    settings: "Settings"
    messenger: Messenger


class Job:
    name = "job"

    async def run(self, context: JobContext) -> Any:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r}>"
