from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


UNREACHABLE_LATENCY = -1


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def rfc3339(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(frozen=True)
class Target:
    address: str
    name: str
    state: str  # docker lifecycle: created|restarting|running|removing|paused|exited|dead

    def describe(self) -> str:
        return f"{self.name} ({self.address or '-'}) [{self.state}]"


@dataclass(frozen=True)
class ProbeResult:
    target: Target
    reachable: bool
    latency_us: int  # -1 when unreachable
    timestamp: datetime = field(default_factory=utc_now)
    packets_sent: int = 0
    packets_received: int = 0

    @property
    def address(self) -> str:
        return self.target.address


@dataclass(frozen=True)
class RemoteStatusRecord:
    id: int
    address: str
    name: str
    state: str
    latency_us: int
    last_successful_ping: datetime | None
    created_at: datetime | None
    updated_at: datetime | None


class Phase(str, Enum):
    IDLE = "idle"
    DISCOVERING = "discovering"
    PROBING = "probing"
    PUBLISHING = "publishing"
    GARBAGE_COLLECTING = "garbage_collecting"


@dataclass
class CycleReport:
    started_at: datetime = field(default_factory=utc_now)
    finished_at: datetime | None = None
    discovered: int = 0
    probed: int = 0
    reachable: int = 0
    updated: int = 0
    created: int = 0
    publish_failed: int = 0
    deleted: int = 0

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["started_at"] = rfc3339(self.started_at)
        data["finished_at"] = rfc3339(self.finished_at) if self.finished_at else None
        return data

    def summary(self) -> str:
        return (
            f"discovered={self.discovered} probed={self.probed} reachable={self.reachable} "
            f"updated={self.updated} created={self.created} publish_failed={self.publish_failed} "
            f"deleted={self.deleted}"
        )
