from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from .models import RemoteStatusRecord


# Schema 2: name + status are tracked and ping_time is integer microseconds.
# Schema 1 (float milliseconds, no name/status) is not accepted.
STATUS_SCHEMA_VERSION = 2


class StatusUpdateRequest(BaseModel):
    ping_time: int = Field(..., ge=-1, description="Average RTT in microseconds, -1 if unreachable")
    last_successful_ping: str = Field(..., description="RFC 3339 timestamp")
    name: str | None = None
    status: str | None = None


class StatusCreateRequest(BaseModel):
    ip_address: str
    ping_time: int = Field(..., ge=-1)
    last_successful_ping: str
    name: str = ""
    status: str = ""


class StatusRecordResponse(BaseModel):
    id: int
    ip_address: str = ""
    name: str = ""
    status: str = ""
    ping_time: int = -1
    last_successful_ping: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_record(self) -> RemoteStatusRecord:
        return RemoteStatusRecord(
            id=self.id,
            address=self.ip_address,
            name=self.name,
            state=self.status,
            latency_us=self.ping_time,
            last_successful_ping=self.last_successful_ping,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
