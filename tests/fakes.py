from datetime import datetime, timezone
from typing import Any, Callable

from fastapi import FastAPI, Header, HTTPException, Response

from pinger.errors import StatusConflict, StatusNotFound
from pinger.models import UNREACHABLE_LATENCY, ProbeResult, RemoteStatusRecord, Target


API_KEY = "test-key"


def make_store_app() -> FastAPI:
    """In-memory stand-in for the container status backend."""
    app = FastAPI()
    app.state.rows = {}
    app.state.next_id = 1
    app.state.fail_delete = set()
    app.state.requests = []

    def _auth(key: str | None) -> None:
        if key != API_KEY:
            raise HTTPException(status_code=401, detail="bad api key")

    @app.get("/api/v1/container_status")
    def list_statuses(x_api_key: str | None = Header(None)) -> list[dict[str, Any]]:
        _auth(x_api_key)
        app.state.requests.append(("GET", None, None))
        return list(app.state.rows.values())

    @app.post("/api/v1/container_status", status_code=201)
    def create_status(body: dict[str, Any], x_api_key: str | None = Header(None)) -> dict[str, Any]:
        _auth(x_api_key)
        app.state.requests.append(("POST", body["ip_address"], body))
        if body["ip_address"] in app.state.rows:
            raise HTTPException(status_code=409, detail="exists")
        now = datetime.now(timezone.utc).isoformat()
        row = {
            "id": app.state.next_id,
            "ip_address": body["ip_address"],
            "name": body.get("name", ""),
            "status": body.get("status", ""),
            "ping_time": body["ping_time"],
            "last_successful_ping": body["last_successful_ping"],
            "created_at": now,
            "updated_at": now,
        }
        app.state.next_id += 1
        app.state.rows[row["ip_address"]] = row
        return row

    @app.patch("/api/v1/container_status/{ip}")
    def update_status(ip: str, body: dict[str, Any], x_api_key: str | None = Header(None)) -> dict[str, Any]:
        _auth(x_api_key)
        app.state.requests.append(("PATCH", ip, body))
        row = app.state.rows.get(ip)
        if row is None:
            raise HTTPException(status_code=404, detail="not found")
        row["ping_time"] = body["ping_time"]
        row["last_successful_ping"] = body["last_successful_ping"]
        if "name" in body:
            row["name"] = body["name"]
        if "status" in body:
            row["status"] = body["status"]
        row["updated_at"] = datetime.now(timezone.utc).isoformat()
        return row

    @app.delete("/api/v1/container_status/{ip}", status_code=204)
    def delete_status(ip: str, x_api_key: str | None = Header(None)) -> Response:
        _auth(x_api_key)
        app.state.requests.append(("DELETE", ip, None))
        if ip in app.state.fail_delete:
            raise HTTPException(status_code=500, detail="db down")
        if app.state.rows.pop(ip, None) is None:
            raise HTTPException(status_code=404, detail="not found")
        return Response(status_code=204)

    return app


class FakeDiscoverer:
    def __init__(self, targets: list[Target] | None = None, error: Exception | None = None) -> None:
        self.targets = list(targets or [])
        self.error = error
        self.calls = 0

    def discover(self) -> list[Target]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.targets)


class FakeProber:
    """Latency per address; ``None`` = unreachable, an exception = probe failure."""

    def __init__(self, outcomes: dict[str, Any], on_call: Callable[[Target], None] | None = None) -> None:
        self.outcomes = outcomes
        self.on_call = on_call
        self.probed: list[str] = []

    def probe(self, target: Target) -> ProbeResult:
        if self.on_call is not None:
            self.on_call(target)
        self.probed.append(target.address)
        outcome = self.outcomes.get(target.address)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            return ProbeResult(target=target, reachable=False, latency_us=UNREACHABLE_LATENCY)
        return ProbeResult(target=target, reachable=True, latency_us=int(outcome))


class MemoryStore:
    """Implements update/create/list/delete and records every call."""

    def __init__(self, records: list[RemoteStatusRecord] | None = None) -> None:
        self.records: dict[str, RemoteStatusRecord] = {}
        self.calls: list[tuple] = []
        self.update_errors: dict[str, Exception] = {}
        self.create_errors: dict[str, Exception] = {}
        self.delete_errors: dict[str, Exception] = {}
        self.list_error: Exception | None = None
        self._next_id = 1
        for r in records or []:
            self._put(r.address, r.latency_us, r.name, r.state)

    def _put(self, address: str, latency_us: int, name: str, state: str) -> None:
        existing = self.records.get(address)
        rec_id = existing.id if existing else self._next_id
        if not existing:
            self._next_id += 1
        self.records[address] = RemoteStatusRecord(
            id=rec_id,
            address=address,
            name=name,
            state=state,
            latency_us=latency_us,
            last_successful_ping=None,
            created_at=None,
            updated_at=None,
        )

    def update(self, address, latency_us, name, state, seen_at=None) -> None:
        self.calls.append(("update", address, latency_us, name, state))
        if address in self.update_errors:
            raise self.update_errors[address]
        if address not in self.records:
            raise StatusNotFound(f"no record for {address}", status_code=404)
        self._put(address, latency_us, name, state)

    def create(self, address, latency_us, name, state, seen_at=None) -> None:
        self.calls.append(("create", address, latency_us, name, state))
        if address in self.create_errors:
            raise self.create_errors[address]
        if address in self.records:
            raise StatusConflict(f"{address} exists", status_code=409)
        self._put(address, latency_us, name, state)

    def list(self) -> list[RemoteStatusRecord]:
        self.calls.append(("list",))
        if self.list_error is not None:
            raise self.list_error
        return list(self.records.values())

    def delete(self, address: str) -> None:
        self.calls.append(("delete", address))
        if address in self.delete_errors:
            raise self.delete_errors[address]
        self.records.pop(address, None)

    def mutations(self):
        return [c for c in self.calls if c[0] != "list"]


def record(address: str, name: str = "", state: str = "running", latency_us: int = 100) -> RemoteStatusRecord:
    return RemoteStatusRecord(
        id=0,
        address=address,
        name=name or address,
        state=state,
        latency_us=latency_us,
        last_successful_ping=None,
        created_at=None,
        updated_at=None,
    )
