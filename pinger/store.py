from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Protocol
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from .api_models import STATUS_SCHEMA_VERSION, StatusCreateRequest, StatusRecordResponse, StatusUpdateRequest
from .errors import StatusConflict, StatusNotFound, StoreError
from .models import RemoteStatusRecord, rfc3339, utc_now


class StatusWriter(Protocol):
    def update(self, address: str, latency_us: int, name: str, state: str, seen_at: datetime | None = None) -> None: ...

    def create(self, address: str, latency_us: int, name: str, state: str, seen_at: datetime | None = None) -> None: ...


class StatusLister(Protocol):
    def list(self) -> list[RemoteStatusRecord]: ...


class StatusDeleter(Protocol):
    def delete(self, address: str) -> None: ...


class StatusStoreClient:
    """HTTP client for the container status store.

    Not idempotent on its own: ``update`` fails with ``StatusNotFound`` when
    the store has no record yet and the caller decides whether to ``create``.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout_s: float = 10.0,
        http: httpx.Client | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.log = logger or logging.getLogger(__name__)
        self._headers = {
            "X-Api-Key": api_key,
            "X-Status-Schema": str(STATUS_SCHEMA_VERSION),
            "Accept": "application/json",
        }
        self._owns_http = http is None
        self._http = http or httpx.Client(timeout=timeout_s, follow_redirects=False)
        self._timeout_s = timeout_s

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def __enter__(self) -> StatusStoreClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _url(self, address: str | None = None) -> str:
        if address is None:
            return f"{self.base_url}/container_status"
        return f"{self.base_url}/container_status/{quote(address, safe='')}"

    def _request(self, method: str, url: str, body: dict[str, Any] | None = None) -> httpx.Response:
        try:
            resp = self._http.request(method, url, json=body, headers=self._headers, timeout=self._timeout_s)
        except httpx.HTTPError as e:
            raise StoreError(f"{method} {url} failed: {type(e).__name__}: {e}", endpoint=url) from e
        self.log.debug("%s %s -> %s", method, url, resp.status_code)
        return resp

    @staticmethod
    def _error(method: str, url: str, resp: httpx.Response, cls: type[StoreError] = StoreError) -> StoreError:
        detail = resp.text.strip()[:200]
        return cls(f"{method} {url} returned HTTP {resp.status_code}: {detail}", status_code=resp.status_code, endpoint=url)

    def update(self, address: str, latency_us: int, name: str, state: str, seen_at: datetime | None = None) -> None:
        url = self._url(address)
        body = StatusUpdateRequest(
            ping_time=latency_us,
            last_successful_ping=rfc3339(seen_at or utc_now()),
            name=name or None,
            status=state or None,
        ).model_dump(exclude_none=True)
        resp = self._request("PATCH", url, body)
        if resp.is_success:
            return
        # The store answers 404 (or another 4xx) when there is nothing to patch.
        if 400 <= resp.status_code < 500:
            raise self._error("PATCH", url, resp, StatusNotFound)
        raise self._error("PATCH", url, resp)

    def create(self, address: str, latency_us: int, name: str, state: str, seen_at: datetime | None = None) -> None:
        url = self._url()
        body = StatusCreateRequest(
            ip_address=address,
            ping_time=latency_us,
            last_successful_ping=rfc3339(seen_at or utc_now()),
            name=name,
            status=state,
        ).model_dump()
        resp = self._request("POST", url, body)
        if resp.is_success:
            return
        if resp.status_code == 409:
            raise self._error("POST", url, resp, StatusConflict)
        raise self._error("POST", url, resp)

    def list(self) -> list[RemoteStatusRecord]:
        url = self._url()
        resp = self._request("GET", url)
        if not resp.is_success:
            raise self._error("GET", url, resp)
        try:
            payload = resp.json()
        except ValueError as e:
            raise StoreError(f"GET {url} returned invalid JSON", status_code=resp.status_code, endpoint=url) from e
        if not isinstance(payload, list):
            raise StoreError(f"GET {url} returned {type(payload).__name__}, expected a list", endpoint=url)
        try:
            return [StatusRecordResponse.model_validate(item).to_record() for item in payload]
        except ValidationError as e:
            raise StoreError(f"GET {url} returned malformed records: {e}", endpoint=url) from e

    def delete(self, address: str) -> None:
        url = self._url(address)
        resp = self._request("DELETE", url)
        if resp.is_success or resp.status_code == 404:
            return
        raise self._error("DELETE", url, resp)
