from __future__ import annotations

import logging
from typing import Any, Iterable, Protocol

import docker
from docker.errors import DockerException
from requests.exceptions import RequestException

from .errors import ConfigError, DiscoveryError
from .models import Target


class Discoverer(Protocol):
    def discover(self) -> list[Target]: ...


def container_address(attrs: dict[str, Any]) -> str:
    """First network IP of a container, or '' when it has none (host net, stopped)."""
    networks = (attrs.get("NetworkSettings") or {}).get("Networks") or {}
    for net in networks.values():
        ip = (net or {}).get("IPAddress") or ""
        if ip:
            return ip
    return ""


def container_name(attrs: dict[str, Any], fallback: str = "") -> str:
    names = attrs.get("Names")
    if names:
        return str(names[0]).lstrip("/")
    return str(attrs.get("Name") or fallback).lstrip("/")


def dedupe_targets(targets: Iterable[Target], log: logging.Logger) -> list[Target]:
    """Keep the first target per address; addresses identify targets within a cycle."""
    seen: set[str] = set()
    out: list[Target] = []
    for t in targets:
        if t.address and t.address in seen:
            log.warning("Duplicate address %s reported for %s, ignoring it", t.address, t.describe())
            continue
        seen.add(t.address)
        out.append(t)
    return out


class DockerDiscovery:
    """Lists containers through the Docker Engine API."""

    def __init__(
        self,
        base_url: str = "unix:///var/run/docker.sock",
        label: str | None = None,
        client: docker.DockerClient | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.log = logger or logging.getLogger(__name__)
        self.label = label
        if client is not None:
            self._client = client
            return
        try:
            self._client = docker.DockerClient(base_url=base_url)
        except DockerException as e:
            raise ConfigError(f"Cannot build docker client for {base_url}: {e}") from e

    def discover(self) -> list[Target]:
        filters: dict[str, Any] = {}
        if self.label:
            filters["label"] = [self.label]
        try:
            # sparse: attrs come straight from the list call, no per-container inspect
            containers = self._client.containers.list(filters=filters, sparse=True)
        except (DockerException, RequestException) as e:
            raise DiscoveryError(f"Container list failed: {type(e).__name__}: {e}") from e

        targets: list[Target] = []
        for c in containers:
            attrs = c.attrs or {}
            state = attrs.get("State")
            if isinstance(state, dict):
                # `docker inspect` shape
                state = state.get("Status")
            targets.append(
                Target(
                    address=container_address(attrs),
                    name=container_name(attrs, fallback=getattr(c, "name", "") or ""),
                    state=str(state or getattr(c, "status", "") or ""),
                )
            )
        targets = dedupe_targets(targets, self.log)
        self.log.debug("Discovered %d containers: %s", len(targets), ", ".join(t.describe() for t in targets))
        return targets

    def close(self) -> None:
        self._client.close()


class StaticDiscovery:
    """Fixed target list (CLI --target, tests)."""

    def __init__(self, targets: Iterable[Target], logger: logging.Logger | None = None) -> None:
        self.log = logger or logging.getLogger(__name__)
        self._targets = dedupe_targets(targets, self.log)

    def discover(self) -> list[Target]:
        return list(self._targets)
