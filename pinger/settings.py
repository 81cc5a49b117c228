from __future__ import annotations

import os
from dataclasses import dataclass
from urllib.parse import urlparse

from .errors import ConfigError


LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # Loop
    poll_interval_s: float = _env_float("PINGER_POLL_INTERVAL_S", 10.0)
    max_workers: int = _env_int("PINGER_MAX_WORKERS", 64)

    # Status store
    backend_url: str = os.getenv("PINGER_BACKEND_URL", "http://localhost:8080/api/v1")
    backend_api_key: str | None = os.getenv("PINGER_BACKEND_API_KEY")
    http_timeout_s: float = _env_float("PINGER_HTTP_TIMEOUT_S", 10.0)

    # Docker
    docker_socket: str = os.getenv("PINGER_DOCKER_SOCKET", "/var/run/docker.sock")
    docker_label: str | None = os.getenv("PINGER_DOCKER_LABEL")

    # ICMP
    ping_count: int = _env_int("PINGER_PING_COUNT", 5)
    ping_timeout_s: float = _env_float("PINGER_PING_TIMEOUT_S", 2.0)
    ping_interval_s: float = _env_float("PINGER_PING_INTERVAL_S", 0.2)
    # Raw sockets need root/CAP_NET_RAW; unprivileged mode needs net.ipv4.ping_group_range.
    ping_privileged: bool = _env_bool("PINGER_PING_PRIVILEGED", True)

    # Logging
    log_level: str = os.getenv("PINGER_LOG_LEVEL", "INFO").upper()
    events_db: str | None = os.getenv("PINGER_EVENTS_DB")

    @property
    def docker_base_url(self) -> str:
        return f"unix://{self.docker_socket}"

    def validate(self, require_api_key: bool = True) -> None:
        if require_api_key and not self.backend_api_key:
            raise ConfigError("PINGER_BACKEND_API_KEY (or --api-key) is required.")
        parsed = urlparse(self.backend_url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ConfigError(f"Backend URL must be an absolute http(s) URL, got {self.backend_url!r}.")
        if self.poll_interval_s <= 0:
            raise ConfigError("Poll interval must be positive.")
        if self.ping_count < 1:
            raise ConfigError("Ping count must be at least 1.")
        if self.ping_timeout_s <= 0 or self.http_timeout_s <= 0:
            raise ConfigError("Timeouts must be positive.")
        if self.ping_interval_s < 0:
            raise ConfigError("Ping interval must not be negative.")
        if self.max_workers < 1:
            raise ConfigError("max_workers must be at least 1.")
        if self.log_level not in LOG_LEVELS:
            raise ConfigError(f"Unknown log level {self.log_level!r}; use one of {sorted(LOG_LEVELS)}.")


settings = Settings()
