from __future__ import annotations


class PingerError(Exception):
    """Base exception for the pinger."""


class ConfigError(PingerError):
    """Invalid or missing configuration."""


class DiscoveryError(PingerError):
    """The runtime could not list containers; the whole cycle is skipped."""


class ProbeError(PingerError):
    def __init__(self, message: str, *, address: str = "") -> None:
        self.address = address
        super().__init__(message)


class ProbeInitError(ProbeError):
    """The probe could not even be started (bad address, no socket permission)."""


class ProbeTimeoutError(ProbeError):
    """The probe started but failed while running."""


class StoreError(PingerError):
    """Status store call failed (network error or unexpected status code)."""

    def __init__(self, message: str, *, status_code: int | None = None, endpoint: str = "") -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class StatusNotFound(StoreError):
    """PATCH was rejected because the store has no record for the address."""


class StatusConflict(StoreError):
    """POST was rejected because a record for the address already exists."""


class PublishError(PingerError):
    def __init__(self, message: str, *, address: str = "") -> None:
        self.address = address
        super().__init__(message)


class CleanupError(PingerError):
    pass


class CleanupListError(CleanupError):
    """Could not fetch the remote records, cleanup skipped."""


class CleanupDeleteError(CleanupError):
    def __init__(self, message: str, *, address: str = "") -> None:
        self.address = address
        super().__init__(message)
