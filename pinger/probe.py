from __future__ import annotations

import ipaddress
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Protocol, Sequence, TypeVar

import icmplib
from icmplib.exceptions import ICMPLibError, NameLookupError, SocketAddressError, SocketPermissionError

from .errors import ProbeError, ProbeInitError, ProbeTimeoutError
from .models import UNREACHABLE_LATENCY, ProbeResult, Target, utc_now


T = TypeVar("T")
R = TypeVar("R")


class Prober(Protocol):
    def probe(self, target: Target) -> ProbeResult: ...


def fan_out(fn: Callable[[T], R], items: Sequence[T], max_workers: int) -> list[R]:
    """Run ``fn`` once per item on a fresh pool and wait for all of them.

    Result ``i`` belongs to ``items[i]``. ``fn`` must not raise; callers wrap
    their own error handling so one item never affects another.
    """
    if not items:
        return []
    workers = max(1, min(len(items), max_workers))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="pinger") as pool:
        futures = [pool.submit(fn, item) for item in items]
        return [f.result() for f in futures]


class IcmpProber:
    """ICMP echo probe: ``count`` requests, each with its own timeout."""

    def __init__(
        self,
        count: int = 5,
        timeout_s: float = 2.0,
        interval_s: float = 0.2,
        privileged: bool = True,
        logger: logging.Logger | None = None,
    ) -> None:
        self.count = max(1, int(count))
        self.timeout_s = timeout_s
        self.interval_s = interval_s
        self.privileged = privileged
        self.log = logger or logging.getLogger(__name__)

    def probe(self, target: Target) -> ProbeResult:
        try:
            ipaddress.ip_address(target.address)
        except ValueError as e:
            raise ProbeInitError(f"Invalid address {target.address!r}", address=target.address) from e

        self.log.debug("Pinging %s", target.describe())
        started = utc_now()
        try:
            host = icmplib.ping(
                target.address,
                count=self.count,
                interval=self.interval_s,
                timeout=self.timeout_s,
                privileged=self.privileged,
            )
        except (NameLookupError, SocketAddressError, SocketPermissionError) as e:
            raise ProbeInitError(f"Ping init failed: {type(e).__name__}: {e}", address=target.address) from e
        except (ICMPLibError, OSError) as e:
            raise ProbeTimeoutError(f"Ping execution failed: {type(e).__name__}: {e}", address=target.address) from e

        reachable = host.packets_received > 0
        # icmplib reports RTTs in milliseconds
        latency_us = int(round(host.avg_rtt * 1000)) if reachable else UNREACHABLE_LATENCY
        self.log.debug(
            "Ping stats for %s: sent=%d received=%d avg=%dus",
            target.describe(),
            host.packets_sent,
            host.packets_received,
            latency_us,
        )
        return ProbeResult(
            target=target,
            reachable=reachable,
            latency_us=latency_us,
            timestamp=started,
            packets_sent=host.packets_sent,
            packets_received=host.packets_received,
        )


class ProbeEngine:
    """Probes a cycle's targets concurrently, one task per target."""

    def __init__(self, prober: Prober, logger: logging.Logger | None = None) -> None:
        self.prober = prober
        self.log = logger or logging.getLogger(__name__)

    def _probe_one(self, target: Target) -> ProbeResult | None:
        try:
            return self.prober.probe(target)
        except ProbeError as e:
            self.log.warning("Ping failed for container %s: %s", target.describe(), e)
        except Exception:
            self.log.exception("Unexpected probe failure for container %s", target.describe())
        return None

    def probe_all(self, targets: Sequence[Target]) -> list[ProbeResult | None]:
        """Return one slot per target; ``None`` where the probe could not run."""
        # One thread per target: a dead container must not hold a slot another one waits for.
        return fan_out(self._probe_one, targets, max_workers=len(targets))
