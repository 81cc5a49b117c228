from __future__ import annotations

import logging
import time
from threading import Event, Thread
from typing import Sequence

from .discovery import Discoverer
from .errors import (
    CleanupDeleteError,
    CleanupListError,
    PingerError,
    PublishError,
    StatusConflict,
    StatusNotFound,
    StoreError,
)
from .models import CycleReport, Phase, ProbeResult, Target, utc_now
from .probe import ProbeEngine, fan_out
from .store import StatusDeleter, StatusLister, StatusWriter


UPDATED = "updated"
CREATED = "created"
FAILED = "failed"


class Reconciler:
    """Periodically reconciles discovered containers with the status store.

    One cycle: discover -> probe (concurrently) -> publish reachable results
    -> delete records of containers that are gone. Cycles never overlap.
    """

    def __init__(
        self,
        discoverer: Discoverer,
        engine: ProbeEngine,
        writer: StatusWriter,
        lister: StatusLister,
        deleter: StatusDeleter,
        interval_s: float = 10.0,
        max_workers: int = 64,
        logger: logging.Logger | None = None,
    ) -> None:
        self.discoverer = discoverer
        self.engine = engine
        self.writer = writer
        self.lister = lister
        self.deleter = deleter
        self.interval_s = max(0.01, float(interval_s))
        self.max_workers = max(1, int(max_workers))
        self.log = logger or logging.getLogger(__name__)
        self.phase = Phase.IDLE
        self.last_report: CycleReport | None = None
        self._stop = Event()
        self._thr: Thread | None = None

    # -- loop -----------------------------------------------------------

    def start(self, run_immediately: bool = False) -> None:
        if self._thr and self._thr.is_alive():
            return
        self._stop.clear()
        self._thr = Thread(target=self.run, args=(self._stop, run_immediately), name="pinger-loop", daemon=True)
        self._thr.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thr:
            self._thr.join(timeout)

    def run(self, stop: Event, run_immediately: bool = False) -> None:
        """Tick until ``stop`` is set. Cancellation is honoured only between cycles."""
        self.log.info("Starting monitoring with interval %ss", self.interval_s)
        next_tick = time.monotonic() + (0 if run_immediately else self.interval_s)
        while not stop.wait(max(0.0, next_tick - time.monotonic())):
            self._tick()
            # Skip ticks missed while the cycle ran long instead of bunching them up.
            now = time.monotonic()
            next_tick += self.interval_s
            if next_tick <= now:
                missed = int((now - next_tick) // self.interval_s) + 1
                self.log.warning("Cycle overran the poll interval, skipping %d tick(s)", missed)
                next_tick += missed * self.interval_s
        self.log.info("Shutting down pinger loop")

    def _tick(self) -> None:
        try:
            self.run_cycle()
        except PingerError as e:
            self.log.error("Monitoring cycle failed: %s", e)
        except Exception:
            self.log.exception("Monitoring cycle crashed")
        finally:
            self.phase = Phase.IDLE

    # -- one cycle ------------------------------------------------------

    def run_cycle(self) -> CycleReport:
        """Run one full pass. Raises DiscoveryError or CleanupError."""
        report = CycleReport()
        self.last_report = report

        self.phase = Phase.DISCOVERING
        targets = self.discoverer.discover()
        report.discovered = len(targets)

        self.phase = Phase.PROBING
        results = self.engine.probe_all(targets)
        report.probed = sum(1 for r in results if r is not None)
        reachable = [r for r in results if r is not None and r.reachable]
        report.reachable = len(reachable)
        for r in results:
            if r is not None and not r.reachable:
                self.log.info("Skipping update for container %s as ping was not successful", r.target.describe())

        self.phase = Phase.PUBLISHING
        for outcome in fan_out(self._publish, reachable, self.max_workers):
            if outcome == UPDATED:
                report.updated += 1
            elif outcome == CREATED:
                report.created += 1
            else:
                report.publish_failed += 1

        self.phase = Phase.GARBAGE_COLLECTING
        try:
            report.deleted = self.cleanup(targets)
        finally:
            report.finished_at = utc_now()
            self.phase = Phase.IDLE

        self.log.info("Cycle finished: %s", report.summary())
        return report

    def _publish(self, result: ProbeResult) -> str:
        t = result.target
        try:
            return self.upsert(result)
        except PublishError as e:
            self.log.error("Failed to update status for container %s: %s", t.describe(), e)
        except Exception:
            self.log.exception("Unexpected publish failure for container %s", t.describe())
        return FAILED

    def upsert(self, result: ProbeResult) -> str:
        """update, falling back to create when the store has no record yet."""
        t = result.target
        args = (t.address, result.latency_us, t.name, t.state)
        try:
            try:
                self.writer.update(*args, seen_at=result.timestamp)
                self.log.debug("Updated status for container %s: %dus", t.describe(), result.latency_us)
                return UPDATED
            except StatusNotFound as e:
                self.log.info("No status for container %s yet, creating it (%s)", t.describe(), e)

            try:
                self.writer.create(*args, seen_at=result.timestamp)
                return CREATED
            except StatusConflict:
                # Someone created it between our PATCH and POST.
                self.log.info("Status for container %s appeared concurrently, updating instead", t.describe())
                self.writer.update(*args, seen_at=result.timestamp)
                return UPDATED
        except StoreError as e:
            raise PublishError(str(e), address=t.address) from e

    def cleanup(self, targets: Sequence[Target]) -> int:
        """Delete records of addresses that were not discovered this cycle.

        Active means discovered, not reachable: a container whose ping failed
        keeps its record. The first failed delete aborts the rest of the pass.
        """
        active = {t.address for t in targets if t.address}
        try:
            records = self.lister.list()
        except StoreError as e:
            raise CleanupListError(f"Failed to get statuses: {e}") from e

        deleted = 0
        for rec in records:
            if not rec.address:
                self.log.debug("Skipping deletion for record %s with empty address", rec.name or rec.id)
                continue
            if rec.address in active:
                continue
            self.log.info("Container %s (%s) is gone, deleting its status", rec.name or "?", rec.address)
            try:
                self.deleter.delete(rec.address)
            except StoreError as e:
                raise CleanupDeleteError(f"Failed to delete status for {rec.address}: {e}", address=rec.address) from e
            deleted += 1
        return deleted
