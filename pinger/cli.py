from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
from dataclasses import replace
from threading import Event

from .discovery import Discoverer, DockerDiscovery, StaticDiscovery
from .errors import ConfigError, PingerError
from .events import EventJournalHandler, latest_events
from .models import Target, rfc3339
from .probe import IcmpProber, ProbeEngine
from .reconciler import Reconciler
from .settings import Settings, settings as default_settings
from .store import StatusStoreClient


log = logging.getLogger("pinger")


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def parse_target(raw: str) -> Target:
    address, _, name = raw.partition("=")
    address = address.strip()
    return Target(address=address, name=name.strip() or address, state="running")


def setup_logging(cfg: Settings) -> None:
    logging.basicConfig(
        level=cfg.log_level,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )
    if cfg.events_db:
        logging.getLogger("pinger").addHandler(EventJournalHandler(cfg.events_db, level=logging.INFO))


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="pinger", description="Container health pinger")
    p.add_argument("--api", help="Status store base URL (PINGER_BACKEND_URL)")
    p.add_argument("--api-key", help="Status store API key (PINGER_BACKEND_API_KEY)")
    p.add_argument("--interval", type=float, help="Seconds between cycles (PINGER_POLL_INTERVAL_S)")
    p.add_argument("--log-level", help="DEBUG|INFO|WARNING|ERROR (PINGER_LOG_LEVEL)")
    p.add_argument("--events-db", help="sqlite event journal path (PINGER_EVENTS_DB)")
    p.add_argument(
        "--target",
        action="append",
        default=[],
        metavar="ADDRESS[=NAME]",
        help="Ping a fixed address instead of discovering docker containers (repeatable)",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    s_run = sub.add_parser("run", help="Run the reconciliation loop until SIGINT/SIGTERM")
    s_run.add_argument("--now", action="store_true", help="Run the first cycle immediately")

    sub.add_parser("once", help="Run a single cycle and print its report")
    sub.add_parser("statuses", help="List records in the status store")

    s_ev = sub.add_parser("events", help="Show the event journal")
    s_ev.add_argument("--limit", type=int, default=20)
    return p


def load_settings(args: argparse.Namespace, base: Settings) -> Settings:
    overrides = {
        "backend_url": args.api,
        "backend_api_key": args.api_key,
        "poll_interval_s": args.interval,
        "log_level": args.log_level.upper() if args.log_level else None,
        "events_db": args.events_db,
    }
    return replace(base, **{k: v for k, v in overrides.items() if v is not None})


def build_store(cfg: Settings) -> StatusStoreClient:
    return StatusStoreClient(
        cfg.backend_url,
        cfg.backend_api_key or "",
        timeout_s=cfg.http_timeout_s,
        logger=logging.getLogger("pinger.store"),
    )


def build_discoverer(cfg: Settings, targets: list[str]) -> Discoverer:
    if targets:
        return StaticDiscovery([parse_target(t) for t in targets], logger=logging.getLogger("pinger.discovery"))
    return DockerDiscovery(
        base_url=cfg.docker_base_url,
        label=cfg.docker_label,
        logger=logging.getLogger("pinger.discovery"),
    )


def build_reconciler(cfg: Settings, store: StatusStoreClient, discoverer: Discoverer) -> Reconciler:
    prober = IcmpProber(
        count=cfg.ping_count,
        timeout_s=cfg.ping_timeout_s,
        interval_s=cfg.ping_interval_s,
        privileged=cfg.ping_privileged,
        logger=logging.getLogger("pinger.probe"),
    )
    engine = ProbeEngine(prober, logger=logging.getLogger("pinger.probe"))
    return Reconciler(
        discoverer,
        engine,
        writer=store,
        lister=store,
        deleter=store,
        interval_s=cfg.poll_interval_s,
        max_workers=cfg.max_workers,
        logger=logging.getLogger("pinger.reconciler"),
    )


def _install_signal_handlers(stop: Event) -> None:
    def _handler(signum, frame) -> None:
        log.info("Received signal %s", signal.Signals(signum).name)
        stop.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def main(argv: list[str] | None = None, base: Settings | None = None) -> int:
    args = build_parser().parse_args(argv)
    cfg = load_settings(args, base or default_settings)

    if args.cmd == "events":
        if not cfg.events_db:
            print("No event journal configured (set PINGER_EVENTS_DB or --events-db).", file=sys.stderr)
            return 2
        _print(latest_events(cfg.events_db, limit=args.limit))
        return 0

    try:
        cfg.validate()
        setup_logging(cfg)
        store = build_store(cfg)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    with store:
        if args.cmd == "statuses":
            try:
                records = store.list()
            except PingerError as e:
                log.error("Listing statuses failed: %s", e)
                return 1
            _print(
                [
                    {
                        "id": r.id,
                        "ip_address": r.address,
                        "name": r.name,
                        "status": r.state,
                        "ping_time": r.latency_us,
                        "last_successful_ping": rfc3339(r.last_successful_ping) if r.last_successful_ping else None,
                    }
                    for r in records
                ]
            )
            return 0

        try:
            reconciler = build_reconciler(cfg, store, build_discoverer(cfg, args.target))
        except ConfigError as e:
            print(f"Configuration error: {e}", file=sys.stderr)
            return 2

        if args.cmd == "once":
            try:
                report = reconciler.run_cycle()
            except PingerError as e:
                log.error("Monitoring cycle failed: %s", e)
                return 1
            _print(report.as_dict())
            return 0

        if args.cmd == "run":
            stop = Event()
            _install_signal_handlers(stop)
            reconciler.run(stop, run_immediately=args.now)
            return 0

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
