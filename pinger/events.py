from __future__ import annotations

import logging
import os
import sqlite3
from datetime import datetime, timezone
from typing import Any


def _resolve_db_path(path: str) -> str:
    """Return a file path usable by sqlite.

    A bind-mounted path that did not exist on the host shows up as a
    directory inside the container; the journal file goes inside it then.
    """
    p = os.path.abspath(path)
    if os.path.isdir(p):
        p = os.path.join(p, "pinger-events.db")
    parent = os.path.dirname(p)
    if parent and not os.path.exists(parent):
        os.makedirs(parent, exist_ok=True)
    return p


def connect(path: str) -> sqlite3.Connection:
    conn = sqlite3.connect(_resolve_db_path(path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def init_db(path: str) -> None:
    with connect(path) as conn:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS events (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              ts TEXT NOT NULL,
              level TEXT NOT NULL,
              logger TEXT NOT NULL,
              message TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts);
            """
        )


def latest_events(path: str, limit: int = 100) -> list[dict[str, Any]]:
    with connect(path) as conn:
        rows = conn.execute("SELECT * FROM events ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        return [dict(r) for r in rows]


class EventJournalHandler(logging.Handler):
    """Persists log records into the sqlite ``events`` table.

    Attach it with a level of WARNING to keep failures around, or INFO to
    also keep per-cycle summaries.
    """

    def __init__(self, path: str, level: int = logging.INFO) -> None:
        super().__init__(level)
        self.path = path
        init_db(path)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            ts = datetime.fromtimestamp(record.created, timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
            with connect(self.path) as conn:
                conn.execute(
                    "INSERT INTO events (ts, level, logger, message) VALUES (?, ?, ?, ?)",
                    (ts, record.levelname, record.name, self.format(record)),
                )
        except Exception:
            self.handleError(record)
