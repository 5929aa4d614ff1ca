"""SQLite call tracker for the hosted services the dashboard depends on.

Every Gemini flow call and Firebase Auth REST call is recorded with its
latency and outcome so quota usage and failures can be inspected from the
dashboard (``/api/tracker``) or the MCP server.
"""

from __future__ import annotations

import os
import sqlite3
import time
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path

_DB_PATH = Path(
    os.getenv("API_TRACKER_DB", "")
    or Path(__file__).resolve().parent.parent.parent / "api_tracker.db"
)


def _get_db() -> sqlite3.Connection:
    conn = sqlite3.connect(str(_DB_PATH))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    return conn


def init_db() -> None:
    """Create the api_calls table if it doesn't exist."""
    conn = _get_db()
    conn.execute("""
        CREATE TABLE IF NOT EXISTS api_calls (
            id          INTEGER PRIMARY KEY AUTOINCREMENT,
            timestamp   TEXT NOT NULL,
            service     TEXT NOT NULL,
            method      TEXT NOT NULL,
            status      TEXT NOT NULL,
            response_ms INTEGER NOT NULL,
            error       TEXT
        )
    """)
    conn.execute("""
        CREATE INDEX IF NOT EXISTS idx_api_calls_ts ON api_calls (timestamp)
    """)
    conn.execute("""
        CREATE INDEX IF NOT EXISTS idx_api_calls_service ON api_calls (service)
    """)
    conn.commit()
    conn.close()


def log_call(
    service: str,
    method: str,
    status: str = "success",
    response_ms: int = 0,
    error: str | None = None,
) -> None:
    """Insert a single API call record."""
    conn = _get_db()
    conn.execute(
        "INSERT INTO api_calls (timestamp, service, method, status, response_ms, error) "
        "VALUES (?, ?, ?, ?, ?, ?)",
        (
            datetime.now(timezone.utc).isoformat(),
            service,
            method,
            status,
            response_ms,
            error,
        ),
    )
    conn.commit()
    conn.close()


@contextmanager
def track(service: str, method: str):
    """Context manager that times a call and logs the result."""
    t0 = time.monotonic()
    try:
        yield
        ms = int((time.monotonic() - t0) * 1000)
        log_call(service, method, "success", ms)
    except Exception as exc:
        ms = int((time.monotonic() - t0) * 1000)
        log_call(service, method, "error", ms, error=str(exc))
        raise


def get_summary(hours: int = 24) -> list[dict]:
    """Counts grouped by service + method + status for the last N hours."""
    conn = _get_db()
    cutoff = (datetime.now(timezone.utc) - timedelta(hours=hours)).isoformat()
    rows = conn.execute(
        "SELECT service, method, status, COUNT(*) as cnt, "
        "AVG(response_ms) as avg_ms, MAX(response_ms) as max_ms "
        "FROM api_calls WHERE timestamp >= ? "
        "GROUP BY service, method, status ORDER BY cnt DESC",
        (cutoff,),
    ).fetchall()
    conn.close()
    return [dict(r) for r in rows]


def get_recent(limit: int = 50) -> list[dict]:
    """Last N calls for debugging."""
    conn = _get_db()
    rows = conn.execute(
        "SELECT * FROM api_calls ORDER BY id DESC LIMIT ?", (limit,)
    ).fetchall()
    conn.close()
    return [dict(r) for r in rows]
