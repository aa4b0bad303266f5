from typing import Any, Dict, Iterable, List, Optional
import json
import os
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from eventstream.schemas import Event

DB_PATH = Path(os.getenv("STREAM_DB_PATH", "/data/events.db"))


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


def get_conn() -> sqlite3.Connection:
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    return conn


def _ensure_column(conn: sqlite3.Connection, table: str, col: str, col_def: str) -> None:
    """
    SQLite doesn't support ALTER TABLE ADD COLUMN IF NOT EXISTS,
    so we check table_info and add only if missing.
    """
    cols = [r["name"] for r in conn.execute(f"PRAGMA table_info({table})").fetchall()]
    if col not in cols:
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {col} {col_def}")


def init_db() -> None:
    conn = get_conn()

    conn.execute("""
    CREATE TABLE IF NOT EXISTS events (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        type TEXT NOT NULL,
        message TEXT NOT NULL,
        data TEXT,              -- JSON string of the live event's data
        timestamp TEXT NOT NULL
    )
    """)

    # Databases created before sessions were tagged
    _ensure_column(conn, "events", "session_id", "TEXT")

    conn.execute("""
    CREATE INDEX IF NOT EXISTS ix_events_session
    ON events(session_id)
    """)

    conn.commit()
    conn.close()


def insert_event(session_id: Optional[str], event: Event) -> int:
    data = json.dumps(event.data.model_dump()) if event.data is not None else None

    conn = get_conn()
    cur = conn.execute(
        """
        INSERT INTO events (session_id, type, message, data, timestamp)
        VALUES (?, ?, ?, ?, ?)
        """,
        (session_id, event.type, event.message, data, _now_iso()),
    )
    conn.commit()
    conn.close()
    return int(cur.lastrowid)


def list_events(session_id: Optional[str] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    """
    Newest first by store timestamp (id breaks ties within the same microsecond).
    """
    sql = "SELECT id, session_id, type, message, data, timestamp FROM events"
    params: List[Any] = []
    if session_id:
        sql += " WHERE session_id = ?"
        params.append(session_id)
    sql += " ORDER BY timestamp DESC, id DESC"
    if limit is not None:
        sql += " LIMIT ?"
        params.append(int(limit))

    conn = get_conn()
    rows = conn.execute(sql, params).fetchall()
    conn.close()
    return [dict(r) for r in rows]


def delete_events(keep: Iterable[str] = ()) -> int:
    """
    Delete every record not owned by one of the `keep` sessions.
    Untagged (legacy) rows are always removed.
    """
    keep = [k for k in keep if k]

    conn = get_conn()
    if keep:
        marks = ",".join("?" for _ in keep)
        cur = conn.execute(
            f"DELETE FROM events WHERE session_id IS NULL OR session_id NOT IN ({marks})",
            keep,
        )
    else:
        cur = conn.execute("DELETE FROM events")
    conn.commit()
    conn.close()
    return cur.rowcount


class EventStore:
    """The store as the emitter sees it: create, find-many, delete-many."""

    def create_event(self, session_id: Optional[str], event: Event) -> int:
        return insert_event(session_id, event)

    def list_events(self, session_id: Optional[str] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        return list_events(session_id=session_id, limit=limit)

    def reset_events(self, keep: Iterable[str] = ()) -> int:
        return delete_events(keep)
