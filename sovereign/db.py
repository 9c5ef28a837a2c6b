from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone, tzinfo
from pathlib import Path

logger = logging.getLogger(__name__)

DB_PATH = Path(__file__).resolve().parent.parent / "data.sqlite3"


def get_conn() -> sqlite3.Connection:
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    return conn


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_json(raw: str | None, fallback=None):
    if not raw:
        return fallback
    return json.loads(raw)


def _ensure_column(conn: sqlite3.Connection, table: str, column: str, definition: str) -> None:
    cols = conn.execute(f"PRAGMA table_info({table})").fetchall()
    if column not in {c[1] for c in cols}:
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")


def _insert_event(conn: sqlite3.Connection, user_id: str, event_date: str, kind: str, text: str, meta: dict | None = None) -> None:
    conn.execute(
        "INSERT INTO event_log (user_id, date, kind, text, meta_json) VALUES (?, ?, ?, ?, ?)",
        (user_id, event_date, kind, text, json.dumps(meta or {}, default=str)),
    )


def _migrate_reminder_log(conn: sqlite3.Connection) -> None:
    # the primary key gained user_id, which ALTER TABLE cannot add
    cols = {c[1] for c in conn.execute("PRAGMA table_info(reminder_log)").fetchall()}
    if "user_id" in cols:
        return
    logger.info("Migrating reminder_log to per-user keys")
    conn.executescript(
        """
        ALTER TABLE reminder_log RENAME TO reminder_log_old;
        CREATE TABLE reminder_log (
            user_id TEXT NOT NULL DEFAULT 'default',
            kind TEXT NOT NULL,
            date TEXT NOT NULL,
            sent_at TEXT NOT NULL,
            PRIMARY KEY (user_id, kind, date)
        );
        INSERT INTO reminder_log (user_id, kind, date, sent_at)
            SELECT 'default', kind, date, sent_at FROM reminder_log_old;
        DROP TABLE reminder_log_old;
        """
    )


def init_db() -> None:
    conn = get_conn()
    try:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS game_state (
                user_id TEXT PRIMARY KEY,
                state_json TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS event_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                date TEXT NOT NULL,
                kind TEXT NOT NULL,
                text TEXT NOT NULL,
                meta_json TEXT
            );

            CREATE TABLE IF NOT EXISTS reminder_log (
                user_id TEXT NOT NULL DEFAULT 'default',
                kind TEXT NOT NULL,
                date TEXT NOT NULL,
                sent_at TEXT NOT NULL,
                PRIMARY KEY (user_id, kind, date)
            );
            """
        )
        _ensure_column(conn, "event_log", "user_id", "TEXT NOT NULL DEFAULT 'default'")
        _migrate_reminder_log(conn)
        conn.commit()
    finally:
        conn.close()


def load_snapshot(user_id: str) -> dict | None:
    conn = get_conn()
    try:
        row = conn.execute("SELECT state_json FROM game_state WHERE user_id = ?", (user_id,)).fetchone()
    finally:
        conn.close()
    if row is None:
        return None
    try:
        state = _parse_json(row["state_json"])
    except ValueError as exc:
        logger.warning("Discarding unparseable state for %s: %s", user_id, exc)
        return None
    return state if isinstance(state, dict) else None


def save_snapshot(user_id: str, state: dict) -> None:
    conn = get_conn()
    try:
        conn.execute(
            """
            INSERT INTO game_state (user_id, state_json, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET state_json = excluded.state_json, updated_at = excluded.updated_at
            """,
            (user_id, json.dumps(state), utc_now_iso()),
        )
        conn.commit()
    finally:
        conn.close()


def delete_snapshot(user_id: str) -> None:
    conn = get_conn()
    try:
        conn.execute("DELETE FROM game_state WHERE user_id = ?", (user_id,))
        conn.commit()
    finally:
        conn.close()


def record_event(user_id: str, event_date: str, kind: str, text: str, meta: dict | None = None) -> None:
    conn = get_conn()
    try:
        _insert_event(conn, user_id, event_date, kind, text, meta)
        conn.commit()
    finally:
        conn.close()


def get_events(user_id: str, limit: int = 50, kind: str | None = None) -> list[dict]:
    conn = get_conn()
    try:
        if kind:
            rows = conn.execute(
                "SELECT * FROM event_log WHERE user_id = ? AND kind = ? ORDER BY id DESC LIMIT ?",
                (user_id, kind, limit),
            ).fetchall()
        else:
            rows = conn.execute(
                "SELECT * FROM event_log WHERE user_id = ? ORDER BY id DESC LIMIT ?",
                (user_id, limit),
            ).fetchall()
    finally:
        conn.close()
    return [
        {"date": r["date"], "kind": r["kind"], "text": r["text"], "meta": _parse_json(r["meta_json"], {})}
        for r in rows
    ]


def was_reminder_sent(kind: str, for_date: str, user_id: str = "default") -> bool:
    conn = get_conn()
    try:
        row = conn.execute(
            "SELECT 1 FROM reminder_log WHERE user_id = ? AND kind = ? AND date = ?", (user_id, kind, for_date)
        ).fetchone()
    finally:
        conn.close()
    return row is not None


def mark_reminder_sent(kind: str, for_date: str, user_id: str = "default") -> None:
    conn = get_conn()
    try:
        conn.execute(
            "INSERT OR IGNORE INTO reminder_log (user_id, kind, date, sent_at) VALUES (?, ?, ?, ?)",
            (user_id, kind, for_date, utc_now_iso()),
        )
        conn.commit()
    finally:
        conn.close()


def get_schedule_context(tz: tzinfo) -> dict:
    now = datetime.now(tz)
    return {
        "local_date": now.date().isoformat(),
        "local_hour": now.hour,
        "local_minute": now.minute,
    }


def configure(db_path: str | Path | None) -> None:
    global DB_PATH
    if db_path:
        DB_PATH = Path(db_path)


class SqliteSnapshotStore:
    """Snapshot store over the module-level SQLite file (see ``DB_PATH``)."""

    def __init__(self) -> None:
        init_db()

    def load_snapshot(self, user_id: str) -> dict | None:
        return load_snapshot(user_id)

    def save_snapshot(self, user_id: str, state: dict) -> None:
        save_snapshot(user_id, state)

    def record_event(self, user_id: str, event_date: str, kind: str, text: str, meta: dict | None = None) -> None:
        record_event(user_id, event_date, kind, text, meta)
