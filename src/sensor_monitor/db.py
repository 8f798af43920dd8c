"""SQLite database layer for sensor usage sessions."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from .models import SensorKind, UsageSession


DATETIME_FMT = "%Y-%m-%d %H:%M:%S.%f"


def open_database(path: Path | str, *, check_same_thread: bool = True) -> sqlite3.Connection:
    """Open (and initialize) the SQLite database."""
    conn = sqlite3.connect(
        path,
        isolation_level=None,
        check_same_thread=check_same_thread,
    )
    conn.row_factory = sqlite3.Row
    initialize_schema(conn)
    return conn


@contextmanager
def database_connection(
    path: Path | str, *, check_same_thread: bool = True
) -> Iterator[sqlite3.Connection]:
    conn = open_database(path, check_same_thread=check_same_thread)
    try:
        yield conn
    finally:
        conn.close()


def initialize_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS usage_sessions (
            id INTEGER PRIMARY KEY,
            sensor TEXT NOT NULL,
            actor TEXT,
            started_at TEXT NOT NULL,
            ended_at TEXT NOT NULL,
            CHECK (ended_at >= started_at)
        );

        CREATE INDEX IF NOT EXISTS idx_sessions_started_at
            ON usage_sessions(started_at);
        """
    )


def insert_session(conn: sqlite3.Connection, session: UsageSession) -> int:
    """Append a closed session and return its row id."""
    cur = conn.execute(
        """
        INSERT INTO usage_sessions (sensor, actor, started_at, ended_at)
        VALUES (?, ?, ?, ?)
        """,
        (
            session.sensor.value,
            session.actor,
            session.started_at.strftime(DATETIME_FMT),
            session.ended_at.strftime(DATETIME_FMT),
        ),
    )
    return int(cur.lastrowid)


def fetch_sessions(
    conn: sqlite3.Connection,
    *,
    sensor: Optional[SensorKind] = None,
    limit: Optional[int] = None,
) -> list[UsageSession]:
    """Return stored sessions, newest first."""
    query = "SELECT id, sensor, actor, started_at, ended_at FROM usage_sessions"
    params: list[object] = []
    if sensor is not None:
        query += " WHERE sensor = ?"
        params.append(sensor.value)
    query += " ORDER BY started_at DESC, id DESC"
    if limit is not None:
        query += " LIMIT ?"
        params.append(limit)
    return [row_to_session(row) for row in conn.execute(query, params)]


def fetch_session(conn: sqlite3.Connection, session_id: int) -> UsageSession:
    row = conn.execute(
        """
        SELECT id, sensor, actor, started_at, ended_at
        FROM usage_sessions
        WHERE id = ?
        """,
        (session_id,),
    ).fetchone()
    if row is None:
        raise ValueError(f"No session found for id={session_id}")
    return row_to_session(row)


def fetch_actor_totals(
    conn: sqlite3.Connection, sensor: Optional[SensorKind] = None
) -> list[sqlite3.Row]:
    """Return session count and total seconds per sensor/actor."""
    where = "WHERE sensor = ?" if sensor is not None else ""
    params = (sensor.value,) if sensor is not None else ()
    return list(
        conn.execute(
            f"""
            SELECT
                sensor,
                actor,
                COUNT(*) AS sessions,
                SUM(
                    (julianday(ended_at) - julianday(started_at)) * 86400.0
                ) AS seconds
            FROM usage_sessions
            {where}
            GROUP BY sensor, actor
            ORDER BY seconds DESC;
            """,
            params,
        )
    )


def row_to_session(row: sqlite3.Row) -> UsageSession:
    return UsageSession(
        id=row["id"],
        sensor=SensorKind(row["sensor"]),
        actor=row["actor"],
        started_at=datetime.strptime(row["started_at"], DATETIME_FMT),
        ended_at=datetime.strptime(row["ended_at"], DATETIME_FMT),
    )
