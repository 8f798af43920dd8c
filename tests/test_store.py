from __future__ import annotations

import sqlite3
from datetime import timedelta

from sensor_monitor import store as store_module
from sensor_monitor.db import database_connection, fetch_sessions
from sensor_monitor.models import SensorKind, UsageSession
from sensor_monitor.store import SessionStore

from conftest import BASE_TIME


def _session(offset: int, actor: str, sensor: SensorKind = SensorKind.MICROPHONE) -> UsageSession:
    start = BASE_TIME + timedelta(seconds=offset)
    return UsageSession(
        sensor=sensor, actor=actor, started_at=start, ended_at=start + timedelta(seconds=5)
    )


def test_insert_is_written_in_close_order(tmp_path):
    db_path = tmp_path / "sessions.sqlite3"
    store = SessionStore(db_path)
    store.start()
    for index in range(20):
        store.insert(_session(index, f"app-{index}"))
    assert store.flush(timeout=5)
    store.close()

    with database_connection(db_path) as conn:
        ids = [row["id"] for row in conn.execute("SELECT id, actor FROM usage_sessions")]
        actors = [
            row["actor"]
            for row in conn.execute("SELECT actor FROM usage_sessions ORDER BY id")
        ]
    assert len(ids) == 20
    assert actors == [f"app-{index}" for index in range(20)]
    assert store.written == 20
    assert store.failures == 0


def test_write_failure_is_logged_not_raised(tmp_path, monkeypatch, caplog):
    def failing_insert(conn, session):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(store_module, "insert_session", failing_insert)
    store = SessionStore(tmp_path / "sessions.sqlite3")
    store.insert(_session(0, "app"))
    store.insert(_session(10, "app"))
    assert store.flush(timeout=5)
    store.close()

    assert store.failures == 2
    assert store.written == 0
    assert "Dropping usage session" in caplog.text


def test_flush_without_writer_returns_immediately(tmp_path):
    store = SessionStore(tmp_path / "sessions.sqlite3")
    assert store.flush(timeout=0.1)
    store.close()


def test_store_can_restart_after_close(tmp_path):
    db_path = tmp_path / "sessions.sqlite3"
    store = SessionStore(db_path)
    store.insert(_session(0, "first"))
    store.flush(timeout=5)
    store.close()
    store.insert(_session(10, "second", SensorKind.CAMERA))
    store.flush(timeout=5)
    store.close()

    with database_connection(db_path) as conn:
        sessions = fetch_sessions(conn)
    assert [s.actor for s in sessions] == ["second", "first"]
