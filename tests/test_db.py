from __future__ import annotations

from datetime import timedelta

import pytest

from sensor_monitor.db import (
    database_connection,
    fetch_actor_totals,
    fetch_session,
    fetch_sessions,
    insert_session,
)
from sensor_monitor.models import SensorKind, UsageSession

from conftest import BASE_TIME


@pytest.fixture
def conn(tmp_path):
    with database_connection(tmp_path / "sessions.sqlite3") as connection:
        yield connection


def _add(conn, start: int, length: int, actor, sensor=SensorKind.MICROPHONE) -> int:
    started = BASE_TIME + timedelta(seconds=start)
    return insert_session(
        conn,
        UsageSession(
            sensor=sensor,
            actor=actor,
            started_at=started,
            ended_at=started + timedelta(seconds=length),
        ),
    )


def test_sessions_are_listed_newest_first(conn):
    _add(conn, 0, 10, "a")
    _add(conn, 100, 10, "b")
    _add(conn, 50, 10, "c", SensorKind.CAMERA)

    assert [s.actor for s in fetch_sessions(conn)] == ["b", "c", "a"]
    assert [s.actor for s in fetch_sessions(conn, sensor=SensorKind.CAMERA)] == ["c"]
    assert [s.actor for s in fetch_sessions(conn, limit=1)] == ["b"]


def test_fetch_session_round_trips_fields(conn):
    session_id = _add(conn, 30, 90, None, SensorKind.CAMERA)

    session = fetch_session(conn, session_id)
    assert session.id == session_id
    assert session.actor is None
    assert session.sensor is SensorKind.CAMERA
    assert session.started_at == BASE_TIME + timedelta(seconds=30)
    assert session.duration_seconds == 90


def test_fetch_missing_session_raises(conn):
    with pytest.raises(ValueError):
        fetch_session(conn, 999)


def test_actor_totals_sum_durations(conn):
    _add(conn, 0, 10, "a")
    _add(conn, 20, 30, "a")
    _add(conn, 60, 5, "b")

    rows = fetch_actor_totals(conn)
    totals = {row["actor"]: (row["sessions"], round(row["seconds"])) for row in rows}
    assert totals == {"a": (2, 40), "b": (1, 5)}
    assert rows[0]["actor"] == "a"


def test_session_rejects_end_before_start():
    with pytest.raises(ValueError):
        UsageSession(
            sensor=SensorKind.MICROPHONE,
            actor=None,
            started_at=BASE_TIME,
            ended_at=BASE_TIME - timedelta(seconds=1),
        )
