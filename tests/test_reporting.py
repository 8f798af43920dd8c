from __future__ import annotations

from datetime import timedelta

from sensor_monitor.db import database_connection, insert_session
from sensor_monitor.models import SensorKind, UsageSession
from sensor_monitor.reporting import HistoryPrinter, aggregate_by_actor, format_duration

from conftest import BASE_TIME


def _session(actor, seconds, offset=0):
    start = BASE_TIME + timedelta(seconds=offset)
    return UsageSession(
        sensor=SensorKind.MICROPHONE,
        actor=actor,
        started_at=start,
        ended_at=start + timedelta(seconds=seconds),
    )


def test_format_duration():
    assert format_duration(0) == "00:00:00"
    assert format_duration(3725.4) == "01:02:05"


def test_aggregate_by_actor_groups_unknown():
    totals = aggregate_by_actor([_session("a", 10), _session(None, 30), _session("a", 5)])
    assert totals == [("Unknown", 30.0), ("a", 15.0)]


def test_print_history(tmp_path, capsys):
    db_path = tmp_path / "sessions.sqlite3"
    with database_connection(db_path) as conn:
        insert_session(conn, _session("com.example.notes", 65))

    HistoryPrinter(db_path).print_history()

    out = capsys.readouterr().out
    assert "com.example.notes" in out
    assert "00:01:05" in out


def test_print_history_empty(tmp_path, capsys):
    HistoryPrinter(tmp_path / "sessions.sqlite3").print_history(sensor=SensorKind.CAMERA)
    assert "No sensor usage recorded." in capsys.readouterr().out
