"""Simple reporting utilities for CLI output."""

from __future__ import annotations

from collections import defaultdict
from pathlib import Path
from typing import Iterable, Optional

from .db import database_connection, fetch_sessions
from .models import SensorKind, UsageSession


class HistoryPrinter:
    """Render the usage history in the console."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)

    def print_history(self, sensor: Optional[SensorKind] = None, limit: int = 20) -> None:
        with database_connection(self.db_path) as conn:
            sessions = fetch_sessions(conn, sensor=sensor, limit=limit)
        if not sessions:
            print("No sensor usage recorded.")
            return

        label = sensor.value if sensor else "all sensors"
        print(f"Recent usage ({label})")
        print("-" * 72)
        for session in sessions:
            started = session.started_at.strftime("%Y-%m-%d %H:%M:%S")
            actor = session.actor or "Unknown"
            print(
                f"  #{session.id:<5} {session.sensor.value:<10} {started}  "
                f"{format_duration(session.duration_seconds)}  {actor[:30]}"
            )

        top_actors = aggregate_by_actor(sessions)
        if top_actors:
            print()
            print("Top actors:")
            for actor, seconds in top_actors[:5]:
                print(f"  {actor:<40} {format_duration(seconds)}")


def aggregate_by_actor(sessions: Iterable[UsageSession]) -> list[tuple[str, float]]:
    totals: defaultdict[str, float] = defaultdict(float)
    for session in sessions:
        totals[session.actor or "Unknown"] += session.duration_seconds
    return sorted(totals.items(), key=lambda item: item[1], reverse=True)


def format_duration(seconds: float) -> str:
    total_seconds = int(round(seconds))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
