"""Command-line interface for the sensor monitor."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer

from .config import MonitorSettings
from .models import SensorKind
from .notifications import PreferenceStore
from .paths import get_db_path, get_log_path, get_preferences_path

app = typer.Typer(help="Local sensor-usage monitor.")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


@app.callback(no_args_is_help=True)
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs."),
    log_file: bool = typer.Option(
        False, "--log-file", help="Also append logs to the monitor log file."
    ),
) -> None:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT)
    if log_file:
        handler = logging.FileHandler(get_log_path(), encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logging.getLogger().addHandler(handler)


def _sensors(values: Optional[list[SensorKind]]) -> Optional[tuple[SensorKind, ...]]:
    return tuple(dict.fromkeys(values)) if values else None


@app.command()
def monitor(
    db_path: Optional[Path] = typer.Option(
        None,
        "--db",
        path_type=Path,
        help="Location of the sessions SQLite database.",
    ),
    poll_seconds: float = typer.Option(
        1.0,
        "--interval",
        min=0.1,
        help="Sensor polling interval in seconds.",
    ),
    sensors: Optional[list[SensorKind]] = typer.Option(
        None,
        "--sensor",
        help="Sensor to watch (repeatable). Defaults to all.",
    ),
    desktop: bool = typer.Option(
        False,
        "--desktop-notifications/--log-notifications",
        help="Send notifications through notify-send instead of the log.",
    ),
) -> None:
    """Watch sensors until interrupted."""
    from .service import build_service

    settings = MonitorSettings.from_intervals(
        poll_seconds=poll_seconds,
        sensors=_sensors(sensors),
        desktop_notifications=desktop,
    )
    service = build_service(
        db_path or get_db_path(),
        settings,
        PreferenceStore(get_preferences_path()),
    )
    service.run_forever()


@app.command()
def history(
    sensor: Optional[SensorKind] = typer.Option(None, "--sensor", help="Only this sensor."),
    limit: int = typer.Option(20, "--limit", min=1, help="Number of sessions to show."),
    db_path: Optional[Path] = typer.Option(
        None,
        "--db",
        path_type=Path,
        help="Location of the sessions SQLite database.",
    ),
) -> None:
    """Print recent usage sessions, newest first."""
    from .reporting import HistoryPrinter

    HistoryPrinter(db_path=db_path or get_db_path()).print_history(sensor=sensor, limit=limit)


@app.command()
def notifications(
    enabled: Optional[bool] = typer.Argument(
        None, help="Set to true/false; omit to show the current value."
    ),
) -> None:
    """Show or change whether usage notifications are shown."""
    store = PreferenceStore(get_preferences_path())
    if enabled is not None:
        store.set_notifications_enabled(enabled)
    state = "enabled" if store.notifications_enabled else "disabled"
    typer.echo(f"Usage notifications are {state}.")


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind the API."),
    port: int = typer.Option(8766, "--port", min=1, max=65535, help="TCP port for the API."),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the sessions SQLite database."
    ),
    poll_seconds: float = typer.Option(
        1.0,
        "--interval",
        min=0.1,
        help="Sensor polling interval in seconds.",
    ),
    desktop: bool = typer.Option(
        False,
        "--desktop-notifications/--log-notifications",
        help="Send notifications through notify-send instead of the log.",
    ),
) -> None:
    """Serve the history API with the monitor running in the background."""
    import uvicorn

    from .webapp import create_app

    settings = MonitorSettings.from_intervals(
        poll_seconds=poll_seconds, desktop_notifications=desktop
    )
    api = create_app(db_path=db_path or get_db_path(), settings=settings)
    uvicorn.run(api, host=host, port=port, log_level="info")
