"""Configuration models and helpers for the sensor monitor."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta

from .models import SensorKind


DEFAULT_NOTIFICATION_IDS: dict[SensorKind, int] = {
    SensorKind.MICROPHONE: 68,
    SensorKind.CAMERA: 69,
}


@dataclass(slots=True)
class MonitorSettings:
    """Runtime configuration for the monitoring service."""

    poll_interval: timedelta = timedelta(seconds=1)
    flush_timeout: timedelta = timedelta(seconds=5)
    sensors: tuple[SensorKind, ...] = (SensorKind.MICROPHONE, SensorKind.CAMERA)
    notification_ids: dict[SensorKind, int] = field(
        default_factory=lambda: dict(DEFAULT_NOTIFICATION_IDS)
    )
    desktop_notifications: bool = False

    @classmethod
    def from_intervals(
        cls,
        poll_seconds: float,
        flush_seconds: float | None = None,
        sensors: tuple[SensorKind, ...] | None = None,
        desktop_notifications: bool = False,
    ) -> "MonitorSettings":
        flush = flush_seconds if flush_seconds is not None else max(poll_seconds * 5, 5.0)
        return cls(
            poll_interval=timedelta(seconds=poll_seconds),
            flush_timeout=timedelta(seconds=flush),
            sensors=sensors or (SensorKind.MICROPHONE, SensorKind.CAMERA),
            desktop_notifications=desktop_notifications,
        )
