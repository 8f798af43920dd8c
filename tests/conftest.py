from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from sensor_monitor.models import SensorKind
from sensor_monitor.notifications import NotificationGateway, StaticPreferences

BASE_TIME = datetime(2026, 1, 1, 12, 0, 0)


class FakeClock:
    def __init__(self, start: datetime = BASE_TIME) -> None:
        self.start = start
        self.now = start

    def at(self, seconds: float) -> None:
        self.now = self.start + timedelta(seconds=seconds)

    def __call__(self) -> datetime:
        return self.now


class RecordingPresenter:
    def __init__(self) -> None:
        self.shown: list[tuple[int, str]] = []
        self.cancelled: list[int] = []

    def show(self, notification_id: int, message: str) -> None:
        self.shown.append((notification_id, message))

    def cancel(self, notification_id: int) -> None:
        self.cancelled.append(notification_id)


class RecordingSink:
    def __init__(self) -> None:
        self.sessions = []

    def insert(self, session) -> None:
        self.sessions.append(session)


class RecordingIndicator:
    def __init__(self) -> None:
        self.calls: list[tuple[str, SensorKind]] = []

    def show_indicator(self, kind: SensorKind) -> None:
        self.calls.append(("show", kind))

    def hide_indicator(self, kind: SensorKind) -> None:
        self.calls.append(("hide", kind))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def presenter() -> RecordingPresenter:
    return RecordingPresenter()


@pytest.fixture
def preferences() -> StaticPreferences:
    return StaticPreferences(notifications_enabled=True)


@pytest.fixture
def gateway(presenter, preferences) -> NotificationGateway:
    return NotificationGateway(presenter, preferences)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def indicator() -> RecordingIndicator:
    return RecordingIndicator()
