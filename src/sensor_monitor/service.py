"""Monitoring service that owns one usage tracker per sensor."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional, Sequence

from .config import MonitorSettings
from .models import RecordingConfig, SensorKind
from .notifications import (
    DesktopPresenter,
    LoggingPresenter,
    NotificationGateway,
    PreferenceSource,
)
from .sources import ConfigCallback, SensorEventSource, default_source, describe_owner
from .store import SessionStore
from .tracker import Clock, UsageIndicator, UsageSessionTracker

logger = logging.getLogger(__name__)


class IndicatorState:
    """Remembers which sensors the UI should currently flag as active."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._shown: set[SensorKind] = set()

    def show_indicator(self, kind: SensorKind) -> None:
        with self._lock:
            self._shown.add(kind)

    def hide_indicator(self, kind: SensorKind) -> None:
        with self._lock:
            self._shown.discard(kind)

    @property
    def shown(self) -> set[SensorKind]:
        with self._lock:
            return set(self._shown)


class MonitorService:
    """Wires sensor sources to trackers for the lifetime of the monitor."""

    def __init__(
        self,
        store: SessionStore,
        gateway: NotificationGateway,
        sources: Iterable[SensorEventSource],
        *,
        indicator: Optional[UsageIndicator] = None,
        clock: Clock = datetime.now,
        flush_timeout: float = 5.0,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.indicator = indicator if indicator is not None else IndicatorState()
        self.flush_timeout = flush_timeout
        self._lock = threading.Lock()
        self._registered = False
        self._sources: dict[SensorKind, SensorEventSource] = {}
        self._trackers: dict[SensorKind, UsageSessionTracker] = {}
        self._callbacks: dict[SensorKind, ConfigCallback] = {}
        for source in sources:
            if source.kind in self._sources:
                raise ValueError(f"Duplicate source for {source.kind.value}")
            self._sources[source.kind] = source
            tracker = UsageSessionTracker(
                source.kind,
                store,
                gateway,
                indicator=self.indicator,
                clock=clock,
            )
            self._trackers[source.kind] = tracker
            self._callbacks[source.kind] = self._make_callback(tracker)

    @property
    def trackers(self) -> dict[SensorKind, UsageSessionTracker]:
        return dict(self._trackers)

    def tracker(self, kind: SensorKind) -> UsageSessionTracker:
        return self._trackers[kind]

    def is_registered(self) -> bool:
        with self._lock:
            return self._registered

    def register_callbacks(self) -> None:
        with self._lock:
            if self._registered:
                return
            self.store.start()
            for tracker in self._trackers.values():
                tracker.rearm()
            for kind, source in self._sources.items():
                source.register(self._callbacks[kind])
                source.start()
            self._registered = True
        logger.info(
            "Monitoring %s.", ", ".join(kind.value for kind in self._sources) or "nothing"
        )

    def dispose_resources(self) -> None:
        with self._lock:
            if not self._registered:
                return
            self._registered = False
            # Unregister first so no callback reaches a tracker being torn down.
            for kind, source in self._sources.items():
                source.unregister(self._callbacks[kind])
            for tracker in self._trackers.values():
                if tracker.dispose() is not None:
                    logger.info("Closed open %s session on shutdown.", tracker.kind.value)
            for source in self._sources.values():
                source.stop()
        if not self.store.flush(self.flush_timeout):
            logger.warning("Timed out waiting for queued sessions to be written.")
        self.store.close()
        logger.info("Monitor stopped.")

    def event_action_by_package_name(self, actor: Optional[str]) -> None:
        """Report a new foreground actor to every tracker."""
        for tracker in self._trackers.values():
            tracker.on_foreground_actor_changed(actor)

    def active_sensors(self) -> list[SensorKind]:
        return [kind for kind, tracker in self._trackers.items() if tracker.state.is_active]

    def run_forever(self) -> None:
        stop_event = threading.Event()
        try:
            self.run_until_stopped(stop_event)
        except KeyboardInterrupt:
            logger.info("Monitor interrupted; closing open sessions.")

    def run_until_stopped(self, stop_event: threading.Event) -> None:
        """Monitor until the provided event is set."""
        self.register_callbacks()
        try:
            while not stop_event.is_set():
                stop_event.wait(1.0)
        finally:
            self.dispose_resources()

    @staticmethod
    def _make_callback(tracker: UsageSessionTracker) -> ConfigCallback:
        def on_config_changed(configs: Optional[Sequence[RecordingConfig]]) -> None:
            if configs and logger.isEnabledFor(logging.DEBUG):
                owners = sorted({describe_owner(c.owner_pid) or "?" for c in configs})
                logger.debug("%s held by: %s", tracker.kind.value, ", ".join(owners))
            tracker.on_config_changed(configs)

        return on_config_changed


def build_service(
    db_path: Path,
    settings: MonitorSettings,
    preferences: PreferenceSource,
    *,
    sources: Optional[Iterable[SensorEventSource]] = None,
) -> MonitorService:
    """Assemble a service with the default polling sources and presenters."""
    presenter = DesktopPresenter() if settings.desktop_notifications else LoggingPresenter()
    gateway = NotificationGateway(
        presenter, preferences, notification_ids=settings.notification_ids
    )
    if sources is None:
        interval = settings.poll_interval.total_seconds()
        sources = [default_source(kind, interval) for kind in settings.sensors]
    return MonitorService(
        SessionStore(db_path),
        gateway,
        sources,
        flush_timeout=settings.flush_timeout.total_seconds(),
    )
