"""State machine that turns sensor configuration callbacks into usage sessions."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Callable, Optional, Protocol, Sequence

from .attribution import AttributionTracker
from .models import RecordingConfig, SensorKind, UsageSession
from .notifications import NotificationGateway

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class SessionSink(Protocol):
    def insert(self, session: UsageSession) -> None: ...


class UsageIndicator(Protocol):
    def show_indicator(self, kind: SensorKind) -> None: ...

    def hide_indicator(self, kind: SensorKind) -> None: ...


class TrackerPhase(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"


@dataclass(slots=True)
class TrackerState:
    is_active: bool = False
    session_started_at: Optional[datetime] = None
    # Actor known when the sensor became active; used when none is known at close.
    pending_actor: Optional[str] = None


class UsageSessionTracker:
    """Tracks usage of one sensor.

    ``on_config_changed`` is the hardware callback: a non-empty list of active
    configurations means the sensor is in use. A session opens on the first
    non-empty list, closes on the next empty one, and is handed to the session
    sink on close. Repeated events for the current state change nothing.

    The session actor is whoever was reported foreground last before the
    session closed, not whoever was foreground when it opened.
    """

    def __init__(
        self,
        kind: SensorKind,
        store: SessionSink,
        gateway: NotificationGateway,
        *,
        attribution: Optional[AttributionTracker] = None,
        indicator: Optional[UsageIndicator] = None,
        clock: Clock = datetime.now,
    ) -> None:
        self.kind = kind
        self.store = store
        self.gateway = gateway
        self.attribution = attribution or AttributionTracker()
        self.indicator = indicator
        self._clock = clock
        self._lock = threading.Lock()
        self._state = TrackerState()
        self._alive = True

    @property
    def state(self) -> TrackerState:
        with self._lock:
            return replace(self._state)

    @property
    def phase(self) -> TrackerPhase:
        with self._lock:
            return TrackerPhase.ACTIVE if self._state.is_active else TrackerPhase.IDLE

    @property
    def current_actor(self) -> Optional[str]:
        return self.attribution.current

    @property
    def alive(self) -> bool:
        return self._alive

    def on_config_changed(self, configs: Optional[Sequence[RecordingConfig]]) -> None:
        if not self._alive:
            logger.debug("Ignoring %s callback after disposal.", self.kind.value)
            return
        try:
            if configs:
                self._activate(configs)
            else:
                self._deactivate()
        except Exception:
            # Nothing may escape back into the sensor source's dispatch thread.
            logger.exception("Failed to process %s configuration change.", self.kind.value)

    def on_foreground_actor_changed(self, actor: Optional[str]) -> None:
        previous = self.attribution.update(actor)
        if previous != self.attribution.current:
            logger.debug(
                "%s attribution: %s -> %s",
                self.kind.value,
                previous,
                self.attribution.current,
            )

    def force_close(self) -> Optional[UsageSession]:
        """Close and persist an open session without disposing the tracker."""
        with self._lock:
            if not self._state.is_active:
                return None
            session = self._close_locked()
        self._announce_inactive()
        return session

    def dispose(self) -> Optional[UsageSession]:
        """Close any open session and stop reacting to callbacks.

        Both happen under the state lock, so a callback racing with teardown
        either completes before it or sees the tracker disposed.
        """
        with self._lock:
            self._alive = False
            session = self._close_locked() if self._state.is_active else None
        if session is not None:
            self._announce_inactive()
        return session

    def rearm(self) -> None:
        """Accept callbacks again after ``dispose``."""
        with self._lock:
            self._alive = True

    def _activate(self, configs: Sequence[RecordingConfig]) -> None:
        with self._lock:
            if not self._alive:
                return
            opened = not self._state.is_active
            if opened:
                self._state.is_active = True
                self._state.pending_actor = self.attribution.current
                self._state.session_started_at = self._clock()
        if opened:
            logger.info(
                "%s in use (%d active configuration(s)); foreground: %s",
                self.kind.value,
                len(configs),
                self.attribution.current or "unknown",
            )
            self.gateway.show_usage_notification(self.kind)
        if self.indicator is not None:
            self.indicator.show_indicator(self.kind)
        # The session may have been closed or the tracker disposed while the
        # notification was being shown; withdraw it so nothing stays visible.
        with self._lock:
            stale = not self._alive or not self._state.is_active
        if stale:
            self._announce_inactive()

    def _deactivate(self) -> None:
        with self._lock:
            if not self._alive:
                return
            session = self._close_locked() if self._state.is_active else None
        if session is None:
            logger.debug("%s already idle.", self.kind.value)
        self._announce_inactive()

    def _close_locked(self) -> UsageSession:
        ended_at = self._clock()
        started_at = self._state.session_started_at or ended_at
        if ended_at < started_at:
            ended_at = started_at
        session = UsageSession(
            sensor=self.kind,
            actor=self.attribution.current or self._state.pending_actor,
            started_at=started_at,
            ended_at=ended_at,
        )
        self._state = TrackerState()
        try:
            self.store.insert(session)
        except Exception:
            logger.exception("Failed to queue %s session.", self.kind.value)
        else:
            logger.info(
                "%s session closed: actor=%s duration=%.1fs",
                self.kind.value,
                session.actor or "unknown",
                session.duration_seconds,
            )
        return session

    def _announce_inactive(self) -> None:
        self.gateway.hide_usage_notification(self.kind)
        if self.indicator is not None:
            self.indicator.hide_indicator(self.kind)
