"""FastAPI application that exposes the usage history and monitor controls."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict

from .config import MonitorSettings
from .db import database_connection, fetch_actor_totals, fetch_session, fetch_sessions
from .models import SensorKind, UsageSession
from .notifications import PreferenceStore
from .paths import get_db_path, get_preferences_path
from .service import MonitorService, build_service

logger = logging.getLogger(__name__)

ServiceFactory = Callable[[], MonitorService]


class MonitorRunner:
    """Manage the monitoring service in a background thread."""

    def __init__(self, factory: ServiceFactory) -> None:
        self._factory = factory
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None
        self._service: Optional[MonitorService] = None

    @property
    def service(self) -> Optional[MonitorService]:
        with self._lock:
            return self._service

    def start(self) -> None:
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            stop_event = threading.Event()
            service = self._factory()
            service.register_callbacks()
            thread = threading.Thread(
                target=service.run_until_stopped,
                args=(stop_event,),
                daemon=True,
            )
            self._thread = thread
            self._stop_event = stop_event
            self._service = service
            thread.start()
            logger.info("Monitor background thread started.")

    def stop(self) -> None:
        thread: Optional[threading.Thread] = None
        with self._lock:
            if not self._thread or not self._thread.is_alive() or not self._stop_event:
                return
            self._stop_event.set()
            thread = self._thread
            self._thread = None
            self._stop_event = None
        if thread:
            thread.join(timeout=10)
            logger.info("Monitor background thread stopped.")

    def is_running(self) -> bool:
        with self._lock:
            return bool(self._thread and self._thread.is_alive())


class PreferencesUpdate(BaseModel):
    notifications_enabled: Optional[bool] = None

    model_config = ConfigDict(extra="forbid")


class ForegroundEvent(BaseModel):
    actor: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


def create_app(
    *,
    db_path: Optional[Path] = None,
    settings: Optional[MonitorSettings] = None,
    preferences: Optional[PreferenceStore] = None,
    service_factory: Optional[ServiceFactory] = None,
) -> FastAPI:
    """Instantiate the FastAPI application."""
    resolved_db_path = Path(db_path or get_db_path())
    resolved_settings = settings or MonitorSettings()
    resolved_preferences = preferences or PreferenceStore(get_preferences_path())
    factory = service_factory or (
        lambda: build_service(resolved_db_path, resolved_settings, resolved_preferences)
    )
    runner = MonitorRunner(factory)

    app = FastAPI(title="Sensor Monitor", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.db_path = resolved_db_path
    app.state.monitor_runner = runner
    app.state.preferences = resolved_preferences

    @app.on_event("startup")
    async def _startup() -> None:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
        runner.start()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        runner.stop()

    @app.get("/api/status")
    def status(request: Request) -> Dict[str, Any]:
        monitor = request.app.state.monitor_runner
        service = monitor.service
        active = service.active_sensors() if service and monitor.is_running() else []
        return {
            "monitor_running": monitor.is_running(),
            "database_path": str(request.app.state.db_path),
            "poll_seconds": resolved_settings.poll_interval.total_seconds(),
            "notifications_enabled": request.app.state.preferences.notifications_enabled,
            "active_sensors": [kind.value for kind in active],
        }

    @app.get("/api/sessions")
    def sessions(
        request: Request,
        sensor: Optional[SensorKind] = Query(default=None),
        limit: Optional[int] = Query(default=None, ge=1, le=10000),
    ) -> Dict[str, Any]:
        with database_connection(request.app.state.db_path) as conn:
            rows = fetch_sessions(conn, sensor=sensor, limit=limit)
        return {"sessions": [_session_payload(session) for session in rows]}

    @app.get("/api/sessions/{session_id}")
    def session_detail(session_id: int, request: Request) -> Dict[str, Any]:
        with database_connection(request.app.state.db_path) as conn:
            try:
                session = fetch_session(conn, session_id)
            except ValueError as exc:
                raise HTTPException(status_code=404, detail="Session not found") from exc
        return _session_payload(session)

    @app.get("/api/actors")
    def actors(
        request: Request,
        sensor: Optional[SensorKind] = Query(default=None),
    ) -> Dict[str, Any]:
        with database_connection(request.app.state.db_path) as conn:
            rows = fetch_actor_totals(conn, sensor)
        return {
            "actors": [
                {
                    "sensor": row["sensor"],
                    "actor": row["actor"],
                    "sessions": row["sessions"],
                    "seconds": round(row["seconds"] or 0.0, 3),
                }
                for row in rows
            ]
        }

    @app.get("/api/preferences")
    def get_preferences(request: Request) -> Dict[str, Any]:
        return request.app.state.preferences.load().model_dump()

    @app.patch("/api/preferences")
    def update_preferences(payload: PreferencesUpdate, request: Request) -> Dict[str, Any]:
        store: PreferenceStore = request.app.state.preferences
        if payload.notifications_enabled is not None:
            store.set_notifications_enabled(payload.notifications_enabled)
        return store.load().model_dump()

    @app.post("/api/foreground")
    def foreground(payload: ForegroundEvent, request: Request) -> Dict[str, Any]:
        service = request.app.state.monitor_runner.service
        if service is None or not request.app.state.monitor_runner.is_running():
            raise HTTPException(status_code=503, detail="Monitor is not running")
        service.event_action_by_package_name(payload.actor)
        return {"actor": payload.actor}

    return app


def _session_payload(session: UsageSession) -> Dict[str, Any]:
    return {
        "id": session.id,
        "sensor": session.sensor.value,
        "actor": session.actor,
        "started_at": session.started_at.isoformat(),
        "ended_at": session.ended_at.isoformat(),
        "duration_seconds": session.duration_seconds,
    }
