"""User-facing "sensor in use" notifications and the preference that gates them."""

from __future__ import annotations

import logging
import shutil
import subprocess
import threading
from pathlib import Path
from typing import Mapping, Optional, Protocol

from pydantic import BaseModel, ConfigDict, ValidationError

from .config import DEFAULT_NOTIFICATION_IDS
from .models import SensorKind

logger = logging.getLogger(__name__)


MESSAGES: dict[SensorKind, str] = {
    SensorKind.MICROPHONE: "Microphone is being used",
    SensorKind.CAMERA: "Camera is being used",
}


class Preferences(BaseModel):
    notifications_enabled: bool = True

    model_config = ConfigDict(extra="ignore")


class PreferenceSource(Protocol):
    @property
    def notifications_enabled(self) -> bool: ...


class StaticPreferences:
    """In-memory preferences, mainly for embedding and tests."""

    def __init__(self, notifications_enabled: bool = True) -> None:
        self.notifications_enabled = notifications_enabled


class PreferenceStore:
    """JSON-backed preferences. Every read goes to disk so changes made by
    another process (the CLI or the dashboard) apply on the next check."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def load(self) -> Preferences:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return Preferences()
        try:
            return Preferences.model_validate_json(raw)
        except ValidationError:
            logger.warning("Ignoring malformed preferences file %s", self.path)
            return Preferences()

    def save(self, preferences: Preferences) -> None:
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(".tmp")
            tmp.write_text(preferences.model_dump_json(indent=2), encoding="utf-8")
            tmp.replace(self.path)

    @property
    def notifications_enabled(self) -> bool:
        return self.load().notifications_enabled

    def set_notifications_enabled(self, enabled: bool) -> None:
        prefs = self.load()
        prefs.notifications_enabled = enabled
        self.save(prefs)


class NotificationPresenter(Protocol):
    def show(self, notification_id: int, message: str) -> None: ...

    def cancel(self, notification_id: int) -> None: ...


class LoggingPresenter:
    """Presents notifications as log records and remembers which are visible."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._visible: dict[int, str] = {}

    @property
    def visible(self) -> dict[int, str]:
        with self._lock:
            return dict(self._visible)

    def show(self, notification_id: int, message: str) -> None:
        with self._lock:
            self._visible[notification_id] = message
        logger.warning("[notification %d] %s", notification_id, message)

    def cancel(self, notification_id: int) -> None:
        with self._lock:
            message = self._visible.pop(notification_id, None)
        if message is not None:
            logger.info("[notification %d] dismissed", notification_id)


class DesktopPresenter(LoggingPresenter):
    """Sends notifications through ``notify-send`` when it is installed.

    ``notify-send --print-id`` reports the id the notification server gave
    each notification; ``cancel`` closes it again through the freedesktop
    ``CloseNotification`` call via ``gdbus``. Without ``gdbus`` the
    notification cannot be withdrawn and stays until the user dismisses it.
    """

    def __init__(self, app_name: str = "Sensor Monitor") -> None:
        super().__init__()
        self.app_name = app_name
        self._binary = shutil.which("notify-send")
        self._gdbus = shutil.which("gdbus")
        self._server_ids: dict[int, int] = {}

    def show(self, notification_id: int, message: str) -> None:
        super().show(notification_id, message)
        if not self._binary:
            return
        command = [
            self._binary, "--app-name", self.app_name, "--urgency", "critical", "--print-id"
        ]
        previous = self._server_ids.get(notification_id)
        if previous is not None:
            command.append(f"--replace-id={previous}")
        command.append(message)
        try:
            result = subprocess.run(
                command, check=True, timeout=5, capture_output=True, text=True
            )
        except (OSError, subprocess.SubprocessError):
            logger.exception("Failed to send desktop notification %d", notification_id)
            return
        server_id = result.stdout.strip()
        if server_id.isdigit():
            self._server_ids[notification_id] = int(server_id)

    def cancel(self, notification_id: int) -> None:
        super().cancel(notification_id)
        server_id = self._server_ids.pop(notification_id, None)
        if server_id is None:
            return
        if not self._gdbus:
            logger.debug("gdbus not installed; cannot close notification %d", notification_id)
            return
        try:
            subprocess.run(
                [
                    self._gdbus,
                    "call",
                    "--session",
                    "--dest",
                    "org.freedesktop.Notifications",
                    "--object-path",
                    "/org/freedesktop/Notifications",
                    "--method",
                    "org.freedesktop.Notifications.CloseNotification",
                    str(server_id),
                ],
                check=True,
                timeout=5,
                capture_output=True,
            )
        except (OSError, subprocess.SubprocessError):
            logger.exception("Failed to close desktop notification %d", notification_id)


class NotificationGateway:
    """Shows and hides one notification per sensor kind."""

    def __init__(
        self,
        presenter: NotificationPresenter,
        preferences: PreferenceSource,
        notification_ids: Optional[Mapping[SensorKind, int]] = None,
    ) -> None:
        self.presenter = presenter
        self.preferences = preferences
        self.notification_ids = dict(notification_ids or DEFAULT_NOTIFICATION_IDS)

    def notification_id(self, kind: SensorKind) -> int:
        return self.notification_ids[kind]

    def show_usage_notification(self, kind: SensorKind) -> bool:
        """Show the notification for ``kind`` if the user enabled notifications."""
        if not self.preferences.notifications_enabled:
            logger.debug("Notifications disabled; not announcing %s use.", kind.value)
            return False
        self.presenter.show(self.notification_id(kind), MESSAGES[kind])
        return True

    def hide_usage_notification(self, kind: SensorKind) -> None:
        self.presenter.cancel(self.notification_id(kind))
