"""Sensor event sources that report the set of active recording configurations."""

from __future__ import annotations

import glob
import logging
import os
import threading
from pathlib import Path
from typing import Callable, Iterable, Optional, Protocol, Sequence

import psutil

from .models import RecordingConfig, SensorKind

logger = logging.getLogger(__name__)

ConfigCallback = Callable[[Optional[Sequence[RecordingConfig]]], None]
Probe = Callable[[], list[RecordingConfig]]

ALSA_CAPTURE_GLOB = "/proc/asound/card*/pcm*c/sub*/status"
VIDEO_DEVICE_PREFIX = "/dev/video"


class SensorEventSource(Protocol):
    kind: SensorKind

    def register(self, callback: ConfigCallback) -> None: ...

    def unregister(self, callback: ConfigCallback) -> None: ...

    def start(self) -> None: ...

    def stop(self) -> None: ...


class _CallbackRegistry:
    def __init__(self) -> None:
        self._callbacks: list[ConfigCallback] = []
        self._callbacks_lock = threading.Lock()

    def register(self, callback: ConfigCallback) -> None:
        with self._callbacks_lock:
            if callback not in self._callbacks:
                self._callbacks.append(callback)

    def unregister(self, callback: ConfigCallback) -> None:
        with self._callbacks_lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    @property
    def callback_count(self) -> int:
        with self._callbacks_lock:
            return len(self._callbacks)

    def _dispatch(self, configs: Sequence[RecordingConfig]) -> None:
        with self._callbacks_lock:
            callbacks = list(self._callbacks)
        for callback in callbacks:
            try:
                callback(list(configs))
            except Exception:
                logger.exception("Sensor callback %r failed.", callback)


class ManualSensorSource(_CallbackRegistry):
    """A source fed by the caller, for external detectors and tests."""

    def __init__(self, kind: SensorKind) -> None:
        super().__init__()
        self.kind = kind

    def publish(self, configs: Iterable[RecordingConfig]) -> None:
        self._dispatch(list(configs))

    def start(self) -> None:
        pass

    def stop(self) -> None:
        pass


class PollingSensorSource(_CallbackRegistry):
    """Polls a probe on a background thread and reports changes."""

    def __init__(self, kind: SensorKind, probe: Probe, interval: float = 1.0) -> None:
        super().__init__()
        self.kind = kind
        self.probe = probe
        self.interval = interval
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None
        self._last: frozenset[RecordingConfig] = frozenset()

    def start(self) -> None:
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._run_loop,
                args=(stop_event,),
                name=f"{self.kind.value}-source",
                daemon=True,
            )
            self._thread = thread
            self._stop_event = stop_event
            thread.start()
            logger.info("Polling %s every %.1fs.", self.kind.value, self.interval)

    def stop(self) -> None:
        with self._lock:
            thread, stop_event = self._thread, self._stop_event
            self._thread = None
            self._stop_event = None
        if stop_event is not None:
            stop_event.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=10)
        # A restarted source reports a still-active sensor again.
        self._last = frozenset()

    def is_running(self) -> bool:
        with self._lock:
            return bool(self._thread and self._thread.is_alive())

    def poll_once(self) -> bool:
        """Probe once and dispatch if the active set changed."""
        try:
            configs = self.probe()
        except Exception:
            logger.exception("%s probe failed; keeping previous state.", self.kind.value)
            return False
        current = frozenset(configs)
        if current == self._last:
            return False
        self._last = current
        self._dispatch(sorted(current, key=lambda c: c.device))
        return True

    def _run_loop(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            self.poll_once()
            stop_event.wait(self.interval)


def alsa_capture_probe(pattern: str = ALSA_CAPTURE_GLOB) -> list[RecordingConfig]:
    """Return ALSA capture substreams whose status reports ``RUNNING``."""
    configs: list[RecordingConfig] = []
    for status_path in sorted(glob.glob(pattern)):
        try:
            text = Path(status_path).read_text(encoding="utf-8", errors="replace")
        except OSError:
            continue
        fields = _parse_alsa_status(text)
        if fields.get("state") != "RUNNING":
            continue
        owner = fields.get("owner_pid")
        configs.append(
            RecordingConfig(
                device=str(Path(status_path).parent),
                owner_pid=int(owner) if owner and owner.isdigit() else None,
            )
        )
    return configs


def _parse_alsa_status(text: str) -> dict[str, str]:
    fields: dict[str, str] = {}
    for line in text.splitlines():
        key, sep, value = line.partition(":")
        if sep:
            fields[key.strip()] = value.strip()
    return fields


def video_device_probe(
    prefix: str = VIDEO_DEVICE_PREFIX, proc_root: str = "/proc"
) -> list[RecordingConfig]:
    """Return video devices currently held open by any process."""
    configs: set[RecordingConfig] = set()
    for proc in psutil.process_iter(["pid"]):
        pid = proc.info["pid"]
        fd_dir = os.path.join(proc_root, str(pid), "fd")
        try:
            entries = list(os.scandir(fd_dir))
        except OSError:
            continue
        for entry in entries:
            try:
                target = os.readlink(entry.path)
            except OSError:
                continue
            if target.startswith(prefix):
                configs.add(RecordingConfig(device=target, owner_pid=pid))
    return sorted(configs, key=lambda c: (c.device, c.owner_pid or 0))


def describe_owner(pid: Optional[int]) -> Optional[str]:
    """Best-effort process name for a configuration owner."""
    if not pid:
        return None
    try:
        return psutil.Process(pid).name()
    except (psutil.Error, ProcessLookupError):
        return None


def default_source(kind: SensorKind, interval: float) -> PollingSensorSource:
    probe = alsa_capture_probe if kind is SensorKind.MICROPHONE else video_device_probe
    return PollingSensorSource(kind, probe, interval=interval)
