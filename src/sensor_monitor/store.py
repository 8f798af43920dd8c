"""Append-only session persistence driven by a single background writer."""

from __future__ import annotations

import logging
import queue
import sqlite3
import threading
from pathlib import Path
from typing import Optional

from .db import insert_session, open_database
from .models import UsageSession

logger = logging.getLogger(__name__)

_STOP = object()


class StorageError(Exception):
    """Raised when a session cannot be written to the database."""

    def __init__(self, session: UsageSession, cause: BaseException) -> None:
        super().__init__(f"Failed to store {session.sensor.value} session: {cause}")
        self.session = session
        self.cause = cause


class SessionStore:
    """Queue closed sessions and write them in close order on one thread.

    ``insert`` only enqueues, so callers on a sensor callback thread never wait
    on disk I/O. A single consumer drains the queue which keeps rows in the
    order sessions were closed. Write failures are logged and counted; they
    are never raised back to the caller.
    """

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = db_path
        self._queue: "queue.Queue[object]" = queue.Queue()
        self._lock = threading.Lock()
        self._conn: Optional[sqlite3.Connection] = None
        self._thread: Optional[threading.Thread] = None
        self._failures = 0
        self._written = 0

    @property
    def failures(self) -> int:
        with self._lock:
            return self._failures

    @property
    def written(self) -> int:
        with self._lock:
            return self._written

    def start(self) -> None:
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            self._conn = open_database(self.db_path, check_same_thread=False)
            thread = threading.Thread(
                target=self._run_writer, name="session-writer", daemon=True
            )
            self._thread = thread
            thread.start()
            logger.info("Session writer started; writing to %s", self.db_path)

    def insert(self, session: UsageSession) -> None:
        """Queue a closed session for writing."""
        self.start()
        self._queue.put(session)
        logger.debug(
            "Queued %s session for %s (%.1fs).",
            session.sensor.value,
            session.actor or "unknown",
            session.duration_seconds,
        )

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait until every queued session has been processed."""
        with self._lock:
            running = bool(self._thread and self._thread.is_alive())
        if not running:
            return True
        done = threading.Event()
        self._queue.put(done)
        return done.wait(timeout)

    def close(self, timeout: float = 10.0) -> None:
        thread: Optional[threading.Thread] = None
        with self._lock:
            thread = self._thread
            self._thread = None
        if thread and thread.is_alive():
            self._queue.put(_STOP)
            thread.join(timeout=timeout)
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
        logger.info("Session writer stopped.")

    def _run_writer(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                if isinstance(item, threading.Event):
                    item.set()
                    continue
                self._write(item)  # type: ignore[arg-type]
            finally:
                self._queue.task_done()

    def _write(self, session: UsageSession) -> None:
        try:
            self._insert(session)
        except StorageError:
            logger.exception("Dropping usage session after write failure.")
            with self._lock:
                self._failures += 1
            return
        with self._lock:
            self._written += 1

    def _insert(self, session: UsageSession) -> None:
        if self._conn is None:
            raise StorageError(session, RuntimeError("database is closed"))
        try:
            insert_session(self._conn, session)
        except sqlite3.Error as exc:
            raise StorageError(session, exc) from exc
