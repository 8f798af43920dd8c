"""Tracks which actor is currently believed responsible for sensor use."""

from __future__ import annotations

import threading
from typing import Optional


def normalize_actor(actor: Optional[str]) -> Optional[str]:
    if actor is None:
        return None
    cleaned = str(actor).strip()
    return cleaned or None


class AttributionTracker:
    """Holds the most recent foreground actor."""

    def __init__(self, initial: Optional[str] = None) -> None:
        self._lock = threading.Lock()
        self._actor = normalize_actor(initial)

    @property
    def current(self) -> Optional[str]:
        with self._lock:
            return self._actor

    def update(self, actor: Optional[str]) -> Optional[str]:
        """Record a new actor and return the previous one."""
        actor = normalize_actor(actor)
        with self._lock:
            previous, self._actor = self._actor, actor
        return previous

    def clear(self) -> Optional[str]:
        return self.update(None)
