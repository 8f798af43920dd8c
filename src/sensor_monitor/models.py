"""Domain models for recorded sensor usage."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class SensorKind(str, Enum):
    MICROPHONE = "microphone"
    CAMERA = "camera"


@dataclass(slots=True, frozen=True)
class RecordingConfig:
    """One entry of the active configuration list reported by a sensor source."""

    device: str
    owner_pid: Optional[int] = None


@dataclass(slots=True, frozen=True)
class UsageSession:
    """A closed interval during which a sensor was in use."""

    sensor: SensorKind
    actor: Optional[str]
    started_at: datetime
    ended_at: datetime
    id: Optional[int] = None

    def __post_init__(self) -> None:
        if self.ended_at < self.started_at:
            raise ValueError("ended_at must not precede started_at")

    @property
    def duration_seconds(self) -> float:
        return (self.ended_at - self.started_at).total_seconds()
