"""Value types shared by the event pipeline, the trackers and the pose logger."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Sequence


@dataclass(frozen=True, slots=True)
class Event:
    """A single change-detection event: pixel position, timestamp (µs) and polarity."""

    x: int
    y: int
    t: int
    p: int = 0


EventBatch = Sequence[Event]


@dataclass(slots=True)
class TrackerOut:
    """Snapshot of one tracked blob: centre, region radius and blink frequency."""

    x: float = 0.0
    y: float = 0.0
    r: float = 0.0
    freq: int = 0


@dataclass(slots=True)
class Translation:
    """Translation part of a pose."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def __iter__(self) -> Iterator[float]:
        yield self.x
        yield self.y
        yield self.z


@dataclass(slots=True)
class Rotation:
    """Rotation part of a pose as a Rodrigues vector."""

    r0: float = 0.0
    r1: float = 0.0
    r2: float = 0.0

    def __iter__(self) -> Iterator[float]:
        yield self.r0
        yield self.r1
        yield self.r2


@dataclass(slots=True)
class OutputEntry:
    """One pose estimate of a marker, as handed to the logger."""

    camera_timestamp: int = 0
    pc_timestamp: int = 0
    marker_id: int = 0
    detection: bool = False
    tracker_outputs: list[TrackerOut] = field(default_factory=list)
    pose_trans: Translation = field(default_factory=Translation)
    pose_rot: Rotation = field(default_factory=Rotation)