"""Entry point of camera events into the processing pipeline."""

from __future__ import annotations

import threading
import time
from typing import Iterable, Optional

from .buffers import Buffers
from .types import Event


def _now_us() -> int:
    return time.time_ns() // 1000


class EventBufferReader:
    """Packs incoming events into batches and fans them out to the pipeline.

    The first non-empty batch only synchronises camera and host clocks; batches
    are forwarded once synchronised and started.
    """

    def __init__(self) -> None:
        self.buffers = Buffers()
        self._started = threading.Event()
        self.synchronized = False
        self.pc_first_timestamp: Optional[int] = None
        self.camera_first_timestamp: Optional[int] = None

    def start(self) -> None:
        """Begin forwarding batches."""
        self._started.set()

    @property
    def started(self) -> bool:
        return self._started.is_set()

    @property
    def first_timestamps(self) -> tuple[Optional[int], Optional[int]]:
        """Host and camera timestamps (µs) taken at synchronisation."""
        return self.pc_first_timestamp, self.camera_first_timestamp

    def read_events(self, events: Iterable[Event]) -> bool:
        """Take one callback's worth of events; return whether a batch was forwarded."""
        batch = tuple(events)
        if not batch:
            return False
        if not self._started.is_set() or not self.synchronized:
            if not self.synchronized:
                now = _now_us()
                print(f"Synchro {batch[0].t} at {now}")
                self.pc_first_timestamp = now
                self.camera_first_timestamp = batch[0].t
                self.synchronized = True
            return False
        self.buffers.send_batch(batch)
        return True