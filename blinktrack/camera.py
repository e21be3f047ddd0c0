"""Event source: the camera geometry, its calibration and the event reader."""

from __future__ import annotations

import threading
from typing import Iterable

import numpy as np

from .event_reader import EventBufferReader
from .options import CameraSetup
from .types import Event

DEFAULT_WIDTH = 1280
DEFAULT_HEIGHT = 720


class Camera:
    """Delivers events fed to it into the pipeline once it has been started."""

    def __init__(
        self, setup: CameraSetup, width: int = DEFAULT_WIDTH, height: int = DEFAULT_HEIGHT
    ) -> None:
        self.setup = setup
        self.width = width
        self.height = height
        self.is_recording = setup.is_recording
        self.source = setup.file_path if setup.is_recording else setup.biases_file
        self.camera_matrix = np.array(setup.camera_matrix, dtype=float)
        self.dist_coeffs = np.array(setup.dist_coeffs, dtype=float)
        self.reader = EventBufferReader()
        self._running = threading.Event()

    @property
    def running(self) -> bool:
        return self._running.is_set()

    def start(self) -> None:
        """Start delivering events to the reader."""
        self._running.set()

    def feed(self, events: Iterable[Event]) -> bool:
        """Hand one batch of events to the reader; return whether it was forwarded."""
        if not self._running.is_set():
            return False
        return self.reader.read_events(events)