"""Detection of blinking LEDs and estimation of their blink frequencies."""

from __future__ import annotations

import threading
from typing import Any, Optional, Sequence

import numpy as np
from scipy import ndimage

from .buffers import Buffers
from .types import EventBatch

FPS = 1000
MIN_FREQ = 2000
MIN_AREA = 3.0
TIMESTAMP_SLOTS = 20
MAX_DIFF = 200

_DIRECTIONS = ((1, 0), (1, 1), (0, 1), (-1, 1), (-1, 0), (-1, -1), (0, -1), (1, -1))
_EIGHT_CONNECTED = np.ones((3, 3), dtype=bool)


def _trace_boundary(component: np.ndarray, start: tuple[int, int]) -> list[tuple[int, int]]:
    height, width = component.shape

    def foreground(x: int, y: int) -> bool:
        return 0 <= x < width and 0 <= y < height and bool(component[y, x])

    path: list[tuple[int, int]] = []
    current = start
    previous_direction = 3
    first_direction: Optional[int] = None
    for _ in range(4 * int(component.sum()) + 8):
        found = None
        for offset in range(8):
            k = (previous_direction + 5 + offset) % 8
            dx, dy = _DIRECTIONS[k]
            if foreground(current[0] + dx, current[1] + dy):
                found = k
                break
        if found is None:
            return [start]
        if current == start and path and found == first_direction:
            break
        if first_direction is None:
            first_direction = found
        path.append(current)
        dx, dy = _DIRECTIONS[found]
        current = (current[0] + dx, current[1] + dy)
        previous_direction = found
    return path


def _simplify(path: list[tuple[int, int]]) -> list[tuple[int, int]]:
    if len(path) <= 2:
        return path
    kept = []
    count = len(path)
    for i, point in enumerate(path):
        before = path[i - 1]
        after = path[(i + 1) % count]
        incoming = (point[0] - before[0], point[1] - before[1])
        outgoing = (after[0] - point[0], after[1] - point[1])
        if incoming != outgoing:
            kept.append(point)
    return kept or path[:1]


def find_contours(mask) -> list[np.ndarray]:
    """Outer contours of the 8-connected foreground regions, as (N, 2) arrays of (x, y)."""
    binary = np.asarray(mask) != 0
    labels, count = ndimage.label(binary, structure=_EIGHT_CONNECTED)
    contours = []
    for label in range(1, count + 1):
        component = labels == label
        y, x = np.argwhere(component)[0]
        path = _simplify(_trace_boundary(component, (int(x), int(y))))
        contours.append(np.array(path, dtype=int).reshape(-1, 2))
    return contours


def contour_area(contour) -> float:
    """Area enclosed by the polygon ``contour``."""
    points = np.asarray(contour, dtype=float).reshape(-1, 2)
    if len(points) < 3:
        return 0.0
    x, y = points[:, 0], points[:, 1]
    return float(abs((x * np.roll(y, -1) - np.roll(x, -1) * y).sum()) / 2.0)


def estimate_frequency(diffs) -> float:
    """Blink frequency (Hz) from a histogram of event time differences (µs).

    The last bin collects all over-long differences and is ignored.
    """
    counts = np.array(diffs, dtype=float)
    counts[-1] = 0
    mode = int(np.argmax(counts))
    if mode <= 0:
        return 0.0
    neighbours = range(mode - 1, min(mode + 2, len(counts)))
    total = sum(i * counts[i] for i in neighbours)
    weight = sum(counts[i] for i in neighbours)
    return 1_000_000 / (total / weight)


class DetectionAlgorithm:
    """Accumulates events, finds blinking blobs and hands them to the markers manager."""

    def __init__(
        self,
        width: int,
        height: int,
        markers: Any,
        logger: Any = None,
        visualizer: Any = None,
    ) -> None:
        self.camera_width = width
        self.camera_height = height
        self.markers_manager = markers
        self.logger = logger
        self.visualizer = visualizer
        self.buffers = Buffers()

        self.period = int(1_000_000 / FPS)
        self.cutoff = MIN_FREQ // self.period
        self.histogram = np.zeros((height, width), dtype=np.uint8)
        self.gathered_timestamps = np.zeros((height, width, TIMESTAMP_SLOTS), dtype=np.int64)

        self.assigned_contours: list[np.ndarray] = []
        self.assigned_frequencies: list[float] = []
        self.detection_timestamp = 0
        self._new_detections = threading.Event()
        self._busy = threading.Event()

        self._pending: list[EventBatch] = []
        self._initial: list[EventBatch] = []
        self._buffered_length = 0

        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._detect_thread: Optional[threading.Thread] = None

    @property
    def new_detections_available(self) -> bool:
        return self._new_detections.is_set()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _frequencies(self, contours: Sequence[np.ndarray]) -> list[float]:
        result = []
        for contour in contours:
            x0, y0 = contour.min(axis=0)
            x1, y1 = contour.max(axis=0)
            xs = slice(int(x0), min(int(x1) + 2, self.camera_width))
            ys = slice(int(y0), min(int(y1) + 2, self.camera_height))
            counts = np.minimum(self.histogram[ys, xs].astype(int), TIMESTAMP_SLOTS)
            stamps = self.gathered_timestamps[ys, xs]
            diffs = np.zeros(MAX_DIFF + 1, dtype=int)
            for (row, col), n in np.ndenumerate(counts):
                if n > 1:
                    steps = np.minimum(np.abs(np.diff(stamps[row, col, :n])), MAX_DIFF)
                    diffs += np.bincount(steps, minlength=MAX_DIFF + 1)
            result.append(estimate_frequency(diffs))
        return result

    def detect_markers(
        self, batches: Sequence[EventBatch]
    ) -> Optional[tuple[list[np.ndarray], list[float]]]:
        """Look back one period from the newest event and detect blinking blobs.

        Returns the contours and frequencies found, or None if the batches do not
        span a whole period.
        """
        result = None
        try:
            non_empty = [b for b in batches if b]
            if not non_empty:
                return None
            current_ts = non_empty[-1][-1].t
            finish_ts = current_ts - self.period
            for batch in reversed(non_empty):
                for event in batch:
                    count = int(self.histogram[event.y, event.x])
                    if count < TIMESTAMP_SLOTS:
                        self.gathered_timestamps[event.y, event.x, count] = event.t
                    self.histogram[event.y, event.x] = (count + 1) % 256
                    if event.t < finish_ts:
                        result = self._analyse(current_ts)
                        break
                if result is not None:
                    break
        finally:
            self._busy.clear()
            self.histogram = np.zeros((self.camera_height, self.camera_width), dtype=np.uint8)
        return result

    def _analyse(self, current_ts: int) -> tuple[list[np.ndarray], list[float]]:
        mask = np.where(self.histogram > self.cutoff, 255, 0).astype(np.uint8)
        contours = [c for c in find_contours(mask) if MIN_AREA < contour_area(c)]
        frequencies = self._frequencies(contours)
        if self.visualizer is not None:
            self.visualizer.display(mask, contours, frequencies)
        self.assigned_contours = contours
        self.assigned_frequencies = frequencies
        self.detection_timestamp = current_ts
        self._new_detections.set()
        return contours, frequencies

    def step(self) -> Optional[EventBatch]:
        """One pass of the detection loop; returns the batch read, if any."""
        if self._new_detections.is_set():
            self.markers_manager.register_detections(
                self.assigned_frequencies, self.assigned_contours, self.detection_timestamp
            )
            self.markers_manager.spawn_markers(self._initial, self.buffers)
            self._new_detections.clear()
            self._initial = []

        batch = self.buffers.get_batch_and_send_further()
        if batch:
            self._initial.append(batch)
            self._pending.append(batch)
            self._buffered_length += batch[-1].t - batch[0].t

        if (
            not self._new_detections.is_set()
            and not self._busy.is_set()
            and self._buffered_length > self.period
        ):
            self._busy.set()
            if self._detect_thread is not None:
                self._detect_thread.join()
            self._detect_thread = threading.Thread(
                target=self.detect_markers, args=(self._pending,), daemon=True
            )
            self._detect_thread.start()
            self._pending = []
            self._buffered_length = 0
        return batch

    def _run(self) -> None:
        while not self._stop.is_set():
            self.step()

    def start(self) -> None:
        """Run the detection loop in the background if an input queue is connected."""
        if self.buffers.input_buffer is None or self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="detection", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop the detection loop and wait for a running detection."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        if self._detect_thread is not None:
            self._detect_thread.join()
            self._detect_thread = None