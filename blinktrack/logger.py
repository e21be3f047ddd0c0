"""Collects pose estimates, writes them to CSV and answers status queries."""

from __future__ import annotations

import math
import os
import queue
import threading
import time
from typing import Iterable, Optional, Union

from .csvfile import CsvFile
from .types import OutputEntry, Rotation

CSV_HEADER = ("PC_TS", "C_TS", "ID", "X", "Y", "Z", "R1", "R2", "R3", "w", "DET")
STATUS_SAMPLES = 6
DEFAULT_STATUS_TIMEOUT = 0.01
_POLL_INTERVAL = 0.001
_EPSILON = 2.220446049250313e-16


def rotation_to_quaternion(
    rotation: Union[Rotation, Iterable[float]],
) -> tuple[float, float, float, float]:
    """Turn a Rodrigues rotation vector into an (x, y, z, w) quaternion."""
    r0, r1, r2 = (float(v) for v in rotation)
    angle = math.sqrt(r0 * r0 + r1 * r1 + r2 * r2)
    if angle > _EPSILON:
        axis = (r0 / angle, r1 / angle, r2 / angle)
    else:
        axis = (0.0, 0.0, 0.0)
    half_sin = math.sin(angle / 2.0)
    return (axis[0] * half_sin, axis[1] * half_sin, axis[2] * half_sin, math.cos(angle / 2.0))


class PoseLogger:
    """Consumes pose estimates from ``output_queue`` on a background thread."""

    def __init__(
        self,
        csv_logging: bool = False,
        parent_tf_name: str = "",
        csv_directory: Union[str, os.PathLike] = ".",
    ) -> None:
        self.output_queue: "queue.Queue[OutputEntry]" = queue.Queue()
        self.csv_logging_enabled = csv_logging
        self.parent_tf_name = parent_tf_name

        self._condition = threading.Condition()
        self._recording = False
        self._logged_outputs = 0
        self._current_outputs: dict[int, OutputEntry] = {}

        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

        self.csv_path: Optional[str] = None
        self._csv: Optional[CsvFile] = None
        if csv_logging:
            filename = time.strftime("%Y-%m-%d-%H-%M-%S.csv", time.localtime())
            self.csv_path = os.path.join(os.fspath(csv_directory), filename)
            self._csv = CsvFile(self.csv_path)
            self._csv.write_row(CSV_HEADER)

    def __enter__(self) -> "PoseLogger":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def start(self) -> None:
        """Start consuming the output queue in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="pose-logger", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop the background thread and close the CSV file."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        if self._csv is not None:
            self._csv.close()

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                entry = self.output_queue.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                continue
            self.process(entry)

    def process(self, entry: OutputEntry) -> None:
        """Log one pose estimate and record it if a status query is pending."""
        if self._csv is not None:
            self.log_to_csv(entry)
        with self._condition:
            if not self._recording:
                return
            self._current_outputs[entry.marker_id] = entry
            self._logged_outputs += 1
            if self._logged_outputs >= STATUS_SAMPLES:
                self._recording = False
                self._logged_outputs = 0
                self._condition.notify_all()

    def current_status(self, timeout: float = DEFAULT_STATUS_TIMEOUT) -> dict[int, OutputEntry]:
        """Return the latest pose of each marker seen in the next few estimates.

        An empty mapping is returned if not enough estimates arrive within ``timeout``.
        """
        with self._condition:
            self._current_outputs = {}
            self._recording = True
            done = self._condition.wait_for(lambda: not self._recording, timeout)
            if not done:
                return {}
            return dict(self._current_outputs)

    def log_to_csv(self, entry: OutputEntry) -> None:
        """Write ``entry`` as one CSV row with its rotation as a quaternion."""
        if self._csv is None:
            raise RuntimeError("CSV logging is not enabled")
        qx, qy, qz, qw = rotation_to_quaternion(entry.pose_rot)
        self._csv.write_row(
            (
                entry.pc_timestamp,
                entry.camera_timestamp,
                entry.marker_id,
                entry.pose_trans.x,
                entry.pose_trans.y,
                entry.pose_trans.z,
                qx,
                qy,
                qz,
                qw,
                entry.detection,
            )
        )