"""Markers made of blinking LEDs: matching detections and tracking their pose."""

from __future__ import annotations

import threading
import time
from typing import Any, Iterator, Optional, Sequence

import numpy as np

from .buffers import Buffers
from .options import MarkersSetup
from .pose import PoseError, contour_centroid, project_points, solve_pnp
from .tracker import TrackedBlob
from .types import Event, EventBatch, OutputEntry, Rotation, TrackerOut, Translation

FREQUENCY_TOLERANCE = 25
INACTIVITY_PERIODS = 8
ACCUMULATION_PERIOD = 100


def _now_us() -> int:
    return time.time_ns() // 1000


class Marker:
    """One detected marker whose LEDs are followed by tracked blobs.

    ``camera`` must provide ``camera_matrix`` and ``dist_coeffs``; ``logger``
    must provide an ``output_queue`` that pose estimates are put on.
    """

    def __init__(
        self,
        marker_id: int,
        points_3d: Sequence[Sequence[float]],
        contours: Sequence[Any],
        frequencies: Sequence[float],
        detection_time: int,
        camera: Any,
        logger: Any,
        manager: Optional["MarkersManager"] = None,
    ) -> None:
        self.marker_id = int(marker_id)
        self.manager = manager
        self.logger = logger
        self.camera = camera
        self.detected_at = detection_time
        self.current_camera_timestamp = detection_time
        self.current_pc_timestamp = _now_us()

        self.blob_frequencies = [int(f) for f in frequencies]
        self.objectpoints_3d = np.asarray(points_3d, dtype=float).reshape(-1, 3)
        self.detected_initial_points = [contour_centroid(c) for c in contours]

        self.r_vec = np.zeros(3)
        self.t_vec = np.zeros(3)
        self.projected_objectpoints = np.empty((0, 2))
        self.centerpoint_3d = (0.0, 0.0, 0.0)
        self.projected_centerpoint: Optional[tuple[float, float]] = None

        self.tracked_blobs: list[TrackedBlob] = []
        self.blobs_for_current_pnp: list[TrackerOut] = []
        self.average_distances: list[float] = []

        self.accumulation_period = ACCUMULATION_PERIOD
        self.final_accumulation_time = 0
        self.new_result = False

        self.buffers = Buffers()
        self.input_buffers: Optional[Buffers] = None
        self.initial_buffer: Sequence[EventBatch] = []
        self.tracking_thread: Optional[threading.Thread] = None

        self._pnp_thread: Optional[threading.Thread] = None
        self._pnp_running = threading.Event()
        self._lost = threading.Event()
        self._halt = threading.Event()

    @property
    def tracking_lost(self) -> bool:
        return self._lost.is_set()

    @property
    def pnp_running(self) -> bool:
        return self._pnp_running.is_set()

    def _calibration(self) -> tuple[np.ndarray, np.ndarray]:
        return np.asarray(self.camera.camera_matrix, float), np.asarray(self.camera.dist_coeffs, float)

    def output(self, detection: bool = False) -> OutputEntry:
        """The current pose of the marker as a log entry."""
        return OutputEntry(
            camera_timestamp=self.current_camera_timestamp,
            pc_timestamp=self.current_pc_timestamp,
            marker_id=self.marker_id,
            detection=detection,
            pose_trans=Translation(*(float(v) for v in self.t_vec)),
            pose_rot=Rotation(*(float(v) for v in self.r_vec)),
        )

    def start_tracking(self, batches: Sequence[EventBatch], input_buffers: Buffers) -> None:
        """Replay ``batches`` and then follow ``input_buffers`` on a background thread."""
        self.initial_buffer = batches
        self.input_buffers = input_buffers
        self.buffers.input_buffer = input_buffers.output_buffer()
        self.tracking_thread = threading.Thread(
            target=self.track, name=f"marker-{self.marker_id}", daemon=True
        )
        self.tracking_thread.start()

    def stop_tracking(self) -> None:
        """Stop tracking and stop receiving batches."""
        self._halt.set()
        if self.input_buffers is not None and self.buffers.input_buffer is not None:
            self.input_buffers.deregister_buffer(self.buffers.input_buffer)

    def _finish(self) -> None:
        self.stop_tracking()
        if self.manager is not None:
            self.manager.deregister_marker(self)

    def _batches(self) -> Iterator[EventBatch]:
        index = 0
        ready = False
        while not self._lost.is_set() and not self._halt.is_set():
            if index < len(self.initial_buffer):
                batch = self.initial_buffer[index]
                index += 1
                if batch and batch[0].t >= self.detected_at:
                    ready = True
                if ready and batch:
                    yield batch
            else:
                batch = self.buffers.get_batch()
                if batch:
                    yield batch

    def _join_pnp(self) -> None:
        if self._pnp_thread is not None:
            self._pnp_thread.join()
            self._pnp_thread = None

    def _begin_pnp(self, event: Event) -> None:
        self._join_pnp()
        self._pnp_running.set()
        outputs: list[TrackerOut] = []
        distances: list[float] = []
        for blob in self.tracked_blobs:
            outputs.append(blob.output())
            if event.t - blob.last_update > INACTIVITY_PERIODS * blob.period:
                self._lost.set()
                print(
                    f"{event.t} vs {blob.last_update} period {blob.period} freq {blob.frequency}"
                )
                print("Tracking lost due to inactivity")
                break
            distances.append(blob.radius)
        self.blobs_for_current_pnp = outputs
        self.average_distances = distances
        if not self._lost.is_set():
            self._pnp_thread = threading.Thread(target=self.solve_pose, daemon=True)
            self._pnp_thread.start()

    def track(self) -> None:
        """Estimate the initial pose, then follow the LEDs until tracking is lost."""
        print("Detected - starting tracking")
        matrix, dist = self._calibration()
        try:
            self.r_vec, self.t_vec = solve_pnp(
                self.objectpoints_3d, self.detected_initial_points, matrix, dist
            )
        except PoseError:
            self._finish()
            return

        self.projected_objectpoints = project_points(
            self.objectpoints_3d, self.r_vec, self.t_vec, matrix, dist
        )
        centre = project_points([self.centerpoint_3d], self.r_vec, self.t_vec, matrix, dist)[0]
        self.projected_centerpoint = (float(centre[0]), float(centre[1]))

        self.tracked_blobs = [
            TrackedBlob(point, frequency, self.detected_at)
            for point, frequency in zip(self.detected_initial_points, self.blob_frequencies)
        ]
        self._pnp_running.clear()
        self.new_result = False
        self.final_accumulation_time = self.detected_at + self.accumulation_period
        self.logger.output_queue.put(self.output(True))

        for batch in self._batches():
            for event in batch:
                if not self._pnp_running.is_set():
                    self._begin_pnp(event)
                if self._lost.is_set():
                    break
                for blob in self.tracked_blobs:
                    if blob.update(event):
                        break
                self.current_camera_timestamp = event.t

        self._join_pnp()
        self._finish()

    def solve_pose(self) -> None:
        """Refine the pose from the blob snapshot and publish it."""
        centers = [(blob.x, blob.y) for blob in self.blobs_for_current_pnp]
        distances = list(self.average_distances)
        matrix, dist = self._calibration()
        try:
            rvec, tvec = solve_pnp(
                self.objectpoints_3d, centers, matrix, dist, self.r_vec, self.t_vec
            )
        except PoseError:
            self._lost.set()
            return
        self.r_vec, self.t_vec = rvec, tvec

        projected = project_points(self.objectpoints_3d, rvec, tvec, matrix, dist)
        self.projected_objectpoints = projected
        error_sum = float(np.linalg.norm(projected - np.asarray(centers), axis=1).sum())
        dist_sum = 2.0 * sum(distances)
        if error_sum > dist_sum:
            print("tracking lost")
            print(f"{error_sum} vs {dist_sum}")
            self._lost.set()

        self.current_pc_timestamp = _now_us()
        entry = self.output()
        entry.tracker_outputs = list(self.blobs_for_current_pnp)
        self.logger.output_queue.put(entry)

        self._pnp_running.clear()
        self.new_result = True


class MarkersManager:
    """Matches detected blinking blobs to known markers and runs their trackers."""

    def __init__(self, setup: MarkersSetup, camera: Any, logger: Any = None) -> None:
        self.config = setup
        self.camera = camera
        self.logger = logger
        self.tracked_markers: list[Marker] = []
        self.markers_to_spawn: list[Marker] = []
        self.markers_to_destroy: list[Marker] = []
        self.tracked_ids: list[int] = []
        self._ids_lock = threading.Lock()
        self._markers_lock = threading.Lock()

    def match_markers(
        self,
        frequencies: Sequence[float],
        contours: Sequence[Any],
        detection_timestamp: int,
    ) -> list[Marker]:
        """Build a marker for every configured marker whose LED frequencies were all seen."""
        detected: list[Marker] = []
        for marker_id, coordinates, wanted in zip(
            self.config.ids, self.config.coordinates, self.config.frequencies
        ):
            assigned: list[int] = []
            for target in wanted:
                index = next(
                    (
                        i
                        for i, found in enumerate(frequencies)
                        if abs(int(found) - target) < FREQUENCY_TOLERANCE
                    ),
                    None,
                )
                if index is None:
                    break
                assigned.append(index)
            else:
                detected.append(
                    Marker(
                        marker_id,
                        coordinates,
                        [contours[i] for i in assigned],
                        [int(frequencies[i]) for i in assigned],
                        detection_timestamp,
                        self.camera,
                        self.logger,
                        self,
                    )
                )
        return detected

    def register_detections(
        self,
        frequencies: Sequence[float],
        contours: Sequence[Any],
        detection_timestamp: int,
    ) -> None:
        """Queue newly detected markers that are not tracked yet."""
        detected = self.match_markers(frequencies, contours, detection_timestamp)
        with self._ids_lock:
            for marker in detected:
                if marker.marker_id not in self.tracked_ids:
                    self.tracked_ids.append(marker.marker_id)
                    self.markers_to_spawn.append(marker)

    def deregister_marker(self, marker: Marker) -> None:
        """Forget ``marker``'s id and schedule it for removal."""
        with self._ids_lock:
            if marker.marker_id in self.tracked_ids:
                self.tracked_ids.remove(marker.marker_id)
        with self._markers_lock:
            if any(tracked is marker for tracked in self.tracked_markers):
                self.markers_to_destroy.append(marker)

    def spawn_markers(self, batches: Sequence[EventBatch], input_buffers: Buffers) -> None:
        """Drop finished markers and start tracking the newly registered ones."""
        with self._ids_lock:
            to_spawn = self.markers_to_spawn
            self.markers_to_spawn = []
        with self._markers_lock:
            for marker in self.markers_to_destroy:
                self.tracked_markers = [m for m in self.tracked_markers if m is not marker]
            self.markers_to_destroy = []
            for marker in to_spawn:
                self.tracked_markers.append(marker)
                marker.start_tracking(batches, input_buffers)