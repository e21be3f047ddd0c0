import queue
import time
from types import SimpleNamespace

import numpy as np
import pytest

from blinktrack.buffers import Buffers
from blinktrack.logger import PoseLogger
from blinktrack.markers import Marker, MarkersManager
from blinktrack.options import MarkersSetup
from blinktrack.pose import contour_centroid, project_points
from blinktrack.types import Event, Translation, TrackerOut

K = np.array([[500.0, 0.0, 320.0], [0.0, 500.0, 240.0], [0.0, 0.0, 1.0]])
CAMERA = SimpleNamespace(camera_matrix=K, dist_coeffs=np.zeros((1, 5)))
POINTS = [
    (-0.05, -0.05, 0.0),
    (0.05, -0.05, 0.0),
    (0.05, 0.05, 0.0),
    (-0.05, 0.05, 0.0),
    (0.0, 0.0, 0.03),
]
FREQS = [1000.0, 1500.0, 2000.0, 2500.0, 3000.0]
TRUE_R = np.array([0.1, -0.15, 0.05])
TRUE_T = np.array([0.01, -0.02, 0.6])


def square(center, half=2.0):
    cx, cy = center
    return [(cx - half, cy - half), (cx + half, cy - half), (cx + half, cy + half), (cx - half, cy + half)]


def image_points():
    return project_points(POINTS, TRUE_R, TRUE_T, K, None)


def make_setup():
    return MarkersSetup(ids=[7], coordinates=[POINTS], frequencies=[FREQS])


def make_marker(logger, manager=None):
    return Marker(7, POINTS, [square(p) for p in image_points()], FREQS, 1000, CAMERA, logger, manager)


def wait_for(predicate, timeout=10.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


def test_marker_initial_points_are_contour_centres():
    marker = make_marker(PoseLogger())
    assert np.allclose(marker.detected_initial_points, image_points())
    assert marker.blob_frequencies == [int(f) for f in FREQS]


def test_output_reflects_pose_and_timestamps():
    marker = make_marker(PoseLogger())
    marker.t_vec = np.array([1.0, 2.0, 3.0])
    marker.r_vec = np.array([0.5, 0.25, 0.125])
    entry = marker.output(True)
    assert entry.marker_id == 7
    assert entry.camera_timestamp == 1000
    assert entry.detection is True
    assert entry.pose_trans == Translation(1.0, 2.0, 3.0)
    assert list(entry.pose_rot) == [0.5, 0.25, 0.125]


def test_match_markers_assigns_contours_by_frequency():
    manager = MarkersManager(make_setup(), CAMERA, PoseLogger())
    pts = image_points()
    detected = [3000.4, 1012.0, 2490.0, 1500.9, 2020.0]
    order = [4, 0, 3, 1, 2]
    contours = [square(pts[i]) for i in order]
    markers = manager.match_markers(detected, contours, 5)
    assert len(markers) == 1
    marker = markers[0]
    assert marker.marker_id == 7
    assert marker.detected_at == 5
    assert marker.blob_frequencies == [1012, 1500, 2020, 2490, 3000]
    assert np.allclose(marker.detected_initial_points, pts)


def test_match_markers_requires_every_frequency():
    manager = MarkersManager(make_setup(), CAMERA, PoseLogger())
    pts = image_points()
    assert manager.match_markers([1000.0, 1500.0, 2000.0, 2500.0], [square(p) for p in pts[:4]], 5) == []


@pytest.mark.parametrize(
    "found, matched",
    [(1024.9, True), (1025.0, False), (976.0, True), (975.9, False)],
)
def test_match_tolerance_uses_truncated_frequency(found, matched):
    setup = MarkersSetup(ids=[3], coordinates=[[(0.0, 0.0, 0.0)]], frequencies=[[1000.0]])
    manager = MarkersManager(setup, CAMERA, PoseLogger())
    markers = manager.match_markers([found], [square((10.0, 10.0))], 0)
    assert (len(markers) == 1) is matched


def test_register_detections_queues_each_marker_once():
    manager = MarkersManager(make_setup(), CAMERA, PoseLogger())
    contours = [square(p) for p in image_points()]
    manager.register_detections(FREQS, contours, 10)
    manager.register_detections(FREQS, contours, 20)
    assert manager.tracked_ids == [7]
    assert len(manager.markers_to_spawn) == 1
    assert manager.markers_to_spawn[0].detected_at == 10


def test_deregister_untracked_marker_only_frees_id():
    manager = MarkersManager(make_setup(), CAMERA, PoseLogger())
    manager.register_detections(FREQS, [square(p) for p in image_points()], 10)
    marker = manager.markers_to_spawn[0]
    manager.deregister_marker(marker)
    assert manager.tracked_ids == []
    assert manager.markers_to_destroy == []


def test_solve_pose_publishes_refined_estimate():
    logger = PoseLogger()
    marker = make_marker(logger)
    marker.r_vec = TRUE_R + 0.02
    marker.t_vec = TRUE_T + 0.01
    blobs = [TrackerOut(x=float(p[0]), y=float(p[1]), r=5.0, freq=int(f)) for p, f in zip(image_points(), FREQS)]
    marker.blobs_for_current_pnp = blobs
    marker.average_distances = [5.0] * len(blobs)
    marker.solve_pose()
    assert not marker.tracking_lost
    assert marker.new_result is True
    assert marker.pnp_running is False
    entry = logger.output_queue.get_nowait()
    assert entry.detection is False
    assert entry.tracker_outputs == blobs
    assert np.allclose(list(entry.pose_trans), TRUE_T, atol=1e-6)


def test_solve_pose_with_wrong_point_count_loses_tracking():
    logger = PoseLogger()
    marker = make_marker(logger)
    marker.r_vec, marker.t_vec = TRUE_R.copy(), TRUE_T.copy()
    marker.blobs_for_current_pnp = [TrackerOut(x=float(p[0]), y=float(p[1]), r=5.0) for p in image_points()[:3]]
    marker.average_distances = [5.0] * 3
    marker.solve_pose()
    assert marker.tracking_lost
    with pytest.raises(queue.Empty):
        logger.output_queue.get_nowait()


def test_solve_pose_reprojection_error_beyond_radii_loses_tracking():
    logger = PoseLogger()
    marker = make_marker(logger)
    marker.r_vec, marker.t_vec = TRUE_R.copy(), TRUE_T.copy()
    pts = image_points().copy()
    pts[0, 0] += 1.0
    marker.blobs_for_current_pnp = [TrackerOut(x=float(p[0]), y=float(p[1]), r=1e-9) for p in pts]
    marker.average_distances = [1e-9] * len(pts)
    marker.solve_pose()
    assert marker.tracking_lost
    entry = logger.output_queue.get_nowait()
    assert entry.marker_id == 7


def test_spawned_marker_stops_after_inactivity():
    logger = PoseLogger()
    manager = MarkersManager(make_setup(), CAMERA, logger)
    pts = image_points()
    manager.register_detections(FREQS, [square(p) for p in pts], 1000)
    source = Buffers(queue.Queue())
    late = (Event(int(round(pts[0][0])), int(round(pts[0][1])), 1000 + 1_000_000),)
    manager.spawn_markers([late], source)
    marker = manager.tracked_markers[0]
    marker.tracking_thread.join(timeout=10)
    assert not marker.tracking_thread.is_alive()
    assert marker.tracking_lost
    assert source.output_buffers == []
    assert manager.tracked_ids == []
    entry = logger.output_queue.get_nowait()
    assert entry.detection is True
    assert entry.marker_id == 7
    assert entry.camera_timestamp == 1000
    assert np.allclose(list(entry.pose_trans), TRUE_T, atol=1e-6)
    manager.spawn_markers([], source)
    assert manager.tracked_markers == []


def test_stop_tracking_ends_running_marker():
    logger = PoseLogger()
    manager = MarkersManager(make_setup(), CAMERA, logger)
    pts = image_points()
    manager.register_detections(FREQS, [square(p) for p in pts], 1000)
    source = Buffers(queue.Queue())
    x, y = int(round(pts[0][0])), int(round(pts[0][1]))
    batch = tuple(Event(x, y, t) for t in (1100, 1200, 1300))
    manager.spawn_markers([batch], source)
    marker = manager.tracked_markers[0]
    assert wait_for(lambda: marker.current_camera_timestamp == 1300)
    marker.stop_tracking()
    marker.tracking_thread.join(timeout=10)
    assert not marker.tracking_thread.is_alive()
    assert not marker.tracking_lost
    assert marker.tracked_blobs[0].last_update == 1300
    assert source.output_buffers == []
    assert manager.tracked_ids == []