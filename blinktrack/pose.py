"""Camera projection and perspective-n-point pose estimation."""

from __future__ import annotations

import math
from typing import Iterator, Optional, Sequence

import numpy as np
from scipy.optimize import least_squares
from scipy.spatial.transform import Rotation as _Rotation

MIN_POINTS = 4
MAX_DIST_COEFFS = 5
_AREA_EPSILON = 1.1920929e-07

_START_ROTATIONS = (
    (0.0, 0.0, 0.0),
    (math.pi, 0.0, 0.0),
    (0.0, math.pi, 0.0),
    (0.0, 0.0, math.pi),
    (math.pi / 2, 0.0, 0.0),
    (-math.pi / 2, 0.0, 0.0),
    (0.0, math.pi / 2, 0.0),
    (0.0, -math.pi / 2, 0.0),
)


class PoseError(ValueError):
    """Raised when no pose can be computed from the given points."""


def _distortion(dist_coeffs: Optional[Sequence[float]]) -> np.ndarray:
    coeffs = np.zeros(MAX_DIST_COEFFS)
    if dist_coeffs is None:
        return coeffs
    values = np.asarray(dist_coeffs, dtype=float).ravel()
    if values.size > MAX_DIST_COEFFS:
        raise ValueError(f"at most {MAX_DIST_COEFFS} distortion coefficients are supported")
    coeffs[: values.size] = values
    return coeffs


def _project(
    points: np.ndarray,
    rvec: np.ndarray,
    tvec: np.ndarray,
    camera_matrix: np.ndarray,
    coeffs: np.ndarray,
) -> tuple[np.ndarray, np.ndarray]:
    rotation = _Rotation.from_rotvec(np.asarray(rvec, dtype=float).reshape(3)).as_matrix()
    in_camera = points @ rotation.T + np.asarray(tvec, dtype=float).reshape(3)
    depth = in_camera[:, 2]
    inv_depth = np.divide(1.0, depth, out=np.ones_like(depth), where=depth != 0)
    x = in_camera[:, 0] * inv_depth
    y = in_camera[:, 1] * inv_depth

    k1, k2, p1, p2, k3 = coeffs
    r2 = x * x + y * y
    radial = 1.0 + k1 * r2 + k2 * r2 * r2 + k3 * r2 * r2 * r2
    xd = x * radial + 2.0 * p1 * x * y + p2 * (r2 + 2.0 * x * x)
    yd = y * radial + p1 * (r2 + 2.0 * y * y) + 2.0 * p2 * x * y

    u = camera_matrix[0, 0] * xd + camera_matrix[0, 2]
    v = camera_matrix[1, 1] * yd + camera_matrix[1, 2]
    return np.column_stack((u, v)), depth


def project_points(object_points, rvec, tvec, camera_matrix, dist_coeffs=None) -> np.ndarray:
    """Project 3D points into the image; returns an (N, 2) array of pixel positions."""
    points = np.asarray(object_points, dtype=float).reshape(-1, 3)
    matrix = np.asarray(camera_matrix, dtype=float).reshape(3, 3)
    projected, _ = _project(points, rvec, tvec, matrix, _distortion(dist_coeffs))
    return projected


def _initial_guesses(
    object_points: np.ndarray, image_points: np.ndarray, camera_matrix: np.ndarray
) -> Iterator[np.ndarray]:
    homogeneous = np.column_stack((image_points, np.ones(len(image_points))))
    try:
        normalized = np.linalg.solve(camera_matrix, homogeneous.T).T
    except np.linalg.LinAlgError as exc:
        raise PoseError("camera matrix is singular") from exc
    normalized = normalized[:, :2] / normalized[:, 2:3]

    object_center = object_points.mean(axis=0)
    object_spread = np.linalg.norm(object_points - object_center, axis=1).mean()
    image_center = normalized.mean(axis=0)
    image_spread = np.linalg.norm(normalized - image_center, axis=1).mean()
    depth = object_spread / image_spread if image_spread > 0 and object_spread > 0 else 1.0
    target = np.array([image_center[0], image_center[1], 1.0]) * depth

    for rotvec in _START_ROTATIONS:
        rotation = _Rotation.from_rotvec(rotvec).as_matrix()
        yield np.concatenate((rotvec, target - rotation @ object_center))


def solve_pnp(
    object_points, image_points, camera_matrix, dist_coeffs=None, rvec=None, tvec=None
) -> tuple[np.ndarray, np.ndarray]:
    """Find the pose (Rodrigues rvec, tvec) that best maps object points onto image points.

    If both ``rvec`` and ``tvec`` are given they are used as the starting guess.
    """
    objects = np.asarray(object_points, dtype=float).reshape(-1, 3)
    images = np.asarray(image_points, dtype=float).reshape(-1, 2)
    if len(objects) != len(images):
        raise PoseError(
            f"{len(objects)} object points but {len(images)} image points"
        )
    if len(objects) < MIN_POINTS:
        raise PoseError(f"at least {MIN_POINTS} points are needed, got {len(objects)}")
    if not (np.all(np.isfinite(objects)) and np.all(np.isfinite(images))):
        raise PoseError("points must be finite")

    matrix = np.asarray(camera_matrix, dtype=float).reshape(3, 3)
    coeffs = _distortion(dist_coeffs)

    def residuals(params: np.ndarray) -> np.ndarray:
        projected, _ = _project(objects, params[:3], params[3:], matrix, coeffs)
        return (projected - images).ravel()

    if rvec is not None and tvec is not None:
        starts: Iterator[np.ndarray] = iter(
            [np.concatenate((np.asarray(rvec, float).reshape(3), np.asarray(tvec, float).reshape(3)))]
        )
    else:
        starts = _initial_guesses(objects, images, matrix)

    best = None
    for start in starts:
        try:
            result = least_squares(residuals, start, method="lm")
        except (ValueError, np.linalg.LinAlgError):
            continue
        if not (np.all(np.isfinite(result.x)) and np.isfinite(result.cost)):
            continue
        _, depth = _project(objects, result.x[:3], result.x[3:], matrix, coeffs)
        if np.any(depth <= 0):
            continue
        if best is None or result.cost < best.cost:
            best = result

    if best is None:
        raise PoseError("no pose places every point in front of the camera")
    return best.x[:3].copy(), best.x[3:].copy()


def contour_centroid(contour) -> tuple[float, float]:
    """Centre of mass of the polygon outlined by ``contour``."""
    points = np.asarray(contour, dtype=float).reshape(-1, 2)
    if len(points) == 0:
        raise PoseError("empty contour")
    x, y = points[:, 0], points[:, 1]
    x_next, y_next = np.roll(x, -1), np.roll(y, -1)
    cross = x * y_next - x_next * y
    m00 = cross.sum() / 2.0
    if abs(m00) <= _AREA_EPSILON:
        raise PoseError("contour encloses no area")
    m10 = ((x + x_next) * cross).sum() / 6.0
    m01 = ((y + y_next) * cross).sum() / 6.0
    return float(m10 / m00), float(m01 / m00)