"""SE(3) and homography utilities for tag pose handling."""

from typing import Tuple

import cv2
import numpy as np
from scipy.spatial.transform import Rotation


# Detector-local tag corners, in the order the detector reports them.
# The detector's local y axis points down.
DETECTOR_CORNERS = np.array(
    [[-1.0, 1.0], [1.0, 1.0], [1.0, -1.0], [-1.0, -1.0]], dtype=np.float64
)


def rvec_tvec_to_matrix(rvec: np.ndarray, tvec: np.ndarray) -> np.ndarray:
    """4x4 T_camera_from_target from a solvePnP rotation and translation vector."""
    rvec = np.asarray(rvec, dtype=np.float64).reshape(3)
    tvec = np.asarray(tvec, dtype=np.float64).reshape(3)

    T = np.eye(4)
    T[:3, :3] = cv2.Rodrigues(rvec)[0]
    T[:3, 3] = tvec
    return T


def pose_to_matrix(
    x: float = 0.0,
    y: float = 0.0,
    z: float = 0.0,
    qw: float = 1.0,
    qx: float = 0.0,
    qy: float = 0.0,
    qz: float = 0.0,
) -> np.ndarray:
    """
    Build a 4x4 rigid transform from a position and a (w, x, y, z) quaternion.

    The quaternion does not need to be unit length; it is normalized before
    conversion. A zero quaternion raises ValueError.
    """
    q = np.array([qx, qy, qz, qw], dtype=np.float64)
    norm = np.linalg.norm(q)
    if not np.isfinite(norm) or norm == 0.0:
        raise ValueError("quaternion must be finite and non-zero")

    T = np.eye(4)
    T[:3, :3] = Rotation.from_quat(q / norm).as_matrix()
    T[:3, 3] = [x, y, z]
    return T


def matrix_to_position_quaternion(T: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Split a 4x4 rigid transform into a position (3,) and a unit quaternion
    (x, y, z, w) (4,).
    """
    position = np.asarray(T[:3, 3], dtype=np.float64).copy()
    quaternion = Rotation.from_matrix(np.asarray(T[:3, :3], dtype=np.float64)).as_quat()
    return position, quaternion


def apply_transform(T: np.ndarray, points: np.ndarray) -> np.ndarray:
    """Apply a 4x4 transform to an (N,3) array of points."""
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    return pts @ T[:3, :3].T + T[:3, 3]


def homography_from_corners(corners: np.ndarray) -> np.ndarray:
    """
    Fit the 3x3 homography taking the detector-local square corners
    DETECTOR_CORNERS onto the given (4,2) pixel corners.

    Solved in float64 with H[2,2] fixed to 1. cv2.getPerspectiveTransform is
    not used because it only accepts float32 points.
    """
    dst = np.asarray(corners, dtype=np.float64).reshape(4, 2)
    A = np.zeros((8, 8), dtype=np.float64)
    b = np.zeros(8, dtype=np.float64)
    for i, ((x, y), (u, v)) in enumerate(zip(DETECTOR_CORNERS, dst)):
        A[2 * i] = [x, y, 1.0, 0.0, 0.0, 0.0, -u * x, -u * y]
        A[2 * i + 1] = [0.0, 0.0, 0.0, x, y, 1.0, -v * x, -v * y]
        b[2 * i] = u
        b[2 * i + 1] = v

    try:
        h = np.linalg.solve(A, b)
    except np.linalg.LinAlgError as exc:
        raise ValueError("corners are degenerate, cannot fit a homography") from exc

    return np.append(h, 1.0).reshape(3, 3)


def homography_project(H: np.ndarray, x: float, y: float) -> Tuple[float, float]:
    """Project a detector-local point (x, y) through homography H to pixels."""
    H = np.asarray(H, dtype=np.float64).reshape(3, 3)
    z = H[2, 0] * x + H[2, 1] * y + H[2, 2]
    u = (H[0, 0] * x + H[0, 1] * y + H[0, 2]) / z
    v = (H[1, 0] * x + H[1, 1] * y + H[1, 2]) / z
    return float(u), float(v)


def rotation_angle_between(R_a: np.ndarray, R_b: np.ndarray) -> float:
    """Angle in radians of the relative rotation R_a^T @ R_b."""
    rel = Rotation.from_matrix(np.asarray(R_a, dtype=np.float64).T @ np.asarray(R_b, dtype=np.float64))
    return float(np.linalg.norm(rel.as_rotvec()))
