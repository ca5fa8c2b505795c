import numpy as np
import pytest
from scipy.spatial.transform import Rotation

from tag_pose.calib import CameraIntrinsics
from tag_pose.correspondences import tag_object_points
from tag_pose.ip_types import Detection
from tag_pose.solver import PnPSolver
from tag_pose.transforms import apply_transform


def make_transform(rotation: Rotation, translation) -> np.ndarray:
    T = np.eye(4)
    T[:3, :3] = rotation.as_matrix()
    T[:3, 3] = translation
    return T


def project(intrinsics: CameraIntrinsics, T_cam_target: np.ndarray, points: np.ndarray) -> np.ndarray:
    cam = apply_transform(T_cam_target, points)
    u = intrinsics.fx * cam[:, 0] / cam[:, 2] + intrinsics.cx
    v = intrinsics.fy * cam[:, 1] / cam[:, 2] + intrinsics.cy
    return np.stack([u, v], axis=1)


class SyntheticCamera:
    """Renders tag detections for a known target pose."""

    def __init__(self, intrinsics: CameraIntrinsics):
        self.intrinsics = intrinsics

    def detect(self, tag_id: int, size: float, T_cam_target: np.ndarray, T_oi=None) -> Detection:
        corners = project(self.intrinsics, T_cam_target, tag_object_points(size, T_oi))
        return Detection.from_corners(tag_id, corners)


@pytest.fixture
def intrinsics():
    return CameraIntrinsics(fx=500.0, fy=500.0, cx=320.0, cy=320.0)


@pytest.fixture
def solver(intrinsics):
    return PnPSolver(intrinsics)


@pytest.fixture
def camera(intrinsics):
    return SyntheticCamera(intrinsics)


@pytest.fixture
def facing_pose():
    """Tag about 0.8 m in front of the camera, tilted, facing it."""
    rot = Rotation.from_euler("xyz", [170.0, 20.0, 5.0], degrees=True)
    return make_transform(rot, [0.05, -0.03, 0.8])


@pytest.fixture
def tag_config():
    return {
        "standalone_tags": [
            {"id": 1, "size": 0.16},
            {"id": 2, "size": 0.1, "name": "door"},
        ],
        "tag_bundles": [
            {
                "name": "board",
                "layout": [
                    {"id": 10, "size": 0.1},
                    {"id": 11, "size": 0.1, "x": 0.2},
                    {"id": 12, "size": 0.05, "x": 0.2, "y": 0.2},
                ],
            }
        ],
    }
