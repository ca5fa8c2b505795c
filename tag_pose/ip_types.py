from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

import numpy as np

from .transforms import homography_from_corners, matrix_to_position_quaternion


@dataclass(frozen=True)
class Detection:
    """One decoded tag in one frame, as produced by the external detector.

    corners are in detector order: local (-1,1), (1,1), (1,-1), (-1,-1) with
    the detector's y axis pointing down. homography maps that local square
    to pixels.
    """

    tag_id: int
    corners: Any  # (4,2) ndarray
    homography: Any  # (3,3) ndarray

    @classmethod
    def from_corners(cls, tag_id: int, corners) -> "Detection":
        pts = np.asarray(corners, dtype=np.float64).reshape(4, 2)
        return cls(int(tag_id), pts, homography_from_corners(pts))


def detections_from_aruco(corners, ids) -> list[Detection]:
    """Convert cv2.aruco.detectMarkers output into Detections.

    ArUco reports corners clockwise from the top-left (TL, TR, BR, BL); the
    detector order used here starts at the bottom-left and runs BL, BR, TR, TL.
    """
    dets: list[Detection] = []
    if ids is None or len(ids) == 0:
        return dets
    for i, tid in enumerate(np.asarray(ids).flatten()):
        c = np.asarray(corners[i], dtype=np.float64).reshape(4, 2)
        dets.append(Detection.from_corners(int(tid), c[[3, 2, 1, 0]]))
    return dets


@dataclass
class Correspondences:
    """Index-aligned 3D object points and 2D image points for one target."""

    object_points: list = field(default_factory=list)
    image_points: list = field(default_factory=list)
    tag_ids: list[int] = field(default_factory=list)

    def extend(self, tag_id: int, object_points: np.ndarray, image_points: np.ndarray) -> None:
        if len(object_points) != len(image_points):
            raise ValueError("object and image point counts differ")
        self.object_points.extend(np.asarray(object_points, dtype=np.float64).reshape(-1, 3))
        self.image_points.extend(np.asarray(image_points, dtype=np.float64).reshape(-1, 2))
        self.tag_ids.append(int(tag_id))

    def as_arrays(self) -> tuple[np.ndarray, np.ndarray]:
        obj = np.asarray(self.object_points, dtype=np.float64).reshape(-1, 3)
        img = np.asarray(self.image_points, dtype=np.float64).reshape(-1, 2)
        return obj, img

    def __len__(self) -> int:
        return len(self.object_points)


@dataclass
class TagPose:
    """Pose of a standalone tag or a bundle origin in the camera frame."""

    ids: list[int]
    sizes: list[float]
    frame_name: str
    matrix: np.ndarray  # 4x4 T_camera_from_target
    stamp: Optional[float] = None

    @property
    def position(self) -> np.ndarray:
        return matrix_to_position_quaternion(self.matrix)[0]

    @property
    def orientation(self) -> np.ndarray:
        """Unit quaternion (x, y, z, w)."""
        return matrix_to_position_quaternion(self.matrix)[1]


@dataclass
class FrameResult:
    poses: list[TagPose] = field(default_factory=list)
    camera_frame: str = "camera"
    stamp: Optional[float] = None
    pruned_ids: list[int] = field(default_factory=list)
    unknown_ids: list[int] = field(default_factory=list)
    failed_targets: list[str] = field(default_factory=list)
    timings: dict[str, float] = field(default_factory=dict)
