import logging
from typing import Optional

import cv2
import numpy as np

from .calib import CameraIntrinsics
from .errors import ConfigError, PoseSolveFailure
from .transforms import rvec_tvec_to_matrix

LOGGER = logging.getLogger(__name__)

PNP_FLAGS = {
    "iterative": cv2.SOLVEPNP_ITERATIVE,
    "epnp": cv2.SOLVEPNP_EPNP,
    "sqpnp": cv2.SOLVEPNP_SQPNP,
    "ippe": cv2.SOLVEPNP_IPPE,
}

# relative singular value below which a point set counts as flat/collinear
_DEGENERACY_TOL = 1e-9


def _singular_values(points: np.ndarray) -> np.ndarray:
    centered = points - points.mean(axis=0)
    return np.linalg.svd(centered, compute_uv=False)


def _spans_plane(points: np.ndarray) -> bool:
    s = _singular_values(points)
    return bool(s[0] > 0 and s[1] > _DEGENERACY_TOL * s[0])


def is_coplanar(points: np.ndarray) -> bool:
    s = _singular_values(np.asarray(points, dtype=np.float64).reshape(-1, 3))
    return bool(s[0] == 0 or s[2] <= _DEGENERACY_TOL * s[0])


class PnPSolver:
    """
    Perspective-n-Point on a rectified camera (zero distortion).

    Every correspondence handed in is used; there is no RANSAC stage.
    """

    def __init__(
        self,
        intrinsics: CameraIntrinsics,
        method: str = "iterative",
        logger: Optional[logging.Logger] = None,
    ):
        if method not in PNP_FLAGS:
            raise ConfigError(f"unknown pnp_method {method!r}, expected one of {sorted(PNP_FLAGS)}")
        self.intrinsics = intrinsics
        self.method = method
        self.K = intrinsics.K
        self.dist = np.zeros(4, dtype=np.float64)
        self.logger = logger or LOGGER

    @classmethod
    def from_camera_matrix(cls, K, method: str = "iterative") -> "PnPSolver":
        return cls(CameraIntrinsics.from_matrix(K), method)

    def _flag_for(self, object_points: np.ndarray) -> int:
        if self.method == "ippe" and not is_coplanar(object_points):
            self.logger.debug("IPPE needs coplanar points, using iterative PnP instead")
            return PNP_FLAGS["iterative"]
        return PNP_FLAGS[self.method]

    def solve(self, object_points, image_points) -> np.ndarray:
        """
        Estimate T_camera_from_target.

        Args:
            object_points: (N,3) target-frame points, N >= 4
            image_points: (N,2) pixel points, index aligned with object_points

        Returns:
            4x4 homogeneous transform mapping target-frame points to camera-frame points

        Raises:
            PoseSolveFailure: bad input, degenerate geometry or no valid solution
        """
        obj = np.ascontiguousarray(object_points, dtype=np.float64).reshape(-1, 3)
        img = np.ascontiguousarray(image_points, dtype=np.float64).reshape(-1, 2)

        if len(obj) != len(img):
            raise PoseSolveFailure(
                f"object/image point count mismatch: {len(obj)} != {len(img)}"
            )
        if len(obj) < 4:
            raise PoseSolveFailure(f"PnP needs at least 4 correspondences, got {len(obj)}")
        if not (np.all(np.isfinite(obj)) and np.all(np.isfinite(img))):
            raise PoseSolveFailure("correspondences contain non-finite values")
        if not _spans_plane(obj):
            raise PoseSolveFailure("object points are collinear")
        if not _spans_plane(img):
            raise PoseSolveFailure("image points are collinear")

        try:
            ok, rvec, tvec = cv2.solvePnP(obj, img, self.K, self.dist, flags=self._flag_for(obj))
        except cv2.error as exc:
            raise PoseSolveFailure(f"solvePnP failed: {exc}") from exc

        if not ok or rvec is None or tvec is None:
            raise PoseSolveFailure("solvePnP did not converge")
        if not (np.all(np.isfinite(rvec)) and np.all(np.isfinite(tvec))):
            raise PoseSolveFailure("solvePnP returned a non-finite pose")

        return rvec_tvec_to_matrix(rvec, tvec)
