from dataclasses import dataclass
from typing import Any, Mapping

import cv2
import numpy as np

from .errors import ConfigError


@dataclass(frozen=True)
class CameraIntrinsics:
    """Pinhole intrinsics of a rectified (distortion-free) camera."""

    fx: float
    fy: float
    cx: float
    cy: float

    @property
    def K(self) -> np.ndarray:
        return np.array(
            [[self.fx, 0.0, self.cx], [0.0, self.fy, self.cy], [0.0, 0.0, 1.0]],
            dtype=np.float64,
        )

    @classmethod
    def from_matrix(cls, K) -> "CameraIntrinsics":
        K = np.asarray(K, dtype=np.float64).reshape(3, 3)
        return cls(float(K[0, 0]), float(K[1, 1]), float(K[0, 2]), float(K[1, 2]))

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "CameraIntrinsics":
        try:
            values = {k: float(raw[k]) for k in ("fx", "fy", "cx", "cy")}
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigError(f"intrinsics must provide numeric fx, fy, cx, cy: {exc}") from exc
        if values["fx"] <= 0 or values["fy"] <= 0:
            raise ConfigError("intrinsics fx and fy must be positive")
        return cls(**values)


def load_calib(path: str) -> CameraIntrinsics:
    """Read camera_matrix from an OpenCV FileStorage calibration file.

    Distortion coefficients in the file are ignored: images are expected to be
    rectified before detection.
    """
    fs = cv2.FileStorage(path, cv2.FILE_STORAGE_READ)
    if not fs.isOpened():
        raise FileNotFoundError(f"Calibration not found: {path}")
    K = fs.getNode("camera_matrix").mat()
    fs.release()
    if K is None:
        raise ConfigError(f"camera_matrix missing in calibration file {path}")
    return CameraIntrinsics.from_matrix(K)
