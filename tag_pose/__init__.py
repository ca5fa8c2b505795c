"""Pose estimation for fiducial tags and rigid tag bundles."""

from .config import EstimatorConfig, load_config
from .errors import ConfigError, PoseSolveFailure
from .estimator import TagPoseEstimator
from .ip_types import Detection, FrameResult, TagPose
from .registry import TagRegistry

__all__ = [
    "ConfigError",
    "Detection",
    "EstimatorConfig",
    "FrameResult",
    "PoseSolveFailure",
    "TagPose",
    "TagPoseEstimator",
    "TagRegistry",
    "load_config",
]
