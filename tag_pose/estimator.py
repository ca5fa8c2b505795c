from __future__ import annotations

import logging
import time
from typing import Optional, Sequence

import numpy as np

from .calib import load_calib
from .config import EstimatorConfig, get_family
from .correspondences import CorrespondenceBuilder
from .dedup import remove_duplicates
from .errors import ConfigError, PoseSolveFailure
from .ip_types import Correspondences, Detection, FrameResult, TagPose
from .logging_utils import setup_logger
from .registry import TagRegistry
from .solver import PnPSolver

LOGGER = logging.getLogger(__name__)


class TagPoseEstimator:
    """
    Per-frame pose estimation for standalone tags and tag bundles.

    One call to process() handles one frame and always returns a FrameResult;
    standalone tag poses come first in ascending id order, followed by bundle
    poses in configured bundle order.
    """

    def __init__(
        self,
        registry: TagRegistry,
        solver: PnPSolver,
        camera_frame: str = "camera",
        logger: Optional[logging.Logger] = None,
    ):
        self.registry = registry
        self.solver = solver
        self.camera_frame = camera_frame
        self.logger = logger or LOGGER
        self.builder = CorrespondenceBuilder(registry, self.logger)

    @classmethod
    def from_config(
        cls,
        config: EstimatorConfig,
        logger: Optional[logging.Logger] = None,
    ) -> "TagPoseEstimator":
        logger = logger or setup_logger(config.camera_name)
        config.validate()

        intrinsics = config.intrinsics
        if intrinsics is None:
            if not config.calibration_path:
                raise ConfigError("either intrinsics or calibration_path must be configured")
            intrinsics = load_calib(config.calibration_path)

        registry = TagRegistry.load(
            config.standalone_tags,
            config.tag_bundles,
            family=get_family(config.tag_family),
            strict=config.strict_config,
            logger=logger,
            warn_interval_s=config.unknown_tag_warn_interval_s,
        )
        solver = PnPSolver(intrinsics, config.pnp_method, logger)
        logger.info(
            "estimator ready: family=%s pnp=%s fx=%.2f fy=%.2f cx=%.2f cy=%.2f",
            config.tag_family, config.pnp_method,
            intrinsics.fx, intrinsics.fy, intrinsics.cx, intrinsics.cy,
        )
        return cls(registry, solver, config.camera_frame, logger)

    def _solve(self, target: str, acc: Correspondences, result: FrameResult) -> Optional[np.ndarray]:
        obj, img = acc.as_arrays()
        try:
            return self.solver.solve(obj, img)
        except PoseSolveFailure as exc:
            self.logger.warning("pose solve failed for %s (tags %s): %s", target, acc.tag_ids, exc)
            result.failed_targets.append(target)
            return None

    def process(self, detections: Sequence[Detection], stamp: Optional[float] = None) -> FrameResult:
        result = FrameResult(camera_frame=self.camera_frame, stamp=stamp)
        try:
            t0 = time.perf_counter()
            kept, result.pruned_ids = remove_duplicates(detections, self.logger)
            t1 = time.perf_counter()

            corr = self.builder.build(kept)
            result.unknown_ids = corr.unknown_ids
            t2 = time.perf_counter()

            for description, acc in corr.standalone:
                T = self._solve(description.frame_name, acc, result)
                if T is None:
                    continue
                result.poses.append(
                    TagPose([description.tag_id], [description.size], description.frame_name, T, stamp)
                )

            # one combined solve per bundle over every detected member
            for bundle in self.registry.bundles:
                acc = corr.bundles.get(bundle.name)
                if acc is None:
                    continue
                T = self._solve(bundle.name, acc, result)
                if T is None:
                    continue
                result.poses.append(TagPose(bundle.ids, bundle.sizes, bundle.name, T, stamp))
            t3 = time.perf_counter()
        except Exception:
            self.logger.exception("frame processing failed, dropping frame")
            return FrameResult(camera_frame=self.camera_frame, stamp=stamp)

        result.timings = {
            "remove_duplicates": t1 - t0,
            "correspondences": t2 - t1,
            "pose_estimation": t3 - t2,
        }
        self.logger.debug(
            "stamp=%s dets=%d kept=%d poses=%d",
            stamp, len(detections), len(kept), len(result.poses),
        )
        return result
