"""
Object/image point correspondences for standalone tags and tag bundles.

Frames used when building the points:
  - camera frame: looking from behind the camera, x is right, y is down and
    z is straight ahead (OpenCV convention, so solvePnP can be used directly).
  - tag frame: looking straight at the tag, x is right, y is up and z points
    out of the tag towards the viewer.

The detector's own tag frame has y pointing down, so the canonical corners
used for image points are y-negated relative to the detector. With the points
built this way the raw PnP output is already T_camera_from_target.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np

from .ip_types import Correspondences, Detection
from .registry import StandaloneTagDescription, TagRegistry
from .transforms import DETECTOR_CORNERS, apply_transform, homography_project

LOGGER = logging.getLogger(__name__)


def tag_object_points(size: float, T_oi: Optional[np.ndarray] = None) -> np.ndarray:
    """
    Tag corners in the tag (or bundle) frame, counter-clockwise from the
    bottom-left corner: (-s,-s,0), (s,-s,0), (s,s,0), (-s,s,0) with s = size/2.

    When T_oi is given the corners are mapped into the bundle origin frame.
    """
    s = size / 2.0
    pts = np.array(
        [[-s, -s, 0.0], [s, -s, 0.0], [s, s, 0.0], [-s, s, 0.0]], dtype=np.float64
    )
    if T_oi is not None:
        pts = apply_transform(T_oi, pts)
    return pts


def tag_image_points(detection: Detection) -> np.ndarray:
    """
    Tag corners in pixels, in the same order as tag_object_points.

    Points come from projecting the canonical corners through the homography
    rather than from the detector's raw corner array, so index i always
    matches object point i.
    """
    return np.array(
        [homography_project(detection.homography, x, y) for x, y in DETECTOR_CORNERS],
        dtype=np.float64,
    )


@dataclass
class FrameCorrespondences:
    standalone: list[tuple[StandaloneTagDescription, Correspondences]] = field(default_factory=list)
    bundles: dict[str, Correspondences] = field(default_factory=dict)
    unknown_ids: list[int] = field(default_factory=list)


class CorrespondenceBuilder:
    def __init__(self, registry: TagRegistry, logger: Optional[logging.Logger] = None):
        self.registry = registry
        self.logger = logger or LOGGER

    def build(self, detections: Sequence[Detection]) -> FrameCorrespondences:
        """Accumulate correspondences for every target seen in this frame.

        Expects duplicate-free detections. A tag that belongs to any bundle is
        never also treated as standalone.
        """
        out = FrameCorrespondences()
        for det in detections:
            image_points: Optional[np.ndarray] = None

            bundles = self.registry.bundles_containing(det.tag_id)
            for bundle in bundles:
                if image_points is None:
                    image_points = tag_image_points(det)
                member = bundle.member(det.tag_id)
                acc = out.bundles.setdefault(bundle.name, Correspondences())
                acc.extend(det.tag_id, tag_object_points(member.size, member.T_oi), image_points)
            if bundles:
                continue

            description = self.registry.lookup(det.tag_id, warn=True)
            if description is None:
                out.unknown_ids.append(det.tag_id)
                continue

            acc = Correspondences()
            acc.extend(det.tag_id, tag_object_points(description.size), tag_image_points(det))
            out.standalone.append((description, acc))
        return out
