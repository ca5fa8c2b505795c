import argparse
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

import numpy as np

from .config import EstimatorConfig, load_config
from .estimator import TagPoseEstimator
from .ip_types import Detection
from .logging_utils import add_file_handler, setup_logger
from .output import CsvPoseOutput, NullOutput, OutputSink

LOGGER = logging.getLogger(__name__)


@dataclass
class RunSummary:
    frames_processed: int
    poses_written: int
    frames_without_pose: int
    pruned_detections: int
    unknown_detections: int
    failed_solves: int
    malformed_records: int
    csv_path: Optional[str]


def _parse_detection(raw: dict) -> Detection:
    tag_id = int(raw["id"])
    if raw.get("homography") is None:
        return Detection.from_corners(tag_id, raw["corners"])
    corners = np.asarray(raw["corners"], dtype=np.float64).reshape(4, 2)
    H = np.asarray(raw["homography"], dtype=np.float64).reshape(3, 3)
    return Detection(tag_id, corners, H)


class DetectionLog:
    """
    Iterate (stamp, detections) per non-empty line of a JSON-lines log.

    A malformed record is logged and yields an empty frame so the frames after
    it are still processed; `malformed` counts them.
    """

    def __init__(self, path, logger: Optional[logging.Logger] = None):
        self.path = path
        self.logger = logger or LOGGER
        self.malformed = 0

    def _stamp(self, record) -> Optional[float]:
        try:
            stamp = record.get("stamp")
            return None if stamp is None else float(stamp)
        except (AttributeError, TypeError, ValueError):
            return None

    def __iter__(self) -> Iterator[tuple[Optional[float], list[Detection]]]:
        with open(self.path, "r", encoding="utf-8") as fp:
            for line_no, line in enumerate(fp, 1):
                line = line.strip()
                if not line:
                    continue
                record = None
                try:
                    record = json.loads(line)
                    stamp = self._stamp(record)
                    dets = [_parse_detection(d) for d in record.get("detections", [])]
                except (ValueError, KeyError, TypeError, AttributeError) as exc:
                    self.logger.warning(
                        "%s:%d: skipping malformed detection record: %s", self.path, line_no, exc
                    )
                    self.malformed += 1
                    yield self._stamp(record), []
                    continue
                yield stamp, dets


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Estimate tag and bundle poses from a detection log")
    ap.add_argument("--config", required=True, help="Path to JSON/YAML config")
    ap.add_argument("--detections", required=True, help="JSON-lines detection log")
    ap.add_argument("--out", help="CSV file for pose results")

    ap.add_argument("--camera-name")
    ap.add_argument("--camera-frame")
    ap.add_argument("--calib")
    ap.add_argument("--pnp-method")
    ap.add_argument("--log-path")
    ap.add_argument("--lenient", action="store_true", help="Skip bad tag entries instead of failing")

    return ap


def _apply_args(cfg: EstimatorConfig, args: argparse.Namespace) -> EstimatorConfig:
    cfg.apply_overrides(
        camera_name=args.camera_name,
        camera_frame=args.camera_frame,
        calibration_path=args.calib,
        pnp_method=args.pnp_method,
        log_path=args.log_path,
        strict_config=False if args.lenient else None,
    )
    return cfg.validate()


def run(cfg: EstimatorConfig, detections_path, out_path=None) -> RunSummary:
    logger = setup_logger(cfg.camera_name)
    if cfg.log_path:
        add_file_handler(logger, cfg.camera_name, cfg.log_path)

    logger.info("config: %s", json.dumps(cfg.as_dict(), sort_keys=True, default=str))

    estimator = TagPoseEstimator.from_config(cfg, logger)
    detection_log = DetectionLog(detections_path, logger)
    sink: OutputSink = CsvPoseOutput() if out_path else NullOutput()
    sink.open(Path(out_path) if out_path else None)

    frames = poses = empty = pruned = unknown = failed = 0
    try:
        for frame_idx, (stamp, dets) in enumerate(detection_log):
            result = estimator.process(dets, stamp)
            for pose in result.poses:
                sink.write_pose(frame_idx, pose)
            frames += 1
            poses += len(result.poses)
            empty += 0 if result.poses else 1
            pruned += len(result.pruned_ids)
            unknown += len(result.unknown_ids)
            failed += len(result.failed_targets)
            logger.info("frame=%d dets=%d poses=%d", frame_idx, len(dets), len(result.poses))
    finally:
        sink.close()

    logger.info(
        "summary frames=%d poses=%d failed=%d malformed=%d",
        frames, poses, failed, detection_log.malformed,
    )
    return RunSummary(
        frames, poses, empty, pruned, unknown, failed, detection_log.malformed,
        str(out_path) if out_path else None,
    )


def main(argv=None) -> int:
    ap = _build_parser()
    args = ap.parse_args(argv)

    cfg = load_config(args.config)
    cfg = _apply_args(cfg, args)

    summary = run(cfg, args.detections, args.out)
    print(summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())
