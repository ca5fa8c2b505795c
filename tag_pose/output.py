from __future__ import annotations

import csv
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from .ip_types import TagPose


class OutputSink(ABC):
    @abstractmethod
    def open(self, path: Path) -> None: ...

    @abstractmethod
    def write_pose(self, frame_idx: int, pose: TagPose) -> None: ...

    @abstractmethod
    def close(self) -> None: ...


class CsvPoseOutput(OutputSink):
    HEADER = [
        "stamp", "frame_idx", "frame_name",
        "ids", "sizes",
        "px", "py", "pz",
        "qx", "qy", "qz", "qw",
    ]

    def __init__(self):
        self._fh = None
        self._w = None
        self.rows = 0

    def open(self, path: Path) -> None:
        self._fh = open(path, "w", newline="")
        self._w = csv.writer(self._fh)
        self._w.writerow(self.HEADER)

    @classmethod
    def row(cls, frame_idx: int, pose: TagPose) -> list:
        stamp = "" if pose.stamp is None else f"{pose.stamp:.6f}"
        return [
            stamp, frame_idx, pose.frame_name,
            ";".join(str(i) for i in pose.ids),
            ";".join(repr(float(s)) for s in pose.sizes),
            *(f"{v:.9f}" for v in pose.position),
            *(f"{v:.9f}" for v in pose.orientation),
        ]

    def write_pose(self, frame_idx: int, pose: TagPose) -> None:
        if self._w is None:
            return
        self._w.writerow(self.row(frame_idx, pose))
        self.rows += 1

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None
            self._w = None


class NullOutput(OutputSink):
    def open(self, path: Optional[Path]) -> None:
        return None

    def write_pose(self, frame_idx: int, pose: TagPose) -> None:
        return None

    def close(self) -> None:
        return None
