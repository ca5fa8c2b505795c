import logging
import time
from typing import Callable, Hashable, Optional


class CameraNameFilter(logging.Filter):
    def __init__(self, camera_name: str):
        super().__init__()
        self.camera_name = camera_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.camera = self.camera_name
        return True


def setup_logger(camera_name: str, level: int = logging.INFO) -> logging.Logger:
    logger = logging.getLogger(f"tag_pose.{camera_name}")
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler()
        fmt = logging.Formatter(
            "%(asctime)s %(levelname)s [%(camera)s] %(message)s"
        )
        handler.setFormatter(fmt)
        handler.addFilter(CameraNameFilter(camera_name))
        logger.addHandler(handler)

    return logger


def add_file_handler(logger: logging.Logger, camera_name: str, log_path: str) -> None:
    handler = logging.FileHandler(log_path)
    fmt = logging.Formatter("%(asctime)s %(levelname)s [%(camera)s] %(message)s")
    handler.setFormatter(fmt)
    handler.addFilter(CameraNameFilter(camera_name))
    logger.addHandler(handler)


class ThrottledWarner:
    """Emit at most one warning per key every `interval_s` seconds."""

    def __init__(
        self,
        logger: logging.Logger,
        interval_s: float = 10.0,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.logger = logger
        self.interval_s = interval_s
        self.clock = clock or time.monotonic
        self._last: dict[Hashable, float] = {}

    def warn(self, key: Hashable, msg: str, *args) -> bool:
        now = self.clock()
        last = self._last.get(key)
        if last is not None and (now - last) < self.interval_s:
            return False
        self._last[key] = now
        self.logger.warning(msg, *args)
        return True
