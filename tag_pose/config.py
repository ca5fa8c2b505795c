from __future__ import annotations

import json
import math
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Optional

import yaml

from .calib import CameraIntrinsics
from .errors import ConfigError
from .solver import PNP_FLAGS


@dataclass(frozen=True)
class TagFamily:
    name: str
    bits: int
    min_hamming: int
    code_count: int  # valid ids are 0 .. code_count - 1


TAG_FAMILIES: dict[str, TagFamily] = {
    "tag36h11": TagFamily("tag36h11", 36, 11, 587),
    "tag36h10": TagFamily("tag36h10", 36, 10, 2320),
    "tag25h9": TagFamily("tag25h9", 25, 9, 35),
    "tag25h7": TagFamily("tag25h7", 25, 7, 242),
    "tag16h5": TagFamily("tag16h5", 16, 5, 30),
}


def get_family(name: str) -> TagFamily:
    key = (name or "").strip().lower()
    try:
        return TAG_FAMILIES[key]
    except KeyError:
        raise ConfigError(
            f"unknown tag_family {name!r}, expected one of {sorted(TAG_FAMILIES)}"
        ) from None


@dataclass
class EstimatorConfig:
    camera_name: str = "cam"
    camera_frame: str = "camera"
    tag_family: str = "tag36h11"
    pnp_method: str = "iterative"
    calibration_path: Optional[str] = None
    intrinsics: Optional[CameraIntrinsics] = None
    strict_config: bool = True
    unknown_tag_warn_interval_s: float = 10.0
    standalone_tags: Optional[list[dict[str, Any]]] = None
    tag_bundles: Optional[list[dict[str, Any]]] = None
    log_path: Optional[str] = None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)

    def apply_overrides(self, **kwargs: Any) -> "EstimatorConfig":
        for key, value in kwargs.items():
            if value is not None and hasattr(self, key):
                setattr(self, key, value)
        return self

    def validate(self) -> "EstimatorConfig":
        get_family(self.tag_family)
        if self.pnp_method not in PNP_FLAGS:
            raise ConfigError(
                f"unknown pnp_method {self.pnp_method!r}, expected one of {sorted(PNP_FLAGS)}"
            )
        if self.unknown_tag_warn_interval_s < 0:
            raise ConfigError("unknown_tag_warn_interval_s must be >= 0")
        return self


def _load_yaml(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as fp:
        data = yaml.safe_load(fp) or {}
    if not isinstance(data, dict):
        raise ConfigError("YAML config root must be a mapping")
    return data


def _optional_list(raw: dict[str, Any], key: str) -> Optional[list[dict[str, Any]]]:
    value = raw.get(key)
    if value is None:
        return None
    if not isinstance(value, list):
        raise ConfigError(f"{key} must be a list")
    return value


def _bool_field(raw: dict[str, Any], key: str, default: bool) -> bool:
    value = raw.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"{key} must be true or false, got {value!r}")
    return value


def _number_field(raw: dict[str, Any], key: str, default: float) -> float:
    value = raw.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ConfigError(f"{key} must be a number, got {value!r}")
    return float(value)


def config_from_dict(raw: dict[str, Any]) -> EstimatorConfig:
    cfg = EstimatorConfig()
    cfg.camera_name = str(raw.get("camera_name", cfg.camera_name))
    cfg.camera_frame = str(raw.get("camera_frame", cfg.camera_frame))
    cfg.tag_family = str(raw.get("tag_family", cfg.tag_family)).strip().lower()
    cfg.pnp_method = str(raw.get("pnp_method", cfg.pnp_method)).strip().lower()
    cfg.calibration_path = raw.get("calibration_path", cfg.calibration_path)
    if cfg.calibration_path is not None:
        cfg.calibration_path = str(cfg.calibration_path)
    intr_raw = raw.get("intrinsics")
    if intr_raw is not None:
        if not isinstance(intr_raw, dict):
            raise ConfigError("intrinsics must be a mapping with fx, fy, cx, cy")
        cfg.intrinsics = CameraIntrinsics.from_mapping(intr_raw)
    cfg.strict_config = _bool_field(raw, "strict_config", cfg.strict_config)
    cfg.unknown_tag_warn_interval_s = _number_field(
        raw, "unknown_tag_warn_interval_s", cfg.unknown_tag_warn_interval_s
    )
    cfg.standalone_tags = _optional_list(raw, "standalone_tags")
    cfg.tag_bundles = _optional_list(raw, "tag_bundles")
    cfg.log_path = raw.get("log_path", cfg.log_path)
    return cfg.validate()


def load_config(path: str | Path) -> EstimatorConfig:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config not found: {p}")

    if p.suffix.lower() in {".yaml", ".yml"}:
        raw = _load_yaml(p)
    else:
        with p.open("r", encoding="utf-8") as fp:
            raw = json.load(fp)

    if not isinstance(raw, dict):
        raise ConfigError("Config root must be a JSON/YAML object")

    return config_from_dict(raw)
