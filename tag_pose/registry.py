"""
Tag registry: immutable standalone tag and tag bundle descriptions.

Built once from configuration and read-only afterwards. Each malformed entry
is reported on its own and skipped; the remaining entries still load.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional, Sequence

import numpy as np

from .config import TagFamily
from .errors import ConfigError
from .logging_utils import ThrottledWarner
from .transforms import pose_to_matrix

LOGGER = logging.getLogger(__name__)

MEMBER_POSE_DEFAULTS = (
    ("x", 0.0),
    ("y", 0.0),
    ("z", 0.0),
    ("qw", 1.0),
    ("qx", 0.0),
    ("qy", 0.0),
    ("qz", 0.0),
)


@dataclass(frozen=True)
class StandaloneTagDescription:
    tag_id: int
    size: float  # side length in meters
    frame_name: str


@dataclass(frozen=True, eq=False)
class BundleMember:
    tag_id: int
    size: float
    T_oi: np.ndarray  # 4x4, member tag frame -> bundle origin frame


@dataclass(frozen=True, eq=False)
class TagBundleDescription:
    name: str
    members: tuple[BundleMember, ...]
    _index: Mapping[int, int] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        index = {m.tag_id: i for i, m in enumerate(self.members)}
        if len(index) != len(self.members):
            raise ConfigError(f"bundle {self.name!r} lists a tag id more than once")
        object.__setattr__(self, "_index", MappingProxyType(index))

    def has_member(self, tag_id: int) -> bool:
        return tag_id in self._index

    def member(self, tag_id: int) -> BundleMember:
        return self.members[self._index[tag_id]]

    @property
    def ids(self) -> list[int]:
        return [m.tag_id for m in self.members]

    @property
    def sizes(self) -> list[float]:
        return [m.size for m in self.members]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _require_mapping(entry: Any, where: str) -> Mapping[str, Any]:
    if not isinstance(entry, Mapping):
        raise ConfigError(f"{where}: expected a mapping, got {type(entry).__name__}")
    return entry


def _require_id(entry: Mapping[str, Any], where: str, family: Optional[TagFamily]) -> int:
    if "id" not in entry:
        raise ConfigError(f"{where}: missing required field 'id'")
    value = entry["id"]
    if not isinstance(value, int) or isinstance(value, bool):
        raise ConfigError(f"{where}: 'id' must be an integer, got {value!r}")
    if value < 0:
        raise ConfigError(f"{where}: 'id' must be non-negative, got {value}")
    if family is not None and value >= family.code_count:
        raise ConfigError(
            f"{where}: id {value} is outside family {family.name} (0..{family.code_count - 1})"
        )
    return value


def _require_size(entry: Mapping[str, Any], where: str) -> float:
    if "size" not in entry:
        raise ConfigError(f"{where}: missing required field 'size'")
    value = entry["size"]
    if not _is_number(value) or not math.isfinite(value) or value <= 0:
        raise ConfigError(f"{where}: 'size' must be a positive number, got {value!r}")
    return float(value)


def _optional_number(entry: Mapping[str, Any], key: str, default: float, where: str) -> float:
    if key not in entry:
        return default
    value = entry[key]
    if not _is_number(value) or not math.isfinite(value):
        raise ConfigError(f"{where}: {key!r} must be a number, got {value!r}")
    return float(value)


def _optional_name(entry: Mapping[str, Any], default: str, where: str) -> str:
    if "name" not in entry:
        return default
    value = entry["name"]
    if not isinstance(value, str) or not value:
        raise ConfigError(f"{where}: 'name' must be a non-empty string, got {value!r}")
    return value


def parse_standalone_tags(
    entries: Sequence[Any],
    family: Optional[TagFamily] = None,
    errors: Optional[list[str]] = None,
) -> dict[int, StandaloneTagDescription]:
    """Parse standalone tag entries, appending one message per bad entry to `errors`."""
    errors = errors if errors is not None else []
    descriptions: dict[int, StandaloneTagDescription] = {}
    for i, raw in enumerate(entries):
        where = f"standalone_tags[{i}]"
        try:
            entry = _require_mapping(raw, where)
            tag_id = _require_id(entry, where, family)
            size = _require_size(entry, where)
            name = _optional_name(entry, f"tag_{tag_id}", where)
            if tag_id in descriptions:
                raise ConfigError(f"{where}: tag id {tag_id} is already declared")
        except ConfigError as exc:
            errors.append(str(exc))
            continue
        descriptions[tag_id] = StandaloneTagDescription(tag_id, size, name)
    return descriptions


def _parse_member(
    raw: Any,
    where: str,
    family: Optional[TagFamily],
    standalone: Mapping[int, StandaloneTagDescription],
) -> BundleMember:
    entry = _require_mapping(raw, where)
    tag_id = _require_id(entry, where, family)
    size = _require_size(entry, where)

    known = standalone.get(tag_id)
    if known is not None and not math.isclose(known.size, size, rel_tol=1e-9, abs_tol=0.0):
        raise ConfigError(
            f"{where}: size {size} of tag {tag_id} conflicts with its standalone size {known.size}"
        )

    pose = {key: _optional_number(entry, key, default, where) for key, default in MEMBER_POSE_DEFAULTS}
    try:
        T_oi = pose_to_matrix(**pose)
    except ValueError as exc:
        raise ConfigError(f"{where}: {exc}") from exc
    T_oi.setflags(write=False)
    return BundleMember(tag_id, size, T_oi)


def parse_tag_bundles(
    entries: Sequence[Any],
    standalone: Mapping[int, StandaloneTagDescription],
    family: Optional[TagFamily] = None,
    errors: Optional[list[str]] = None,
    logger: Optional[logging.Logger] = None,
) -> list[TagBundleDescription]:
    """Parse bundle entries. A bad member invalidates its whole bundle."""
    log = logger or LOGGER
    errors = errors if errors is not None else []
    bundles: list[TagBundleDescription] = []
    names: set[str] = set()
    for i, raw in enumerate(entries):
        where = f"tag_bundles[{i}]"
        try:
            entry = _require_mapping(raw, where)
            name = _optional_name(entry, f"bundle_{i}", where)
            if name in names:
                raise ConfigError(f"{where}: bundle name {name!r} is already used")
            layout = entry.get("layout")
            if layout is None:
                raise ConfigError(f"{where}: missing required field 'layout'")
            if not isinstance(layout, list):
                raise ConfigError(f"{where}: 'layout' must be a list")
            members = tuple(
                _parse_member(m, f"{where}.layout[{j}]", family, standalone)
                for j, m in enumerate(layout)
            )
            bundle = TagBundleDescription(name, members)
        except ConfigError as exc:
            errors.append(str(exc))
            continue

        names.add(name)
        bundles.append(bundle)
        log.info("Loaded tag bundle '%s' with %d member(s)", name, len(members))
        for j, m in enumerate(members):
            log.debug(
                " %d) id: %d, size: %s, p = %s",
                j, m.tag_id, m.size, m.T_oi[:3, 3].tolist(),
            )
    return bundles


class TagRegistry:
    """Read-only lookup of standalone tags and tag bundles."""

    def __init__(
        self,
        standalone: Optional[Mapping[int, StandaloneTagDescription]] = None,
        bundles: Sequence[TagBundleDescription] = (),
        logger: Optional[logging.Logger] = None,
        warn_interval_s: float = 10.0,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.logger = logger or LOGGER
        self.standalone: Mapping[int, StandaloneTagDescription] = MappingProxyType(
            dict(standalone or {})
        )
        self.bundles: tuple[TagBundleDescription, ...] = tuple(bundles)
        self._warner = ThrottledWarner(self.logger, warn_interval_s, clock)

    @classmethod
    def load(
        cls,
        standalone_config: Optional[Sequence[Any]],
        bundle_config: Optional[Sequence[Any]],
        family: Optional[TagFamily] = None,
        strict: bool = True,
        logger: Optional[logging.Logger] = None,
        warn_interval_s: float = 10.0,
        clock: Optional[Callable[[], float]] = None,
    ) -> "TagRegistry":
        """Parse and validate every standalone and bundle entry.

        Each entry is checked on its own. With `strict` a ConfigError listing
        every bad entry is raised once all entries have been checked; otherwise
        bad entries are logged and skipped.
        """
        log = logger or LOGGER
        errors: list[str] = []

        if standalone_config is None:
            log.warning("No standalone tags specified")
            standalone = {}
        else:
            standalone = parse_standalone_tags(standalone_config, family, errors)

        if bundle_config is None:
            log.warning("No tag bundles specified")
            bundles = []
        else:
            bundles = parse_tag_bundles(bundle_config, standalone, family, errors, log)

        if errors:
            if strict:
                raise ConfigError(
                    f"{len(errors)} invalid tag configuration entr{'y' if len(errors) == 1 else 'ies'}: "
                    + "; ".join(errors),
                    errors,
                )
            for msg in errors:
                log.error("Skipping tag configuration entry: %s", msg)

        log.info(
            "Tag registry loaded: %d standalone tag(s), %d bundle(s)",
            len(standalone), len(bundles),
        )
        return cls(standalone, bundles, log, warn_interval_s, clock)

    def lookup(self, tag_id: int, warn: bool = False) -> Optional[StandaloneTagDescription]:
        description = self.standalone.get(tag_id)
        if description is None and warn:
            self._warner.warn(
                tag_id,
                "Requested description of standalone tag ID [%d], but no description was found...",
                tag_id,
            )
        return description

    def bundles_containing(self, tag_id: int) -> list[TagBundleDescription]:
        return [b for b in self.bundles if b.has_member(tag_id)]

