import json
from pathlib import Path

import pytest

from tag_pose.calib import CameraIntrinsics
from tag_pose.config import EstimatorConfig, TAG_FAMILIES, get_family, load_config
from tag_pose.errors import ConfigError


YAML_CONFIG = """
camera_name: front
camera_frame: front_optical
tag_family: tag25h9
pnp_method: sqpnp
intrinsics: {fx: 600, fy: 601.5, cx: 320, cy: 240}
standalone_tags:
  - {id: 1, size: 0.05}
  - {id: 2, size: 0.08, name: dock}
tag_bundles:
  - name: wall
    layout:
      - {id: 3, size: 0.1, x: 0.0, y: 0.0, z: 0.0, qw: 1.0, qx: 0.0, qy: 0.0, qz: 0.0}
      - {id: 4, size: 0.1, x: 0.3}
"""


def test_load_config_yaml(tmp_path: Path):
    cfg_path = tmp_path / "tags.yaml"
    cfg_path.write_text(YAML_CONFIG, encoding="utf-8")

    cfg = load_config(cfg_path)

    assert cfg.camera_name == "front"
    assert cfg.camera_frame == "front_optical"
    assert cfg.tag_family == "tag25h9"
    assert cfg.pnp_method == "sqpnp"
    assert cfg.intrinsics == CameraIntrinsics(600.0, 601.5, 320.0, 240.0)
    assert [t["id"] for t in cfg.standalone_tags] == [1, 2]
    assert cfg.tag_bundles[0]["name"] == "wall"


def test_load_config_json(tmp_path: Path):
    cfg_path = tmp_path / "tags.json"
    cfg_path.write_text(
        json.dumps(
            {
                "camera_name": "camA",
                "calibration_path": "calib/cam.yml",
                "strict_config": False,
                "unknown_tag_warn_interval_s": 2.5,
                "standalone_tags": [{"id": 7, "size": 0.1}],
            }
        ),
        encoding="utf-8",
    )

    cfg = load_config(cfg_path)
    assert cfg.camera_name == "camA"
    assert cfg.calibration_path == "calib/cam.yml"
    assert cfg.strict_config is False
    assert cfg.unknown_tag_warn_interval_s == 2.5
    assert cfg.tag_bundles is None

    cfg.apply_overrides(camera_name="camB", pnp_method=None)
    assert cfg.camera_name == "camB"
    assert cfg.pnp_method == "iterative"


def test_config_defaults():
    cfg = EstimatorConfig()
    assert cfg.camera_frame == "camera"
    assert cfg.tag_family == "tag36h11"
    assert cfg.strict_config is True
    assert cfg.unknown_tag_warn_interval_s == 10.0
    assert cfg.as_dict()["intrinsics"] is None


def test_missing_config_file(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_unknown_family_rejected(tmp_path: Path):
    cfg_path = tmp_path / "tags.yaml"
    cfg_path.write_text("tag_family: tag99h1\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="tag_family"):
        load_config(cfg_path)


def test_unknown_pnp_method_rejected():
    with pytest.raises(ConfigError, match="pnp_method"):
        EstimatorConfig(pnp_method="ransac").validate()


def test_tag_list_must_be_a_list(tmp_path: Path):
    cfg_path = tmp_path / "tags.yaml"
    cfg_path.write_text("standalone_tags: {id: 1, size: 0.1}\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="standalone_tags must be a list"):
        load_config(cfg_path)


def test_bad_intrinsics_rejected(tmp_path: Path):
    cfg_path = tmp_path / "tags.yaml"
    cfg_path.write_text("intrinsics: {fx: 500, fy: 500, cx: 320}\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="intrinsics"):
        load_config(cfg_path)


def test_yaml_root_must_be_mapping(tmp_path: Path):
    cfg_path = tmp_path / "tags.yml"
    cfg_path.write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(cfg_path)


def test_family_lookup_is_case_insensitive():
    assert get_family(" Tag36H11 ") is TAG_FAMILIES["tag36h11"]
    assert get_family("tag16h5").code_count == 30


@pytest.mark.parametrize(
    "line, key",
    [
        ('strict_config: "false"\n', "strict_config"),
        ("strict_config: 0\n", "strict_config"),
        ("unknown_tag_warn_interval_s: soon\n", "unknown_tag_warn_interval_s"),
        ("unknown_tag_warn_interval_s: true\n", "unknown_tag_warn_interval_s"),
        ("unknown_tag_warn_interval_s: .nan\n", "unknown_tag_warn_interval_s"),
    ],
)
def test_scalar_fields_are_type_checked(tmp_path: Path, line, key):
    cfg_path = tmp_path / "tags.yaml"
    cfg_path.write_text(line, encoding="utf-8")
    with pytest.raises(ConfigError, match=key):
        load_config(cfg_path)


def test_lenient_flag_from_yaml(tmp_path: Path):
    cfg_path = tmp_path / "tags.yaml"
    cfg_path.write_text("strict_config: false\nunknown_tag_warn_interval_s: 3\n", encoding="utf-8")
    cfg = load_config(cfg_path)
    assert cfg.strict_config is False
    assert cfg.unknown_tag_warn_interval_s == 3.0
