import logging

import numpy as np

from tag_pose.correspondences import CorrespondenceBuilder, tag_image_points, tag_object_points
from tag_pose.ip_types import Detection
from tag_pose.registry import TagRegistry
from tag_pose.transforms import pose_to_matrix


def test_object_points_order_and_values():
    L = 0.2
    pts = tag_object_points(L)
    expected = [
        [-L / 2, -L / 2, 0.0],
        [L / 2, -L / 2, 0.0],
        [L / 2, L / 2, 0.0],
        [-L / 2, L / 2, 0.0],
    ]
    assert pts.shape == (4, 3)
    assert np.array_equal(pts, np.array(expected))


def test_object_points_follow_member_transform():
    T_oi = pose_to_matrix(1.0, 2.0, 3.0)
    pts = tag_object_points(0.2, T_oi)
    assert np.allclose(pts, tag_object_points(0.2) + [1.0, 2.0, 3.0])


def test_image_points_come_from_homography_not_raw_corners():
    # raw corners deliberately disagree with the homography
    H = np.array([[10.0, 0.0, 100.0], [0.0, 10.0, 200.0], [0.0, 0.0, 1.0]])
    det = Detection(1, np.zeros((4, 2)), H)

    img = tag_image_points(det)

    # local y is negated relative to the detector, so the first point is
    # the detector's (-1, 1)
    assert img.shape == (4, 2)
    assert np.allclose(img, [[90, 210], [110, 210], [110, 190], [90, 190]])


def test_image_points_align_with_object_points(camera, facing_pose):
    det = camera.detect(1, 0.16, facing_pose)
    img = tag_image_points(det)

    assert len(img) == len(tag_object_points(0.16))
    assert np.allclose(img, det.corners, atol=1e-9)


def test_builder_splits_standalone_bundles_and_unknown(tag_config, camera, facing_pose):
    reg = TagRegistry.load(tag_config["standalone_tags"], tag_config["tag_bundles"])
    builder = CorrespondenceBuilder(reg)

    dets = [
        camera.detect(1, 0.16, facing_pose),
        camera.detect(10, 0.1, facing_pose),
        camera.detect(12, 0.05, facing_pose, reg.bundles[0].member(12).T_oi),
        camera.detect(77, 0.1, facing_pose),
    ]
    out = builder.build(dets)

    assert [d.tag_id for d, _ in out.standalone] == [1]
    assert len(out.standalone[0][1]) == 4
    assert list(out.bundles) == ["board"]
    board = out.bundles["board"]
    assert board.tag_ids == [10, 12]
    obj, img = board.as_arrays()
    assert obj.shape == (8, 3)
    assert img.shape == (8, 2)
    assert np.allclose(obj[4:], tag_object_points(0.05, reg.bundles[0].member(12).T_oi))
    assert out.unknown_ids == [77]


def test_bundle_member_is_never_standalone(camera, facing_pose):
    reg = TagRegistry.load(
        [{"id": 4, "size": 0.1}],
        [{"name": "b", "layout": [{"id": 4, "size": 0.1}]}],
    )
    out = CorrespondenceBuilder(reg).build([camera.detect(4, 0.1, facing_pose)])

    assert out.standalone == []
    assert out.bundles["b"].tag_ids == [4]


def test_tag_in_two_bundles_feeds_both(camera, facing_pose):
    layout = [{"id": 4, "size": 0.1}]
    reg = TagRegistry.load([], [{"name": "a", "layout": layout}, {"name": "b", "layout": layout}])
    out = CorrespondenceBuilder(reg).build([camera.detect(4, 0.1, facing_pose)])

    assert set(out.bundles) == {"a", "b"}
    assert len(out.bundles["a"]) == len(out.bundles["b"]) == 4


def test_unknown_tag_warns_once_per_interval(caplog):
    reg = TagRegistry.load([], [])
    builder = CorrespondenceBuilder(reg)
    det = Detection.from_corners(42, [[0, 10], [10, 10], [10, 0], [0, 0]])

    with caplog.at_level(logging.WARNING):
        caplog.clear()
        first = builder.build([det])
        second = builder.build([det])

    assert first.unknown_ids == second.unknown_ids == [42]
    assert sum("[42]" in r.getMessage() for r in caplog.records) == 1
