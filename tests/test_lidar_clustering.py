import numpy as np
import pytest

from ttc_fusion.gateway.data_types import BoundingBox
from ttc_fusion.perception.lidar_clustering import cluster_lidar_with_roi, crop_lidar_points


def test_shrink_keeps_box_centred():
    shrunk = BoundingBox(x=0.0, y=0.0, width=100.0, height=50.0).shrink(0.1)
    assert shrunk == BoundingBox(x=5.0, y=2.5, width=90.0, height=45.0)


def test_containment_is_half_open():
    box = BoundingBox(x=10.0, y=10.0, width=20.0, height=20.0)
    assert box.contains(10.0, 10.0)
    assert not box.contains(30.0, 15.0)
    assert not box.contains(15.0, 30.0)


def test_point_in_exactly_one_box_is_assigned(projector, point_at, make_box):
    boxes = [make_box(0, 100, 50, 100, 100), make_box(1, 300, 50, 100, 100)]
    points = np.array([point_at(150, 100, 10.0), point_at(350, 100, 12.0)])

    assigned = cluster_lidar_with_roi(boxes, points, 0.1, projector)

    assert assigned == 2
    assert boxes[0].lidar_point_indices == [0]
    assert boxes[1].lidar_point_indices == [1]


def test_point_in_overlapping_boxes_is_dropped(projector, point_at, make_box):
    boxes = [make_box(0, 100, 50, 100, 100), make_box(1, 150, 50, 100, 100)]
    points = np.array([
        point_at(180, 100, 10.0),   # inside both
        point_at(120, 100, 10.0),   # only box 0
        point_at(230, 100, 10.0),   # only box 1
    ])

    cluster_lidar_with_roi(boxes, points, 0.1, projector)

    assert boxes[0].lidar_point_indices == [1]
    assert boxes[1].lidar_point_indices == [2]


def test_point_near_box_edge_is_removed_by_shrink(projector, point_at, make_box):
    boxes = [make_box(0, 100, 50, 100, 100)]
    # Shrunk box spans u in [105, 195)
    points = np.array([point_at(102, 100, 10.0), point_at(198, 100, 10.0), point_at(110, 100, 10.0)])

    cluster_lidar_with_roi(boxes, points, 0.1, projector)

    assert boxes[0].lidar_point_indices == [2]


def test_background_points_are_dropped(projector, point_at, make_box):
    boxes = [make_box(0, 100, 50, 100, 100)]
    points = np.array([point_at(20, 20, 10.0), [-5.0, 0.0, 0.0, 0.5]])

    assert cluster_lidar_with_roi(boxes, points, 0.1, projector) == 0
    assert boxes[0].lidar_point_indices == []


def test_no_boxes_assigns_nothing(projector, point_at):
    points = np.array([point_at(150, 100, 10.0)])
    assert cluster_lidar_with_roi([], points, 0.1, projector) == 0


def test_rerun_replaces_previous_association(projector, point_at, make_box):
    boxes = [make_box(0, 100, 50, 100, 100)]
    points = np.array([point_at(150, 100, 10.0), point_at(160, 100, 10.0)])

    cluster_lidar_with_roi(boxes, points, 0.1, projector)
    cluster_lidar_with_roi(boxes, points[1:], 0.1, projector)

    assert boxes[0].lidar_point_indices == [0]


def test_empty_scan_clears_previous_association(projector, point_at, make_box):
    boxes = [make_box(0, 100, 50, 100, 100)]
    cluster_lidar_with_roi(boxes, np.array([point_at(150, 100, 10.0)]), 0.1, projector)

    assert cluster_lidar_with_roi(boxes, np.empty((0, 4)), 0.1, projector) == 0
    assert boxes[0].lidar_point_indices == []


def test_crop_keeps_ego_lane_points():
    points = np.array([
        [10.0, 0.5, -1.0, 0.5],
        [10.0, 2.5, -1.0, 0.5],    # outside lane
        [10.0, -0.5, -1.0, 0.05],  # low reflectivity
        [25.0, 0.0, -1.0, 0.5],    # too far
        [1.0, 0.0, -1.0, 0.5],     # too close
        [10.0, 0.0, 1.0, 0.5],     # too high
    ])

    cropped = crop_lidar_points(points, min_x=2.0, max_x=20.0, max_y=2.0,
                                min_z=-1.5, max_z=-0.9, min_reflectivity=0.1)

    np.testing.assert_array_equal(cropped, points[:1])


def test_crop_without_bounds_keeps_everything():
    points = np.random.default_rng(0).normal(size=(20, 4))
    assert crop_lidar_points(points).shape == (20, 4)
