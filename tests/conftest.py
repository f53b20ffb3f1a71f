"""Shared fixtures: a simple pinhole rig and frame builders."""

import numpy as np
import pytest

from ttc_fusion.config.calibration import ProjectionCalibration
from ttc_fusion.gateway.data_types import BoundingBox, Correspondence, DetectionBox, Keypoint
from ttc_fusion.perception.projection import LidarProjector

FOCAL = 100.0
CX = 200.0
CY = 100.0


@pytest.fixture
def calibration():
    """Pinhole camera looking along LiDAR x, no rectification."""
    p_rect = [[FOCAL, 0.0, CX, 0.0],
              [0.0, FOCAL, CY, 0.0],
              [0.0, 0.0, 1.0, 0.0]]
    # LiDAR (x fwd, y left, z up) -> camera (x right, y down, z fwd)
    rt = [[0.0, -1.0, 0.0, 0.0],
          [0.0, 0.0, -1.0, 0.0],
          [1.0, 0.0, 0.0, 0.0]]
    return ProjectionCalibration.from_matrices(p_rect, np.eye(3), rt)


@pytest.fixture
def projector(calibration):
    return LidarProjector(calibration)


@pytest.fixture
def point_at():
    """Build a LiDAR row [x, y, z, r] that projects onto pixel (u, v) at depth x."""
    def _point_at(u, v, depth, r=0.5):
        return [depth, -(u - CX) * depth / FOCAL, -(v - CY) * depth / FOCAL, r]
    return _point_at


@pytest.fixture
def make_box():
    def _make_box(box_id, x, y, width, height):
        return DetectionBox(box_id=box_id, roi=BoundingBox(x=x, y=y, width=width, height=height))
    return _make_box


@pytest.fixture
def make_matched_keypoints():
    """Build previous/current keypoint lists and identity correspondences."""
    def _make(prev_positions, curr_positions):
        kpts_prev = [Keypoint(x=float(x), y=float(y)) for x, y in prev_positions]
        kpts_curr = [Keypoint(x=float(x), y=float(y)) for x, y in curr_positions]
        matches = [Correspondence(prev_idx=i, curr_idx=i) for i in range(len(kpts_prev))]
        return kpts_prev, kpts_curr, matches
    return _make
