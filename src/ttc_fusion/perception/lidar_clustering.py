"""
LiDAR point preprocessing and association with 2D detection boxes.

A point is assigned to a box only if its projection falls inside exactly one
shrunk box. Points enclosed by zero or several boxes are dropped so that
ambiguous or background returns never contaminate an object's point cloud.
"""

import logging
from typing import List, Optional

import numpy as np

from ttc_fusion.gateway.data_types import DetectionBox, LIDAR_X, LIDAR_Y, LIDAR_Z, LIDAR_R
from ttc_fusion.perception.projection import LidarProjector

logger = logging.getLogger(__name__)


def crop_lidar_points(
    lidar_points: np.ndarray,
    min_x: Optional[float] = None,
    max_x: Optional[float] = None,
    max_y: Optional[float] = None,
    min_z: Optional[float] = None,
    max_z: Optional[float] = None,
    min_reflectivity: Optional[float] = None
) -> np.ndarray:
    """
    Keep only LiDAR points inside an ego-lane region of interest.

    Args:
        lidar_points: (N, 4) array [x, y, z, r]
        min_x: Minimum forward distance (inclusive)
        max_x: Maximum forward distance (inclusive)
        max_y: Maximum absolute lateral offset (exclusive)
        min_z: Minimum height (inclusive)
        max_z: Maximum height (inclusive)
        min_reflectivity: Minimum reflectivity (inclusive)

    Returns:
        (M, 4) array of surviving points, in input order
    """
    keep = np.ones(len(lidar_points), dtype=bool)
    if min_x is not None:
        keep &= lidar_points[:, LIDAR_X] >= min_x
    if max_x is not None:
        keep &= lidar_points[:, LIDAR_X] <= max_x
    if max_y is not None:
        keep &= np.abs(lidar_points[:, LIDAR_Y]) < max_y
    if min_z is not None:
        keep &= lidar_points[:, LIDAR_Z] >= min_z
    if max_z is not None:
        keep &= lidar_points[:, LIDAR_Z] <= max_z
    if min_reflectivity is not None:
        keep &= lidar_points[:, LIDAR_R] >= min_reflectivity

    logger.debug(f"LiDAR crop kept {int(np.count_nonzero(keep))} of {len(lidar_points)} points")
    return lidar_points[keep]


def cluster_lidar_with_roi(
    bounding_boxes: List[DetectionBox],
    lidar_points: np.ndarray,
    shrink_factor: float,
    projector: LidarProjector
) -> int:
    """
    Associate LiDAR points with the detection boxes enclosing their projection.

    Replaces each box's lidar_point_indices with the row indices of the
    lidar_points it owns.

    Args:
        bounding_boxes: Boxes of the frame that owns lidar_points
        lidar_points: (N, 4) array [x, y, z, r]
        shrink_factor: Fraction of box width/height removed before testing
        projector: LiDAR-to-image projector

    Returns:
        Number of points assigned to a box
    """
    if not bounding_boxes:
        return 0
    if len(lidar_points) == 0:
        for box in bounding_boxes:
            box.lidar_point_indices = []
        return 0

    uv = projector.project(lidar_points)

    # (B, N) containment of every point in every shrunk box
    enclosed = np.stack([
        box.roi.shrink(shrink_factor).contains_points(uv)
        for box in bounding_boxes
    ])
    enclosing_count = enclosed.sum(axis=0)
    unambiguous = enclosing_count == 1

    for box, inside in zip(bounding_boxes, enclosed):
        box.lidar_point_indices = np.flatnonzero(inside & unambiguous).tolist()

    assigned = int(np.count_nonzero(unambiguous))
    ambiguous = int(np.count_nonzero(enclosing_count > 1))
    logger.debug(
        f"Assigned {assigned} of {len(lidar_points)} LiDAR points to "
        f"{len(bounding_boxes)} boxes ({ambiguous} ambiguous dropped)"
    )
    return assigned
