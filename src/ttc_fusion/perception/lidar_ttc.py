"""
LiDAR-based TTC from the approach of an object's trimmed mean distance.

Each frame's forward distance is estimated in two fixed passes: a plain mean,
then the mean of the points deviating from it by less than a fixed fraction.
"""

import logging

import numpy as np

from ttc_fusion.gateway.data_types import LIDAR_X
from ttc_fusion.gateway.errors import DegenerateInputError

logger = logging.getLogger(__name__)


def trimmed_forward_distance(
    lidar_points: np.ndarray,
    trim_ratio: float = 0.03,
    depth_statistic: str = 'mean'
) -> float:
    """
    Robust forward distance of a point cluster.

    Args:
        lidar_points: (N, 4) array [x, y, z, r]
        trim_ratio: Points with |mean - x| >= trim_ratio * mean are removed
        depth_statistic: 'mean' of the surviving x, or 'closest' (their minimum)

    Returns:
        Distance in meters

    Raises:
        DegenerateInputError: If the cluster is empty before or after trimming
    """
    points = np.asarray(lidar_points, dtype=np.float64)
    if points.size == 0:
        raise DegenerateInputError("LiDAR TTC undefined: empty point set")
    x = points[:, LIDAR_X]

    # Pass 1
    mean_x = float(x.mean())

    # Pass 2
    survivors = x[np.abs(mean_x - x) < trim_ratio * mean_x]
    if survivors.size == 0:
        raise DegenerateInputError(f"LiDAR TTC undefined: all {x.size} points trimmed around mean {mean_x:.3f}m")

    if depth_statistic == 'closest':
        return float(survivors.min())
    if depth_statistic == 'mean':
        return float(survivors.mean())
    raise ValueError(f"Unknown depth_statistic: {depth_statistic}")


def compute_ttc_lidar(
    lidar_points_prev: np.ndarray,
    lidar_points_curr: np.ndarray,
    frame_rate: float,
    trim_ratio: float = 0.03,
    depth_statistic: str = 'mean'
) -> float:
    """
    Compute TTC from previous and current object distance.

    TTC = d0 * dT / (d0 - d1), dT = 1 / frame_rate, where d0 and d1 are the
    trimmed distances of the previous and current point sets.

    Args:
        lidar_points_prev: (N, 4) points of the object in the previous frame
        lidar_points_curr: (M, 4) points of the object in the current frame
        frame_rate: LiDAR frame rate in Hz
        trim_ratio: Relative trim threshold
        depth_statistic: 'mean' or 'closest'

    Returns:
        TTC in seconds

    Raises:
        DegenerateInputError: If a set is empty or the distance did not change
    """
    if frame_rate <= 0:
        raise ValueError(f"frame_rate must be positive, got {frame_rate}")
    dt = 1.0 / frame_rate

    d0 = trimmed_forward_distance(lidar_points_prev, trim_ratio, depth_statistic)
    d1 = trimmed_forward_distance(lidar_points_curr, trim_ratio, depth_statistic)

    if d0 == d1:
        raise DegenerateInputError(f"LiDAR TTC undefined: distance unchanged at {d0:.3f}m")

    ttc = d0 * dt / (d0 - d1)
    logger.debug(f"LiDAR TTC {ttc:.3f}s (d0={d0:.3f}m, d1={d1:.3f}m)")
    return ttc
