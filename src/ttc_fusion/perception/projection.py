"""
LiDAR-to-image projection.

Projects LiDAR points into pixel coordinates with a fixed homogeneous
transform: intrinsic @ rectification @ extrinsic, followed by perspective
division by the depth component.
"""

import logging
from typing import Tuple

import numpy as np

from ttc_fusion.config.calibration import ProjectionCalibration

logger = logging.getLogger(__name__)


class LidarProjector:
    """Stateless projector built once from a validated calibration."""

    def __init__(self, calibration: ProjectionCalibration):
        """
        Initialize projector.

        Args:
            calibration: Validated projection matrices
        """
        self.calibration = calibration
        # Combined (3, 4) transform applied to homogeneous LiDAR points
        self.projection = calibration.p_rect @ calibration.r_rect @ calibration.rt

    def project(self, points: np.ndarray) -> np.ndarray:
        """
        Project LiDAR points into the image.

        Args:
            points: (N, 3+) array, first three columns are x, y, z in meters

        Returns:
            (N, 2) pixel coordinates [u, v]; NaN for points at or behind the
            image plane (non-positive depth)
        """
        points = np.asarray(points, dtype=np.float64)
        if points.size == 0:
            return np.empty((0, 2), dtype=np.float64)

        homogeneous = np.hstack([points[:, :3], np.ones((len(points), 1))])
        projected = homogeneous @ self.projection.T  # (N, 3)
        depth = projected[:, 2]

        uv = np.full((len(points), 2), np.nan)
        in_front = depth > 0
        uv[in_front] = projected[in_front, :2] / depth[in_front, None]

        behind = len(points) - int(np.count_nonzero(in_front))
        if behind:
            logger.debug(f"{behind} of {len(points)} points have non-positive depth")
        return uv

    def project_point(self, x: float, y: float, z: float) -> Tuple[float, float]:
        """Project a single point, returning (u, v)."""
        u, v = self.project(np.array([[x, y, z]]))[0]
        return float(u), float(v)
