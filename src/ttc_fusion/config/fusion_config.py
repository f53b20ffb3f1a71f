"""
Configuration dataclass for the TTC fusion pipeline.

This module centralizes all fusion-related configuration parameters
to provide a single source of truth for tuning the pipeline.
"""

from dataclasses import dataclass
from typing import Optional

from ttc_fusion.gateway.errors import ConfigurationError


@dataclass
class FusionConfig:
    """Configuration for the fusion pipeline."""

    # Sensor timing
    frame_rate: float = 10.0

    # LiDAR-to-box association
    shrink_factor: float = 0.10

    # Keypoint match outlier rejection (multiple of the mean displacement)
    match_outlier_ratio: float = 1.5

    # Camera TTC: minimum pixel distance between keypoints of a pair
    min_keypoint_distance: float = 100.0

    # LiDAR TTC: relative deviation from the mean that removes a point
    lidar_trim_ratio: float = 0.03
    lidar_depth_statistic: str = 'mean'  # 'mean' or 'closest'

    # LiDAR crop (ego lane, lane width 4m), applied to the whole scan before
    # box association when enabled; None disables a bound
    crop_lidar: bool = False
    crop_min_x: Optional[float] = None
    crop_max_x: Optional[float] = None
    crop_max_y: Optional[float] = 2.0
    crop_min_z: Optional[float] = None
    crop_max_z: Optional[float] = None
    crop_min_reflectivity: Optional[float] = 0.1

    # Frame ring buffer
    data_buffer_size: int = 2

    # Parallel per-box estimation
    max_workers: int = 1

    # YOLO detection settings
    yolo_confidence_threshold: float = 0.2
    yolo_iou_threshold: float = 0.4

    # Keypoints and matching
    detector_type: str = 'ORB'
    descriptor_type: str = 'ORB'
    matcher_type: str = 'MAT_BF'
    selector_type: str = 'SEL_KNN'
    knn_distance_ratio: float = 0.8

    def validate(self) -> 'FusionConfig':
        """
        Check value ranges.

        Returns:
            self, for chaining

        Raises:
            ConfigurationError: If any value is out of range
        """
        if self.frame_rate <= 0:
            raise ConfigurationError(f"frame_rate must be positive, got {self.frame_rate}")
        if not 0.0 <= self.shrink_factor < 1.0:
            raise ConfigurationError(f"shrink_factor must be in [0, 1), got {self.shrink_factor}")
        if self.match_outlier_ratio <= 0:
            raise ConfigurationError(f"match_outlier_ratio must be positive, got {self.match_outlier_ratio}")
        if self.min_keypoint_distance < 0:
            raise ConfigurationError(f"min_keypoint_distance must be >= 0, got {self.min_keypoint_distance}")
        if self.lidar_trim_ratio <= 0:
            raise ConfigurationError(f"lidar_trim_ratio must be positive, got {self.lidar_trim_ratio}")
        if self.lidar_depth_statistic not in ('mean', 'closest'):
            raise ConfigurationError(f"Unknown lidar_depth_statistic: {self.lidar_depth_statistic}")
        if self.data_buffer_size < 2:
            raise ConfigurationError(f"data_buffer_size must be >= 2, got {self.data_buffer_size}")
        if self.max_workers < 1:
            raise ConfigurationError(f"max_workers must be >= 1, got {self.max_workers}")
        if not 0.0 < self.knn_distance_ratio <= 1.0:
            raise ConfigurationError(f"knn_distance_ratio must be in (0, 1], got {self.knn_distance_ratio}")
        return self
