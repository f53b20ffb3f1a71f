"""
Perception module for camera/LiDAR time-to-collision estimation.

The detector and feature adapters (yolo_detector, opencv_features) are not
imported here; import them from their modules so the core can be used
without loading the model stacks.
"""

from .projection import LidarProjector
from .lidar_clustering import crop_lidar_points, cluster_lidar_with_roi
from .box_matching import match_bounding_boxes
from .keypoint_clustering import cluster_kpt_matches_with_roi
from .camera_ttc import compute_ttc_camera
from .lidar_ttc import compute_ttc_lidar, trimmed_forward_distance
from .ttc_core import TTCPipeline

__all__ = [
    'LidarProjector', 'crop_lidar_points', 'cluster_lidar_with_roi',
    'match_bounding_boxes', 'cluster_kpt_matches_with_roi',
    'compute_ttc_camera', 'compute_ttc_lidar', 'trimmed_forward_distance',
    'TTCPipeline'
]
