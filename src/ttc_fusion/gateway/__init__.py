"""
Gateway module for the TTC fusion system.

This module provides the abstraction layer between the fusion core and its
external collaborators (object detector, feature extractor, descriptor
matcher), plus the shared data types and error taxonomy.
"""

from .detector import Detector
from .feature_matcher import IFeatureExtractor, IDescriptorMatcher
from .errors import FusionError, DegenerateInputError, ConfigurationError
from .data_types import (
    Keypoint, Correspondence, BoundingBox, DetectionBox, Frame, TTCEstimate,
    empty_lidar_points, keypoint_positions
)

__all__ = [
    # Collaborator interfaces
    'Detector', 'IFeatureExtractor', 'IDescriptorMatcher',
    # Errors
    'FusionError', 'DegenerateInputError', 'ConfigurationError',
    # Data types
    'Keypoint', 'Correspondence', 'BoundingBox', 'DetectionBox', 'Frame',
    'TTCEstimate', 'empty_lidar_points', 'keypoint_positions'
]
