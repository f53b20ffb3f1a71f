"""
Configuration for the TTC fusion pipeline.
"""

from .fusion_config import FusionConfig
from .calibration import ProjectionCalibration

__all__ = ['FusionConfig', 'ProjectionCalibration']
