"""
Detector - Interface for camera-based object detection methods.

This module defines the abstract interface that any detection source
(YOLO, SSD, ground-truth labels, etc.) must implement.
"""

from abc import ABC, abstractmethod
from typing import List
import numpy as np
from .data_types import DetectionBox


class Detector(ABC):
    """Abstract interface for camera-based object detection methods."""

    @abstractmethod
    def detect_objects(self, image: np.ndarray) -> List[DetectionBox]:
        """
        Detect objects in a camera image.

        Args:
            image: (H x W x 3) BGR image array

        Returns:
            Detection boxes with ids unique within the frame and empty
            point/match collections
        """
        pass
