"""
Feature extraction and descriptor matching interfaces.

The fusion core only consumes keypoint positions and correspondence index
pairs; any implementation producing those can be plugged in.
"""

from abc import ABC, abstractmethod
from typing import List, Tuple
import numpy as np
from .data_types import Keypoint, Correspondence


class IFeatureExtractor(ABC):
    """Abstract interface for keypoint detection plus description."""

    @abstractmethod
    def extract(self, image: np.ndarray) -> Tuple[List[Keypoint], np.ndarray]:
        """
        Detect keypoints and compute one descriptor per keypoint.

        Args:
            image: Grayscale or BGR image array

        Returns:
            Tuple of (keypoints, descriptors); descriptors row i belongs to keypoints[i]
        """
        pass


class IDescriptorMatcher(ABC):
    """Abstract interface for matching descriptors between two frames."""

    @abstractmethod
    def match(self, desc_prev: np.ndarray, desc_curr: np.ndarray) -> List[Correspondence]:
        """
        Match previous-frame descriptors against current-frame descriptors.

        Args:
            desc_prev: Descriptors of the previous frame (query set)
            desc_curr: Descriptors of the current frame (train set)

        Returns:
            Correspondences with prev_idx into the previous frame and
            curr_idx into the current frame
        """
        pass
