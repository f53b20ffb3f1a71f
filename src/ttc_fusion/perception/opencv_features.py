"""
OpenCV keypoint extraction and descriptor matching.

Implements the feature-extractor and descriptor-matcher interfaces with
classic OpenCV detectors (Shi-Tomasi, Harris, FAST, BRISK, ORB, AKAZE, SIFT),
binary or float descriptors, brute-force or FLANN matching, and nearest
neighbour or k-nearest-neighbour (ratio test) selection.
"""

import logging
import time
from typing import List, Tuple

import cv2
import numpy as np

from ttc_fusion.gateway.feature_matcher import IFeatureExtractor, IDescriptorMatcher
from ttc_fusion.gateway.data_types import Correspondence, Keypoint
from ttc_fusion.gateway.errors import ConfigurationError

logger = logging.getLogger(__name__)

DETECTOR_TYPES = ('SHITOMASI', 'HARRIS', 'FAST', 'BRISK', 'ORB', 'AKAZE', 'SIFT')
DESCRIPTOR_TYPES = ('BRISK', 'ORB', 'AKAZE', 'SIFT')
MATCHER_TYPES = ('MAT_BF', 'MAT_FLANN')
SELECTOR_TYPES = ('SEL_NN', 'SEL_KNN')

# Descriptors compared with the Hamming norm
BINARY_DESCRIPTORS = ('BRISK', 'ORB', 'AKAZE')


class OpenCvFeatureExtractor(IFeatureExtractor):
    """Keypoint detection plus description with OpenCV."""

    # Corner detector parameters (Shi-Tomasi and Harris)
    CORNER_BLOCK_SIZE = 4
    CORNER_QUALITY_LEVEL = 0.01
    CORNER_K = 0.04
    HARRIS_APERTURE_SIZE = 3

    def __init__(self, detector_type: str = 'ORB', descriptor_type: str = 'ORB'):
        """
        Initialize extractor.

        Args:
            detector_type: One of DETECTOR_TYPES
            descriptor_type: One of DESCRIPTOR_TYPES

        Raises:
            ConfigurationError: On unsupported types or combinations
        """
        if detector_type not in DETECTOR_TYPES:
            raise ConfigurationError(f"{detector_type} is not a valid keypoint detector type")
        if descriptor_type not in DESCRIPTOR_TYPES:
            raise ConfigurationError(f"{descriptor_type} is not a valid keypoint descriptor type")
        # AKAZE descriptors need AKAZE keypoints; ORB cannot describe SIFT keypoints
        if descriptor_type == 'AKAZE' and detector_type != 'AKAZE':
            raise ConfigurationError("AKAZE descriptors require the AKAZE detector")
        if descriptor_type == 'ORB' and detector_type == 'SIFT':
            raise ConfigurationError("ORB descriptors cannot be computed on SIFT keypoints")

        self.detector_type = detector_type
        self.descriptor_type = descriptor_type
        self._detector = self._create_detector(detector_type)
        self._extractor = self._create_extractor(descriptor_type)

    @staticmethod
    def _create_detector(detector_type: str):
        if detector_type == 'FAST':
            return cv2.FastFeatureDetector_create()
        if detector_type == 'BRISK':
            return cv2.BRISK_create()
        if detector_type == 'ORB':
            return cv2.ORB_create()
        if detector_type == 'AKAZE':
            return cv2.AKAZE_create()
        if detector_type == 'SIFT':
            return cv2.SIFT_create()
        return None  # corner detectors use goodFeaturesToTrack

    @staticmethod
    def _create_extractor(descriptor_type: str):
        if descriptor_type == 'BRISK':
            # FAST/AGAST threshold, octaves, pattern scale
            return cv2.BRISK_create(30, 3, 1.0)
        if descriptor_type == 'ORB':
            return cv2.ORB_create()
        if descriptor_type == 'AKAZE':
            return cv2.AKAZE_create()
        return cv2.SIFT_create()

    def _detect_corners(self, gray: np.ndarray, use_harris: bool) -> List[cv2.KeyPoint]:
        min_distance = float(self.CORNER_BLOCK_SIZE)  # no overlap between features
        max_corners = int(gray.shape[0] * gray.shape[1] / max(1.0, min_distance))
        corners = cv2.goodFeaturesToTrack(
            gray,
            maxCorners=max_corners,
            qualityLevel=self.CORNER_QUALITY_LEVEL,
            minDistance=min_distance,
            blockSize=self.CORNER_BLOCK_SIZE,
            useHarrisDetector=use_harris,
            k=self.CORNER_K
        )
        if corners is None:
            return []

        size = 2 * self.HARRIS_APERTURE_SIZE if use_harris else self.CORNER_BLOCK_SIZE
        return [cv2.KeyPoint(float(x), float(y), float(size)) for x, y in corners.reshape(-1, 2)]

    def detect(self, gray: np.ndarray) -> List[cv2.KeyPoint]:
        """Detect keypoints in a greyscale image."""
        if self.detector_type == 'SHITOMASI':
            return self._detect_corners(gray, use_harris=False)
        if self.detector_type == 'HARRIS':
            return self._detect_corners(gray, use_harris=True)
        return list(self._detector.detect(gray, None))

    def extract(self, image: np.ndarray) -> Tuple[List[Keypoint], np.ndarray]:
        """
        Detect and describe keypoints.

        Args:
            image: Grayscale or BGR image array

        Returns:
            Tuple of (keypoints, descriptors); keypoints the descriptor could
            not be computed for are dropped
        """
        t0 = time.perf_counter()
        gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY) if image.ndim == 3 else image

        cv_keypoints = self.detect(gray)
        if not cv_keypoints:
            logger.debug(f"{self.detector_type} found no keypoints")
            return [], np.empty((0, 0), dtype=np.uint8)

        cv_keypoints, descriptors = self._extractor.compute(gray, cv_keypoints)
        if descriptors is None or len(cv_keypoints) == 0:
            return [], np.empty((0, 0), dtype=np.uint8)

        keypoints = [
            Keypoint(x=float(kp.pt[0]), y=float(kp.pt[1]), size=float(kp.size), response=float(kp.response))
            for kp in cv_keypoints
        ]

        logger.debug(
            f"{self.detector_type}/{self.descriptor_type}: {len(keypoints)} keypoints "
            f"in {(time.perf_counter() - t0) * 1000:.1f}ms"
        )
        return keypoints, descriptors


class OpenCvDescriptorMatcher(IDescriptorMatcher):
    """Brute-force or FLANN descriptor matching."""

    def __init__(
        self,
        descriptor_type: str = 'ORB',
        matcher_type: str = 'MAT_BF',
        selector_type: str = 'SEL_KNN',
        knn_distance_ratio: float = 0.8
    ):
        """
        Initialize matcher.

        Args:
            descriptor_type: Descriptor being matched, selects the BF norm
            matcher_type: 'MAT_BF' or 'MAT_FLANN'
            selector_type: 'SEL_NN' (best match) or 'SEL_KNN' (ratio test)
            knn_distance_ratio: Lowe ratio for SEL_KNN

        Raises:
            ConfigurationError: On unsupported types
        """
        if descriptor_type not in DESCRIPTOR_TYPES:
            raise ConfigurationError(f"{descriptor_type} is not a valid keypoint descriptor type")
        if matcher_type not in MATCHER_TYPES:
            raise ConfigurationError(f"{matcher_type} is not a valid matcher type")
        if selector_type not in SELECTOR_TYPES:
            raise ConfigurationError(f"{selector_type} is not a valid selector type")

        self.descriptor_type = descriptor_type
        self.matcher_type = matcher_type
        self.selector_type = selector_type
        self.knn_distance_ratio = knn_distance_ratio

        if matcher_type == 'MAT_BF':
            norm_type = cv2.NORM_HAMMING if descriptor_type in BINARY_DESCRIPTORS else cv2.NORM_L2
            self._matcher = cv2.BFMatcher(norm_type, crossCheck=False)
        else:
            self._matcher = cv2.FlannBasedMatcher()

    def match(self, desc_prev: np.ndarray, desc_curr: np.ndarray) -> List[Correspondence]:
        """
        Match previous-frame descriptors (query) against current-frame ones (train).

        Returns:
            Correspondences, empty if either side has no descriptors
        """
        if desc_prev is None or desc_curr is None or len(desc_prev) == 0 or len(desc_curr) == 0:
            return []

        if self.matcher_type == 'MAT_FLANN':
            # FLANN works on float descriptors only
            desc_prev = desc_prev.astype(np.float32)
            desc_curr = desc_curr.astype(np.float32)

        if self.selector_type == 'SEL_NN':
            matches = self._matcher.match(desc_prev, desc_curr)
        else:
            if len(desc_curr) < 2:
                logger.debug("k-NN selection needs at least 2 train descriptors")
                return []
            matches = []
            for candidates in self._matcher.knnMatch(desc_prev, desc_curr, k=2):
                if len(candidates) == 2 and candidates[0].distance < self.knn_distance_ratio * candidates[1].distance:
                    matches.append(candidates[0])

        logger.debug(f"No of matched points = {len(matches)}")
        return [Correspondence(prev_idx=m.queryIdx, curr_idx=m.trainIdx, distance=float(m.distance)) for m in matches]
