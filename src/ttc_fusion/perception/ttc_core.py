"""
TTC Pipeline - Frame-pair orchestration for camera/LiDAR time-to-collision.

This module wires the fusion stages together using dependency injection:
LiDAR association -> box correspondence -> keypoint match filtering ->
camera and LiDAR TTC per matched box pair.
"""

import logging
import time
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Deque, Dict, List, Optional, Tuple

import numpy as np

from ttc_fusion.config.fusion_config import FusionConfig
from ttc_fusion.gateway.detector import Detector
from ttc_fusion.gateway.feature_matcher import IFeatureExtractor, IDescriptorMatcher
from ttc_fusion.gateway.data_types import DetectionBox, Frame, TTCEstimate
from ttc_fusion.gateway.errors import ConfigurationError, DegenerateInputError
from ttc_fusion.perception.projection import LidarProjector
from ttc_fusion.perception.lidar_clustering import crop_lidar_points, cluster_lidar_with_roi
from ttc_fusion.perception.box_matching import match_bounding_boxes
from ttc_fusion.perception.keypoint_clustering import cluster_kpt_matches_with_roi
from ttc_fusion.perception.camera_ttc import compute_ttc_camera
from ttc_fusion.perception.lidar_ttc import compute_ttc_lidar

logger = logging.getLogger(__name__)


class TTCPipeline:
    """
    Orchestrates TTC estimation over a stream of frames.

    Responsibilities:
    - Build frames (detection, LiDAR crop and association, keypoints)
    - Keep a ring buffer of the most recent frames
    - Match boxes between the previous and current frame
    - Run both TTC estimators per matched box pair, isolating failures per pair

    Estimation failures never abort a frame; they are reported on the
    TTCEstimate and logged.
    """

    def __init__(
        self,
        projector: LidarProjector,
        config: Optional[FusionConfig] = None,
        detector: Optional[Detector] = None,
        feature_extractor: Optional[IFeatureExtractor] = None,
        descriptor_matcher: Optional[IDescriptorMatcher] = None,
        observer: Optional[Callable[[TTCEstimate], None]] = None
    ):
        """
        Initialize pipeline with dependency injection.

        Args:
            projector: LiDAR-to-image projector
            config: Fusion configuration (defaults used if None)
            detector: Detection source, optional if boxes are passed to process_frame
            feature_extractor: Keypoint/descriptor extractor, required by process_frame
            descriptor_matcher: Descriptor matcher, required by process_frame
            observer: Called once with every TTCEstimate produced

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        self.projector = projector
        self.config = (config or FusionConfig()).validate()
        self.detector = detector
        self.feature_extractor = feature_extractor
        self.descriptor_matcher = descriptor_matcher
        self.observer = observer

        self.frame_buffer: Deque[Frame] = deque(maxlen=self.config.data_buffer_size)
        self.frame_count = 0

        self.executor = None
        if self.config.max_workers > 1:
            self.executor = ThreadPoolExecutor(max_workers=self.config.max_workers, thread_name_prefix="BoxEstimator")
            logger.info(f"Initialized ThreadPoolExecutor with {self.config.max_workers} workers")

    def close(self):
        """Shut down the worker pool, if any."""
        if self.executor is not None:
            self.executor.shutdown(wait=True)
            self.executor = None
            logger.info("ThreadPoolExecutor shut down")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def build_frame(
        self,
        image: Optional[np.ndarray],
        lidar_points: np.ndarray,
        bounding_boxes: Optional[List[DetectionBox]] = None
    ) -> Frame:
        """
        Create a frame with LiDAR points associated to detection boxes.

        Args:
            image: Camera image (H x W x 3 BGR or H x W grey)
            lidar_points: (N, 4) array [x, y, z, r]
            bounding_boxes: Detections; the detector is run if None

        Returns:
            Frame with boxes, associated points, keypoints and descriptors

        Raises:
            ConfigurationError: If boxes are needed and no detector is set
            ValueError: If lidar_points is not an (N, 4) array
        """
        if bounding_boxes is None:
            if self.detector is None:
                raise ConfigurationError("No detector configured and no bounding boxes given")
            bounding_boxes = self.detector.detect_objects(image)

        points = np.asarray(lidar_points, dtype=np.float64)
        if points.size == 0:
            points = points.reshape(0, 4)
        elif points.ndim != 2 or points.shape[1] != 4:
            raise ValueError(f"lidar_points must be an (N, 4) array [x, y, z, r], got shape {points.shape}")
        if self.config.crop_lidar:
            points = crop_lidar_points(
                points,
                min_x=self.config.crop_min_x,
                max_x=self.config.crop_max_x,
                max_y=self.config.crop_max_y,
                min_z=self.config.crop_min_z,
                max_z=self.config.crop_max_z,
                min_reflectivity=self.config.crop_min_reflectivity
            )

        frame = Frame(lidar_points=points, bounding_boxes=bounding_boxes, camera_image=image)
        cluster_lidar_with_roi(frame.bounding_boxes, frame.lidar_points, self.config.shrink_factor, self.projector)

        if self.feature_extractor is not None and image is not None:
            frame.keypoints, frame.descriptors = self.feature_extractor.extract(image)

        return frame

    def process_frame(
        self,
        image: np.ndarray,
        lidar_points: np.ndarray,
        bounding_boxes: Optional[List[DetectionBox]] = None
    ) -> List[TTCEstimate]:
        """
        Push one time step through the pipeline.

        Args:
            image: Camera image
            lidar_points: (N, 4) array [x, y, z, r]
            bounding_boxes: Detections; the detector is run if None

        Returns:
            TTC estimates against the previous frame (empty for the first frame)
        """
        if self.feature_extractor is None or self.descriptor_matcher is None:
            raise ConfigurationError("process_frame requires a feature extractor and a descriptor matcher")

        frame_start = time.perf_counter()
        frame = self.build_frame(image, lidar_points, bounding_boxes)
        self.frame_buffer.append(frame)
        self.frame_count += 1

        logger.debug(
            f"Frame {self.frame_count}: {len(frame.bounding_boxes)} boxes, "
            f"{len(frame.lidar_points)} LiDAR points, {len(frame.keypoints)} keypoints"
        )

        if len(self.frame_buffer) < 2:
            return []

        prev_frame = self.frame_buffer[-2]
        frame.kpt_matches = self.descriptor_matcher.match(prev_frame.descriptors, frame.descriptors)
        logger.debug(f"Frame {self.frame_count}: {len(frame.kpt_matches)} keypoint matches")

        estimates = self.process_frame_pair(prev_frame, frame)
        logger.debug(f"Frame {self.frame_count} processed in {(time.perf_counter() - frame_start) * 1000:.1f}ms")
        return estimates

    def process_frame_pair(self, prev_frame: Frame, curr_frame: Frame) -> List[TTCEstimate]:
        """
        Estimate TTC for every box pair linked between two frames.

        Boxes of both frames must already carry their LiDAR points;
        curr_frame.kpt_matches must hold the correspondences previous -> current.

        Args:
            prev_frame: Previous frame
            curr_frame: Current frame; its bb_matches and box match indices are set

        Returns:
            One TTCEstimate per matched box pair, in previous-box order
        """
        curr_frame.bb_matches = match_bounding_boxes(curr_frame.kpt_matches, prev_frame, curr_frame)

        # Filter matches once per current box before estimation; several
        # previous boxes may map onto the same current box
        match_errors: Dict[int, str] = {}
        for curr_box_id in dict.fromkeys(curr_frame.bb_matches.values()):
            curr_box = curr_frame.get_box(curr_box_id)
            try:
                cluster_kpt_matches_with_roi(
                    curr_box, prev_frame.keypoints, curr_frame.keypoints,
                    curr_frame.kpt_matches, self.config.match_outlier_ratio
                )
            except DegenerateInputError as e:
                match_errors[curr_box_id] = str(e)

        pairs: List[Tuple[int, int]] = list(curr_frame.bb_matches.items())

        def estimate(pair: Tuple[int, int]) -> TTCEstimate:
            prev_box_id, curr_box_id = pair
            return self._estimate_pair(prev_frame, curr_frame, prev_box_id, curr_box_id, match_errors.get(curr_box_id))

        if self.executor is not None:
            estimates = list(self.executor.map(estimate, pairs))
        else:
            estimates = [estimate(pair) for pair in pairs]

        for result in estimates:
            self._report(result)
        return estimates

    def _estimate_pair(
        self,
        prev_frame: Frame,
        curr_frame: Frame,
        prev_box_id: int,
        curr_box_id: int,
        match_error: Optional[str]
    ) -> TTCEstimate:
        """Run both estimators for one box pair, capturing degenerate inputs."""
        prev_box = prev_frame.get_box(prev_box_id)
        curr_box = curr_frame.get_box(curr_box_id)
        result = TTCEstimate(prev_box_id=prev_box_id, curr_box_id=curr_box_id)

        points_prev = prev_frame.box_lidar_points(prev_box)
        points_curr = curr_frame.box_lidar_points(curr_box)
        result.num_lidar_points = len(points_curr)
        try:
            result.ttc_lidar = compute_ttc_lidar(
                points_prev, points_curr, self.config.frame_rate,
                trim_ratio=self.config.lidar_trim_ratio,
                depth_statistic=self.config.lidar_depth_statistic
            )
        except DegenerateInputError as e:
            result.lidar_error = str(e)

        if match_error is not None:
            result.camera_error = match_error
        else:
            box_matches = curr_frame.box_kpt_matches(curr_box)
            result.num_kpt_matches = len(box_matches)
            try:
                result.ttc_camera = compute_ttc_camera(
                    prev_frame.keypoints, curr_frame.keypoints, box_matches,
                    self.config.frame_rate, min_dist=self.config.min_keypoint_distance
                )
            except DegenerateInputError as e:
                result.camera_error = str(e)

        return result

    def _report(self, result: TTCEstimate):
        """Log an estimate and hand it to the observer."""
        if result.ttc_lidar is not None:
            logger.info(f"Box {result.prev_box_id}->{result.curr_box_id}: TTC LiDAR = {result.ttc_lidar:.2f}s "
                        f"({result.num_lidar_points} points)")
        else:
            logger.warning(f"Box {result.prev_box_id}->{result.curr_box_id}: {result.lidar_error}")

        if result.ttc_camera is not None:
            logger.info(f"Box {result.prev_box_id}->{result.curr_box_id}: TTC camera = {result.ttc_camera:.2f}s "
                        f"({result.num_kpt_matches} matches)")
        else:
            logger.warning(f"Box {result.prev_box_id}->{result.curr_box_id}: {result.camera_error}")

        if self.observer is not None:
            self.observer(result)
