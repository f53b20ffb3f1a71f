import numpy as np
import pytest

from ttc_fusion.config import FusionConfig
from ttc_fusion.gateway.data_types import BoundingBox, Correspondence, DetectionBox, Keypoint
from ttc_fusion.gateway.detector import Detector
from ttc_fusion.gateway.errors import ConfigurationError
from ttc_fusion.gateway.feature_matcher import IDescriptorMatcher, IFeatureExtractor
from ttc_fusion.perception.ttc_core import TTCPipeline

CENTRE = np.array([200.0, 100.0])
OFFSETS = np.array([(-80, -40), (80, -40), (-80, 40), (80, 40), (0, 0)], dtype=float)
SCALE = 1.1

# Second object: two keypoints that do not move, no LiDAR returns
STATIC_KPTS = [(410.0, 60.0), (490.0, 140.0)]


def prev_boxes():
    return [
        DetectionBox(box_id=0, roi=BoundingBox(100, 50, 200, 100)),
        DetectionBox(box_id=1, roi=BoundingBox(400, 50, 100, 100)),
    ]


def curr_boxes():
    return [
        DetectionBox(box_id=0, roi=BoundingBox(90, 45, 220, 110)),
        DetectionBox(box_id=1, roi=BoundingBox(400, 50, 100, 100)),
    ]


def prev_keypoints():
    return [Keypoint(*pt) for pt in CENTRE + OFFSETS] + [Keypoint(*pt) for pt in STATIC_KPTS]


def curr_keypoints():
    return [Keypoint(*pt) for pt in CENTRE + SCALE * OFFSETS] + [Keypoint(*pt) for pt in STATIC_KPTS]


def lidar_scan(point_at, depth):
    return np.array([
        point_at(200, 100, depth - 0.1),
        point_at(190, 95, depth),
        point_at(210, 105, depth + 0.1),
    ])


def identity_matches(count):
    return [Correspondence(prev_idx=i, curr_idx=i) for i in range(count)]


class ScriptedExtractor(IFeatureExtractor):
    """Returns pre-built keypoints frame by frame."""

    def __init__(self, keypoint_sets):
        self.keypoint_sets = list(keypoint_sets)

    def extract(self, image):
        keypoints = self.keypoint_sets.pop(0)
        return keypoints, np.arange(len(keypoints), dtype=np.uint8).reshape(-1, 1)


class IdentityMatcher(IDescriptorMatcher):
    def match(self, desc_prev, desc_curr):
        return identity_matches(min(len(desc_prev), len(desc_curr)))


class ScriptedDetector(Detector):
    def __init__(self, box_sets):
        self.box_sets = list(box_sets)

    def detect_objects(self, image):
        return self.box_sets.pop(0)


@pytest.fixture
def frame_pair(projector, point_at):
    pipeline = TTCPipeline(projector)
    prev_frame = pipeline.build_frame(None, lidar_scan(point_at, 10.0), prev_boxes())
    curr_frame = pipeline.build_frame(None, lidar_scan(point_at, 9.0), curr_boxes())
    prev_frame.keypoints = prev_keypoints()
    curr_frame.keypoints = curr_keypoints()
    curr_frame.kpt_matches = identity_matches(len(curr_frame.keypoints))
    return prev_frame, curr_frame


def check_estimates(estimates):
    assert [(e.prev_box_id, e.curr_box_id) for e in estimates] == [(0, 0), (1, 1)]

    approaching, static = estimates
    assert approaching.ttc_lidar == pytest.approx(1.0)
    assert approaching.ttc_camera == pytest.approx(-0.1 / (1.0 - SCALE))
    assert approaching.num_lidar_points == 3
    assert approaching.num_kpt_matches == 5
    assert approaching.lidar_error is None and approaching.camera_error is None

    assert static.ttc_lidar is None
    assert "empty" in static.lidar_error
    assert static.ttc_camera is None
    assert static.camera_error


def test_build_frame_associates_points(projector, point_at):
    pipeline = TTCPipeline(projector, config=FusionConfig(crop_lidar=True))
    scan = np.vstack([lidar_scan(point_at, 10.0), [[10.0, 5.0, 0.0, 0.5]]])

    frame = pipeline.build_frame(None, scan, prev_boxes())

    assert len(frame.lidar_points) == 3  # lateral point cropped
    assert frame.bounding_boxes[0].lidar_point_indices == [0, 1, 2]
    assert frame.bounding_boxes[1].lidar_point_indices == []


def test_frame_pair_estimates(projector, frame_pair):
    prev_frame, curr_frame = frame_pair
    observed = []
    pipeline = TTCPipeline(projector, observer=observed.append)

    estimates = pipeline.process_frame_pair(prev_frame, curr_frame)

    check_estimates(estimates)
    assert observed == estimates
    assert curr_frame.bb_matches == {0: 0, 1: 1}
    assert curr_frame.bounding_boxes[0].kpt_match_indices == [0, 1, 2, 3, 4]


def test_parallel_estimation_matches_sequential(projector, frame_pair):
    prev_frame, curr_frame = frame_pair
    with TTCPipeline(projector, config=FusionConfig(max_workers=2)) as pipeline:
        assert pipeline.executor is not None
        estimates = pipeline.process_frame_pair(prev_frame, curr_frame)
    assert pipeline.executor is None

    check_estimates(estimates)


def test_closest_depth_statistic(projector, frame_pair):
    prev_frame, curr_frame = frame_pair
    pipeline = TTCPipeline(projector, config=FusionConfig(lidar_depth_statistic='closest'))

    approaching = pipeline.process_frame_pair(prev_frame, curr_frame)[0]

    assert approaching.ttc_lidar == pytest.approx(9.9 * 0.1 / (9.9 - 8.9))


def test_two_previous_boxes_on_one_current_box_filter_once(projector, point_at):
    pipeline = TTCPipeline(projector)
    split_boxes = [
        DetectionBox(box_id=0, roi=BoundingBox(100, 50, 100, 100)),
        DetectionBox(box_id=1, roi=BoundingBox(200, 50, 100, 100)),
    ]
    prev_frame = pipeline.build_frame(None, lidar_scan(point_at, 10.0), split_boxes)
    curr_frame = pipeline.build_frame(None, lidar_scan(point_at, 9.0), curr_boxes()[:1])
    prev_frame.keypoints = prev_keypoints()[:5]
    curr_frame.keypoints = curr_keypoints()[:5]
    curr_frame.kpt_matches = identity_matches(5)

    estimates = pipeline.process_frame_pair(prev_frame, curr_frame)

    assert curr_frame.bb_matches == {0: 0, 1: 0}
    assert curr_frame.bounding_boxes[0].kpt_match_indices == [0, 1, 2, 3, 4]
    assert [e.ttc_camera for e in estimates] == pytest.approx([1.0, 1.0])


def test_process_frame_runs_on_frame_stream(projector, point_at):
    pipeline = TTCPipeline(
        projector,
        detector=ScriptedDetector([prev_boxes(), curr_boxes(), curr_boxes()]),
        feature_extractor=ScriptedExtractor([prev_keypoints(), curr_keypoints(), curr_keypoints()]),
        descriptor_matcher=IdentityMatcher()
    )
    image = np.zeros((200, 600, 3), dtype=np.uint8)

    assert pipeline.process_frame(image, lidar_scan(point_at, 10.0)) == []
    estimates = pipeline.process_frame(image, lidar_scan(point_at, 9.0))

    check_estimates(estimates)
    assert pipeline.frame_count == 2
    assert len(pipeline.frame_buffer) == 2

    # Third frame: same geometry, so no scale or distance change
    estimates = pipeline.process_frame(image, lidar_scan(point_at, 9.0))
    assert len(pipeline.frame_buffer) == 2
    assert estimates[0].ttc_lidar is None
    assert "unchanged" in estimates[0].lidar_error
    assert estimates[0].ttc_camera is None


def test_build_frame_without_detector_or_boxes(projector, point_at):
    with pytest.raises(ConfigurationError):
        TTCPipeline(projector).build_frame(None, lidar_scan(point_at, 10.0))


def test_process_frame_requires_feature_stack(projector, point_at):
    with pytest.raises(ConfigurationError):
        TTCPipeline(projector).process_frame(None, lidar_scan(point_at, 10.0), prev_boxes())


def test_invalid_config_fails_at_construction(projector):
    with pytest.raises(ConfigurationError):
        TTCPipeline(projector, config=FusionConfig(shrink_factor=-0.1))


def test_build_frame_keeps_whole_scan_by_default(projector, point_at):
    scan = np.vstack([lidar_scan(point_at, 10.0), [[10.0, 5.0, 0.0, 0.5], [10.0, 0.0, 0.0, 0.0]]])

    frame = TTCPipeline(projector).build_frame(None, scan, prev_boxes())

    assert len(frame.lidar_points) == 5
    # Both extra points project into box 0 once nothing is cropped
    assert frame.bounding_boxes[0].lidar_point_indices == [0, 1, 2, 3, 4]


def test_build_frame_rejects_scan_without_reflectivity(projector):
    # 8 rows of 3 columns would reshape into 6 rows of 4
    scan = np.array([[10.0 + i, 0.1 * i, -1.0] for i in range(8)])

    with pytest.raises(ValueError, match=r"\(N, 4\)"):
        TTCPipeline(projector).build_frame(None, scan, prev_boxes())


def test_build_frame_rejects_flat_scan(projector):
    with pytest.raises(ValueError):
        TTCPipeline(projector).build_frame(None, np.zeros(8), prev_boxes())


def test_build_frame_accepts_empty_scan(projector):
    frame = TTCPipeline(projector).build_frame(None, [], prev_boxes())

    assert frame.lidar_points.shape == (0, 4)
    assert frame.bounding_boxes[0].lidar_point_indices == []
