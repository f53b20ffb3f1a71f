"""
TTC Runner - Camera/LiDAR time-to-collision over a recorded sequence.

Reads a KITTI-style raw recording (camera PNGs plus Velodyne .bin scans),
detects vehicles with YOLO, matches keypoints between consecutive frames and
logs the camera and LiDAR TTC for every matched vehicle.

Usage:
    python run_ttc.py --data-dir data/2011_09_26_drive_0001_sync
    python run_ttc.py --data-dir DIR --detector-type FAST --descriptor-type BRISK -v
"""

import argparse
import logging
from pathlib import Path
from typing import List, Tuple

import cv2
import numpy as np

from ttc_fusion.config import FusionConfig, ProjectionCalibration
from ttc_fusion.gateway.data_types import TTCEstimate
from ttc_fusion.perception import LidarProjector, TTCPipeline
from ttc_fusion.perception.opencv_features import OpenCvFeatureExtractor, OpenCvDescriptorMatcher
from ttc_fusion.perception.yolo_detector import YoloDetector

logger = logging.getLogger(__name__)

DEFAULT_CALIBRATION = Path(__file__).parent / "config" / "calibration_kitti.yaml"


def setup_logging(verbose: bool = False):
    """
    Configure logging.

    Args:
        verbose: If True, set DEBUG level. Otherwise INFO level.
    """
    log_level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # Suppress verbose libraries
    logging.getLogger('ultralytics').setLevel(logging.WARNING)
    logging.getLogger('PIL').setLevel(logging.WARNING)


def find_sequence(data_dir: Path) -> List[Tuple[Path, Path]]:
    """
    Pair camera images with LiDAR scans by file stem.

    Args:
        data_dir: Recording root with image_02/data and velodyne_points/data

    Returns:
        Sorted (image_path, lidar_path) pairs
    """
    image_dir = data_dir / "image_02" / "data"
    lidar_dir = data_dir / "velodyne_points" / "data"

    pairs = []
    for image_path in sorted(image_dir.glob("*.png")):
        lidar_path = lidar_dir / f"{image_path.stem}.bin"
        if lidar_path.exists():
            pairs.append((image_path, lidar_path))
        else:
            logger.warning(f"No LiDAR scan for {image_path.name}, skipping")
    return pairs


def load_lidar_scan(path: Path) -> np.ndarray:
    """Load a Velodyne scan stored as float32 x, y, z, r records."""
    return np.fromfile(path, dtype=np.float32).reshape(-1, 4).astype(np.float64)


def main():
    """Run TTC estimation over a recorded sequence."""
    parser = argparse.ArgumentParser(description='Camera/LiDAR TTC estimation')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable verbose logging (DEBUG level)')
    parser.add_argument('--data-dir', type=Path, required=True,
                        help='KITTI-style recording directory')
    parser.add_argument('--calibration', type=Path, default=DEFAULT_CALIBRATION,
                        help='Projection calibration YAML (default: config/calibration_kitti.yaml)')
    parser.add_argument('--model', type=str, default='yolo11n.pt',
                        help='YOLO weights (default: yolo11n.pt)')
    parser.add_argument('--frame-rate', type=float, default=10.0,
                        help='Sensor frame rate in Hz (default: 10)')
    parser.add_argument('--detector-type', type=str, default='ORB',
                        help='Keypoint detector (default: ORB)')
    parser.add_argument('--descriptor-type', type=str, default='ORB',
                        help='Keypoint descriptor (default: ORB)')
    parser.add_argument('--matcher-type', type=str, default='MAT_BF',
                        help='MAT_BF or MAT_FLANN (default: MAT_BF)')
    parser.add_argument('--selector-type', type=str, default='SEL_KNN',
                        help='SEL_NN or SEL_KNN (default: SEL_KNN)')
    parser.add_argument('--crop-lidar', action='store_true',
                        help='Drop points outside the ego lane before box association')
    parser.add_argument('--max-frames', type=int, default=None,
                        help='Stop after this many frames')
    args = parser.parse_args()

    setup_logging(verbose=args.verbose)

    # Configuration errors abort before any frame is processed
    config = FusionConfig(
        frame_rate=args.frame_rate,
        detector_type=args.detector_type,
        descriptor_type=args.descriptor_type,
        matcher_type=args.matcher_type,
        selector_type=args.selector_type,
        crop_lidar=args.crop_lidar
    ).validate()
    calibration = ProjectionCalibration.from_yaml(args.calibration)

    feature_extractor = OpenCvFeatureExtractor(config.detector_type, config.descriptor_type)
    descriptor_matcher = OpenCvDescriptorMatcher(
        config.descriptor_type, config.matcher_type, config.selector_type, config.knn_distance_ratio
    )
    detector = YoloDetector(
        model_path=args.model,
        confidence_threshold=config.yolo_confidence_threshold,
        iou_threshold=config.yolo_iou_threshold
    )

    sequence = find_sequence(args.data_dir)
    if args.max_frames is not None:
        sequence = sequence[:args.max_frames]

    logger.info("=" * 80)
    logger.info("CAMERA/LIDAR TTC")
    logger.info(f"Sequence: {args.data_dir} ({len(sequence)} frames)")
    logger.info(f"Keypoints: {config.detector_type}/{config.descriptor_type}, "
                f"matching: {config.matcher_type}/{config.selector_type}")
    logger.info("=" * 80)

    results: List[TTCEstimate] = []
    with TTCPipeline(
        LidarProjector(calibration),
        config=config,
        detector=detector,
        feature_extractor=feature_extractor,
        descriptor_matcher=descriptor_matcher,
        observer=results.append
    ) as pipeline:
        for image_path, lidar_path in sequence:
            image = cv2.imread(str(image_path))
            if image is None:
                logger.warning(f"Could not read {image_path}, skipping")
                continue
            logger.info(f"--- {image_path.name} ---")
            pipeline.process_frame(image, load_lidar_scan(lidar_path))

    lidar_ttcs = [r.ttc_lidar for r in results if r.ttc_lidar is not None]
    camera_ttcs = [r.ttc_camera for r in results if r.ttc_camera is not None]
    logger.info(f"Estimates: {len(results)} box pairs, "
                f"{len(lidar_ttcs)} LiDAR TTCs, {len(camera_ttcs)} camera TTCs")


if __name__ == '__main__':
    main()
