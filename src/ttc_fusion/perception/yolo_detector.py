"""
YOLO Detector - Object detection using YOLO.

This module implements the Detector interface using YOLO from ultralytics.
Box ids are assigned sequentially per frame; correspondence between frames
is established by keypoint voting, not by the detector.
"""

import logging
from typing import List, Optional

import numpy as np
from ultralytics import YOLO

from ttc_fusion.gateway.detector import Detector
from ttc_fusion.gateway.data_types import BoundingBox, DetectionBox

logger = logging.getLogger(__name__)


class YoloDetector(Detector):
    """YOLO-based road user detector."""

    # COCO class ID to name mapping for detectable objects
    DETECTION_CLASSES = {
        0: "person",
        1: "bicycle",
        2: "car",
        3: "motorcycle",
        5: "bus",
        7: "truck",
    }

    def __init__(
        self,
        model_path: str = 'yolo11n.pt',
        confidence_threshold: float = 0.2,
        iou_threshold: float = 0.4,
        device: Optional[str] = None
    ):
        """
        Initialize YOLO detector.

        Args:
            model_path: Path to YOLO model weights
            confidence_threshold: Minimum detection confidence
            iou_threshold: Non-maximum suppression IoU threshold
            device: Torch device ('cpu', 'cuda'); ultralytics default if None
        """
        self.model = YOLO(model_path)
        if device is not None:
            self.model.to(device)
        self.confidence_threshold = confidence_threshold
        self.iou_threshold = iou_threshold

        logger.info(f"YOLO model loaded: {model_path} on device: {device or 'default'}")

    def detect_objects(self, image: np.ndarray) -> List[DetectionBox]:
        """
        Detect road users in a camera image.

        Args:
            image: (H x W x 3) BGR image array

        Returns:
            Detection boxes with ids 0..N-1 in detection order
        """
        results = self.model.predict(
            image,
            conf=self.confidence_threshold,
            iou=self.iou_threshold,
            verbose=False  # Suppress YOLO logging
        )

        detections = []

        for result in results:
            boxes = result.boxes
            if boxes is None:
                continue

            for box in boxes:
                cls_id = int(box.cls.item()) if hasattr(box.cls, 'item') else int(box.cls[0])
                if cls_id not in self.DETECTION_CLASSES:
                    continue  # Skip unknown classes

                confidence = float(box.conf.item()) if hasattr(box.conf, 'item') else float(box.conf[0])
                x1, y1, x2, y2 = box.xyxy[0].tolist()

                detections.append(DetectionBox(
                    box_id=len(detections),
                    roi=BoundingBox(
                        x=float(x1),
                        y=float(y1),
                        width=float(x2 - x1),
                        height=float(y2 - y1)
                    ),
                    class_id=cls_id,
                    confidence=confidence
                ))

        logger.debug(f"Detected {len(detections)} objects in frame")
        return detections
