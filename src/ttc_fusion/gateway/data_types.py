"""
Data structures shared between the fusion core and its external collaborators.

Frames own all raw sensor data. Detection boxes only hold indices into the
owning frame's LiDAR array and correspondence list.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence
import numpy as np


# Column layout of a frame's LiDAR array (one RangePoint per row)
LIDAR_X, LIDAR_Y, LIDAR_Z, LIDAR_R = 0, 1, 2, 3


def empty_lidar_points() -> np.ndarray:
    """Return an empty (0 x 4) LiDAR array."""
    return np.empty((0, 4), dtype=np.float64)


@dataclass(frozen=True)
class Keypoint:
    """2D image keypoint."""
    x: float                # Pixel column
    y: float                # Pixel row
    size: float = 0.0       # Neighbourhood diameter
    response: float = 0.0   # Detector response strength

    @property
    def pt(self) -> np.ndarray:
        return np.array([self.x, self.y], dtype=np.float64)


@dataclass(frozen=True)
class Correspondence:
    """Keypoint match between the previous and the current frame."""
    prev_idx: int           # Index into previous-frame keypoints (query)
    curr_idx: int           # Index into current-frame keypoints (train)
    distance: float = 0.0   # Descriptor distance reported by the matcher


@dataclass(frozen=True)
class BoundingBox:
    """2D bounding box in image coordinates."""
    x: float                # Top-left x coordinate
    y: float                # Top-left y coordinate
    width: float            # Box width in pixels
    height: float           # Box height in pixels

    def contains(self, u: float, v: float) -> bool:
        """Half-open containment test: x <= u < x + width, y <= v < y + height."""
        return self.x <= u < self.x + self.width and self.y <= v < self.y + self.height

    def contains_points(self, uv: np.ndarray) -> np.ndarray:
        """
        Vectorised containment test.

        Args:
            uv: (N, 2) pixel coordinates

        Returns:
            (N,) boolean mask, False for NaN coordinates
        """
        u = uv[:, 0]
        v = uv[:, 1]
        return (
            (u >= self.x) & (u < self.x + self.width) &
            (v >= self.y) & (v < self.y + self.height)
        )

    def shrink(self, factor: float) -> 'BoundingBox':
        """
        Shrink the box about its centre.

        Args:
            factor: Fraction of width/height removed in total (half per side)

        Returns:
            New, smaller bounding box
        """
        return BoundingBox(
            x=self.x + factor * self.width / 2.0,
            y=self.y + factor * self.height / 2.0,
            width=self.width * (1.0 - factor),
            height=self.height * (1.0 - factor),
        )


@dataclass
class DetectionBox:
    """Detected object in one frame, with indices of its associated data."""
    box_id: int                         # Unique within the frame
    roi: BoundingBox                    # Region of interest in the image
    class_id: int = -1                  # Detector class ID
    confidence: float = 0.0             # Detection confidence (0-1)
    lidar_point_indices: List[int] = field(default_factory=list)
    kpt_match_indices: List[int] = field(default_factory=list)


@dataclass
class Frame:
    """All sensor data and derived associations for one time step."""
    lidar_points: np.ndarray = field(default_factory=empty_lidar_points)  # (N x 4) x, y, z, r
    keypoints: List[Keypoint] = field(default_factory=list)
    descriptors: Optional[np.ndarray] = None
    kpt_matches: List[Correspondence] = field(default_factory=list)     # previous frame -> this frame
    bounding_boxes: List[DetectionBox] = field(default_factory=list)
    bb_matches: Dict[int, int] = field(default_factory=dict)            # previous box id -> this frame's box id
    camera_image: Optional[np.ndarray] = None

    def get_box(self, box_id: int) -> Optional[DetectionBox]:
        for box in self.bounding_boxes:
            if box.box_id == box_id:
                return box
        return None

    def box_lidar_points(self, box: DetectionBox) -> np.ndarray:
        """Resolve a box's point indices to an (M x 4) array."""
        if not box.lidar_point_indices:
            return empty_lidar_points()
        return self.lidar_points[np.asarray(box.lidar_point_indices, dtype=np.intp)]

    def box_kpt_matches(self, box: DetectionBox) -> List[Correspondence]:
        """Resolve a box's match indices to correspondences."""
        return [self.kpt_matches[i] for i in box.kpt_match_indices]


@dataclass
class TTCEstimate:
    """Camera and LiDAR TTC for one matched box pair."""
    prev_box_id: int
    curr_box_id: int
    ttc_lidar: Optional[float] = None     # Seconds, None if undefined
    ttc_camera: Optional[float] = None    # Seconds, None if undefined
    lidar_error: Optional[str] = None     # Reason ttc_lidar is None
    camera_error: Optional[str] = None    # Reason ttc_camera is None
    num_lidar_points: int = 0             # Points in the current box
    num_kpt_matches: int = 0              # Filtered matches in the current box


def keypoint_positions(keypoints: Sequence[Keypoint], indices: Iterable[int]) -> np.ndarray:
    """
    Gather keypoint pixel positions.

    Args:
        keypoints: Keypoints of one frame
        indices: Positions into keypoints

    Returns:
        (N, 2) array of [x, y]
    """
    positions = [(keypoints[i].x, keypoints[i].y) for i in indices]
    if not positions:
        return np.empty((0, 2), dtype=np.float64)
    return np.asarray(positions, dtype=np.float64)
