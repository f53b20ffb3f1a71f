"""
Camera-based TTC from the relative scale change of keypoint constellations.

For every pair of matched keypoints on the object, the ratio of their pixel
distance in the current frame to that in the previous frame measures the
object's scale change. The median ratio is robust to remaining mismatches.
"""

import logging
from typing import List, Sequence

import numpy as np

from ttc_fusion.gateway.data_types import Correspondence, Keypoint, keypoint_positions
from ttc_fusion.gateway.errors import DegenerateInputError

logger = logging.getLogger(__name__)


def compute_ttc_camera(
    kpts_prev: Sequence[Keypoint],
    kpts_curr: Sequence[Keypoint],
    kpt_matches: List[Correspondence],
    frame_rate: float,
    min_dist: float = 100.0
) -> float:
    """
    Compute TTC from keypoint distance ratios.

    Pairs (i, j) with i < j are skipped when the previous distance is
    numerically zero or the current distance is below min_dist.
    TTC = -dT / (1 - median(ratios)), dT = 1 / frame_rate.

    Args:
        kpts_prev: Previous-frame keypoints
        kpts_curr: Current-frame keypoints
        kpt_matches: Correspondences assigned to one object
        frame_rate: Camera frame rate in Hz
        min_dist: Minimum current-frame pixel distance of a pair

    Returns:
        TTC in seconds

    Raises:
        DegenerateInputError: If no pair survives or the median ratio is 1
    """
    if frame_rate <= 0:
        raise ValueError(f"frame_rate must be positive, got {frame_rate}")
    dt = 1.0 / frame_rate

    if len(kpt_matches) < 2:
        raise DegenerateInputError(f"Camera TTC needs at least 2 matches, got {len(kpt_matches)}")

    prev_pts = keypoint_positions(kpts_prev, (m.prev_idx for m in kpt_matches))
    curr_pts = keypoint_positions(kpts_curr, (m.curr_idx for m in kpt_matches))

    outer, inner = np.triu_indices(len(kpt_matches), k=1)
    dist_curr = np.linalg.norm(curr_pts[outer] - curr_pts[inner], axis=1)
    dist_prev = np.linalg.norm(prev_pts[outer] - prev_pts[inner], axis=1)

    valid = (dist_prev > np.finfo(np.float64).eps) & (dist_curr >= min_dist)
    dist_ratios = dist_curr[valid] / dist_prev[valid]

    if dist_ratios.size == 0:
        raise DegenerateInputError(
            f"Camera TTC undefined: no keypoint pair of {len(kpt_matches)} matches is at least {min_dist}px apart"
        )

    median_ratio = float(np.median(dist_ratios))
    if median_ratio == 1.0:
        raise DegenerateInputError("Camera TTC undefined: no relative scale change (median ratio is 1)")

    ttc = -dt / (1.0 - median_ratio)
    logger.debug(f"Camera TTC {ttc:.3f}s from {dist_ratios.size} ratios (median {median_ratio:.5f})")
    return ttc
