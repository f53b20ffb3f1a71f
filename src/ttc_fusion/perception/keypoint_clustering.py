"""
Keypoint match assignment and outlier removal for one detection box.
"""

import logging
from typing import List, Sequence

import numpy as np

from ttc_fusion.gateway.data_types import Correspondence, DetectionBox, Keypoint, keypoint_positions
from ttc_fusion.gateway.errors import DegenerateInputError

logger = logging.getLogger(__name__)


def cluster_kpt_matches_with_roi(
    bounding_box: DetectionBox,
    kpts_prev: Sequence[Keypoint],
    kpts_curr: Sequence[Keypoint],
    kpt_matches: List[Correspondence],
    outlier_ratio: float = 1.5
) -> List[int]:
    """
    Assign correspondences to a box and drop displacement outliers.

    A correspondence is assigned when its current keypoint lies inside the
    box. Among the assigned ones, any whose keypoint displacement is at least
    outlier_ratio times the mean displacement is removed. The mean is
    computed once, before removal.

    Args:
        bounding_box: Current-frame box; its kpt_match_indices are replaced
        kpts_prev: Previous-frame keypoints
        kpts_curr: Current-frame keypoints
        kpt_matches: Correspondences previous -> current
        outlier_ratio: Removal threshold as a multiple of the mean displacement

    Returns:
        Surviving indices into kpt_matches

    Raises:
        DegenerateInputError: If no correspondence falls inside the box
    """
    roi = bounding_box.roi
    assigned = [
        i for i, match in enumerate(kpt_matches)
        if roi.contains(kpts_curr[match.curr_idx].x, kpts_curr[match.curr_idx].y)
    ]

    if not assigned:
        bounding_box.kpt_match_indices = []
        raise DegenerateInputError(f"Insufficient matches: box {bounding_box.box_id} contains no keypoint matches")

    prev_pts = keypoint_positions(kpts_prev, (kpt_matches[i].prev_idx for i in assigned))
    curr_pts = keypoint_positions(kpts_curr, (kpt_matches[i].curr_idx for i in assigned))
    displacements = np.linalg.norm(curr_pts - prev_pts, axis=1)
    threshold = outlier_ratio * float(displacements.mean())

    survivors = [i for i, dist in zip(assigned, displacements) if dist < threshold]
    bounding_box.kpt_match_indices = survivors

    logger.debug(
        f"Box {bounding_box.box_id}: {len(survivors)} of {len(assigned)} matches kept "
        f"(mean displacement {threshold / outlier_ratio:.2f}px)"
    )
    return survivors
