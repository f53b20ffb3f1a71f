"""
Bounding box correspondence between consecutive frames.

Each previous-frame box votes for the current-frame box that shares the most
keypoint correspondences with it.
"""

import logging
from typing import Dict, List

import numpy as np

from ttc_fusion.gateway.data_types import Correspondence, Frame, keypoint_positions

logger = logging.getLogger(__name__)


def match_bounding_boxes(
    kpt_matches: List[Correspondence],
    prev_frame: Frame,
    curr_frame: Frame
) -> Dict[int, int]:
    """
    Link previous-frame boxes to current-frame boxes by keypoint voting.

    A correspondence votes for the pair (prev box, curr box) when its previous
    keypoint lies inside the previous box and its current keypoint inside the
    current box. Each previous box is linked to the current box with the most
    votes; ties go to the first such box in current-frame order. Previous
    boxes without any vote are left out of the mapping.

    Args:
        kpt_matches: Correspondences from prev_frame keypoints to curr_frame keypoints
        prev_frame: Previous frame (boxes and keypoints)
        curr_frame: Current frame (boxes and keypoints)

    Returns:
        Mapping previous box id -> current box id
    """
    prev_pts = keypoint_positions(prev_frame.keypoints, (m.prev_idx for m in kpt_matches))
    curr_pts = keypoint_positions(curr_frame.keypoints, (m.curr_idx for m in kpt_matches))

    curr_masks = [box.roi.contains_points(curr_pts) for box in curr_frame.bounding_boxes]

    bb_matches: Dict[int, int] = {}
    for prev_box in prev_frame.bounding_boxes:
        in_prev = prev_box.roi.contains_points(prev_pts)

        best_box_id = None
        best_votes = 0
        for curr_box, in_curr in zip(curr_frame.bounding_boxes, curr_masks):
            votes = int(np.count_nonzero(in_prev & in_curr))
            if votes > best_votes:
                best_box_id = curr_box.box_id
                best_votes = votes

        if best_box_id is None:
            logger.debug(f"Box {prev_box.box_id} has no correspondence votes, left unmatched")
            continue

        bb_matches[prev_box.box_id] = best_box_id
        logger.debug(f"Box {prev_box.box_id} -> {best_box_id} ({best_votes} votes)")

    return bb_matches
