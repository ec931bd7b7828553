"""
Overlap grouping of detections from several detectors.

Greedy single-pass clustering: records are visited in input order and each
unclaimed record starts a new cluster that absorbs every later unclaimed
record whose box overlaps it by more than the IoU threshold. A record joins
the first cluster seed it overlaps sufficiently, not necessarily its best
match, so the result depends on input order.
"""

import logging
from typing import Sequence

from stonefusion.detectors.base import BoundingBox, StoneDetection

logger = logging.getLogger(__name__)

DEFAULT_IOU_THRESHOLD = 0.3


def compute_iou(box_a: BoundingBox, box_b: BoundingBox) -> float:
    """Compute Intersection over Union of two boxes.

    Args:
        box_a, box_b: Boxes in (x, y, width, height) form.

    Returns:
        IoU value in [0, 1]; 0.0 when the boxes do not overlap.
    """
    x1 = max(box_a.x, box_b.x)
    y1 = max(box_a.y, box_b.y)
    x2 = min(box_a.x2, box_b.x2)
    y2 = min(box_a.y2, box_b.y2)

    if x2 <= x1 or y2 <= y1:
        return 0.0

    intersection = (x2 - x1) * (y2 - y1)
    union = box_a.area + box_b.area - intersection
    return intersection / union


def group_overlapping(
    detections: Sequence[StoneDetection],
    iou_threshold: float = DEFAULT_IOU_THRESHOLD,
) -> list[list[StoneDetection]]:
    """
    Partition detections into clusters of mutually overlapping records.

    Every input record appears in exactly one cluster and no cluster is
    empty. Clusters are ordered by their seed's input position.

    Args:
        detections: Concatenated outputs of all detectors.
        iou_threshold: A record joins a seed's cluster when IoU > threshold.

    Returns:
        List of clusters; empty for empty input.
    """
    clusters: list[list[StoneDetection]] = []
    used: set[int] = set()

    for i, seed in enumerate(detections):
        if i in used:
            continue

        cluster = [seed]
        used.add(i)

        for j in range(i + 1, len(detections)):
            if j in used:
                continue
            iou = compute_iou(seed.bounding_box, detections[j].bounding_box)
            if iou > iou_threshold:
                cluster.append(detections[j])
                used.add(j)

        clusters.append(cluster)

    logger.debug(
        f"Grouped {len(detections)} detections into {len(clusters)} clusters "
        f"(iou>{iou_threshold:.2f})"
    )
    return clusters
