"""
Confidence-weighted fusion of a detection cluster.

Numeric fields (confidence, box components, measurements) become the
confidence-weighted mean over the cluster, each record weighted by its own
top-level confidence. Categorical sub-structures (composition, morphology,
location, risk assessment) are copied whole from the most confident record,
the first one on ties.
"""

import logging
from dataclasses import replace
from enum import Enum
from typing import Sequence

import numpy as np

from stonefusion.detectors.base import BoundingBox, Measurements, StoneDetection
from stonefusion.errors import DegenerateFusion
from stonefusion.fusion.overlap import DEFAULT_IOU_THRESHOLD, group_overlapping

logger = logging.getLogger(__name__)


class DegeneratePolicy(str, Enum):
    """What to do with a cluster whose confidences sum to zero."""
    RAISE = "raise"
    UNWEIGHTED = "unweighted"


def _numeric_row(detection: StoneDetection) -> list[float]:
    box = detection.bounding_box
    m = detection.measurements
    return [
        detection.confidence,
        box.x, box.y, box.width, box.height,
        m.length, m.width, m.area, m.volume, m.perimeter,
    ]


def weighted_fusion(
    cluster: Sequence[StoneDetection],
    degenerate_policy: DegeneratePolicy | str = DegeneratePolicy.RAISE,
) -> StoneDetection:
    """
    Collapse one cluster into a single consensus record.

    A single-record cluster is returned unchanged (apart from detected=True),
    whatever its confidence.

    Args:
        cluster: Non-empty group of overlapping detections.
        degenerate_policy: Behaviour when total confidence is zero.

    Returns:
        A new StoneDetection; inputs are not modified.

    Raises:
        ValueError: If the cluster is empty.
        DegenerateFusion: If total confidence is zero under the RAISE policy.
    """
    if not cluster:
        raise ValueError("Cannot fuse an empty cluster")
    policy = DegeneratePolicy(degenerate_policy)

    if len(cluster) == 1:
        return replace(cluster[0], detected=True)

    values = np.array([_numeric_row(d) for d in cluster], dtype=np.float64)
    weights = values[:, 0]
    total = weights.sum()

    if total > 0:
        fused = weights @ values / total
    elif policy is DegeneratePolicy.UNWEIGHTED:
        logger.warning(
            f"Cluster of {len(cluster)} detections has zero total confidence; "
            "using unweighted mean"
        )
        fused = values.mean(axis=0)
    else:
        raise DegenerateFusion(
            f"Cluster of {len(cluster)} detections has zero total confidence"
        )

    best = cluster[int(np.argmax(weights))]
    fused = [float(v) for v in fused]

    return StoneDetection(
        confidence=min(max(fused[0], 0.0), 100.0),
        bounding_box=BoundingBox(*fused[1:5]),
        measurements=Measurements(*fused[5:10]),
        composition=best.composition,
        morphology=best.morphology,
        location=best.location,
        risk_assessment=best.risk_assessment,
        detected=True,
    )


def fuse_detections(
    detections: Sequence[StoneDetection],
    iou_threshold: float = DEFAULT_IOU_THRESHOLD,
    degenerate_policy: DegeneratePolicy | str = DegeneratePolicy.RAISE,
) -> list[StoneDetection]:
    """Group overlapping detections and fuse each cluster, in cluster order."""
    clusters = group_overlapping(detections, iou_threshold)
    return [weighted_fusion(cluster, degenerate_policy) for cluster in clusters]
