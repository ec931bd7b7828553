"""
Ensemble fusion: overlap grouping, weighted fusion, confidence aggregation.
"""

from stonefusion.fusion.confidence import (
    DEFAULT_DETECTOR_WEIGHTS,
    DEFAULT_FUSED_WEIGHT,
    ensemble_confidence,
    mean_confidence,
)
from stonefusion.fusion.overlap import (
    DEFAULT_IOU_THRESHOLD,
    compute_iou,
    group_overlapping,
)
from stonefusion.fusion.weighted import (
    DegeneratePolicy,
    fuse_detections,
    weighted_fusion,
)

__all__ = [
    "DEFAULT_DETECTOR_WEIGHTS",
    "DEFAULT_FUSED_WEIGHT",
    "DEFAULT_IOU_THRESHOLD",
    "DegeneratePolicy",
    "compute_iou",
    "ensemble_confidence",
    "fuse_detections",
    "group_overlapping",
    "mean_confidence",
    "weighted_fusion",
]
