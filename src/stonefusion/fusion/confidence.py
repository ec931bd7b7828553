"""
Ensemble confidence aggregation.

The overall confidence is a weighted mean of each detector's mean
confidence and the fused list's mean confidence:

    overall = (sum_d avg(d) * w_d + avg(fused) * w_f) / (sum_d w_d + w_f)

where avg() of an empty list is 0. Weights come from configuration, keyed
by detector name, so any number of detectors can take part.
"""

from typing import Mapping, Sequence

import numpy as np

from stonefusion.detectors.base import StoneDetection

DEFAULT_DETECTOR_WEIGHTS = {"capsule_net": 0.6, "yolo": 0.4}
DEFAULT_FUSED_WEIGHT = 0.5
DEFAULT_WEIGHT = 1.0


def mean_confidence(detections: Sequence[StoneDetection]) -> float:
    """Mean confidence of a detection list, 0.0 when empty."""
    if not detections:
        return 0.0
    return float(np.mean([d.confidence for d in detections]))


def ensemble_confidence(
    per_detector: Mapping[str, Sequence[StoneDetection]],
    fused: Sequence[StoneDetection],
    detector_weights: Mapping[str, float] | None = None,
    fused_weight: float = DEFAULT_FUSED_WEIGHT,
    default_weight: float = DEFAULT_WEIGHT,
) -> float:
    """
    Compute one confidence for a whole analysis.

    Args:
        per_detector: Raw detections keyed by detector name.
        fused: Fused detections.
        detector_weights: Weight per detector name.
        fused_weight: Weight of the fused list's mean confidence.
        default_weight: Weight for detectors missing from detector_weights.

    Returns:
        Overall confidence on the same [0, 100] scale as the records,
        or 0.0 when there are no fused detections.
    """
    if not fused:
        return 0.0

    weights = DEFAULT_DETECTOR_WEIGHTS if detector_weights is None else detector_weights

    weighted_sum = mean_confidence(fused) * fused_weight
    total_weight = fused_weight
    for name, detections in per_detector.items():
        weight = weights.get(name, default_weight)
        weighted_sum += mean_confidence(detections) * weight
        total_weight += weight

    if total_weight <= 0:
        raise ValueError("Ensemble weights must sum to a positive value")
    return weighted_sum / total_weight
