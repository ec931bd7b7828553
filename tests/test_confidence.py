"""Tests for the ensemble confidence aggregator."""

import pytest

from stonefusion.fusion.confidence import ensemble_confidence, mean_confidence

from helpers import make_detection


def _with_confidences(*values):
    return [make_detection(confidence=v) for v in values]


def test_mean_confidence_of_empty_list_is_zero() -> None:
    assert mean_confidence([]) == 0.0


def test_mean_confidence() -> None:
    assert mean_confidence(_with_confidences(80.0, 90.0, 100.0)) == pytest.approx(90.0)


def test_weighted_ensemble_confidence() -> None:
    per_detector = {
        "capsule_net": _with_confidences(85.0, 95.0),  # avg 90
        "yolo": _with_confidences(80.0),
    }
    fused = _with_confidences(86.0, 90.0)  # avg 88

    overall = ensemble_confidence(
        per_detector, fused, {"capsule_net": 0.6, "yolo": 0.4}, fused_weight=0.5
    )

    assert overall == pytest.approx((90 * 0.6 + 80 * 0.4 + 88 * 0.5) / 1.5)


def test_default_weights_match_two_detector_setup() -> None:
    per_detector = {"capsule_net": _with_confidences(90.0), "yolo": _with_confidences(80.0)}
    overall = ensemble_confidence(per_detector, _with_confidences(88.0))
    assert overall == pytest.approx(130.0 / 1.5)


def test_no_fused_detections_gives_zero() -> None:
    assert ensemble_confidence({"capsule_net": [], "yolo": []}, []) == 0.0


def test_silent_detector_lowers_confidence() -> None:
    """A detector that found nothing still counts in the weighted average."""

    per_detector = {"capsule_net": _with_confidences(90.0), "yolo": []}
    overall = ensemble_confidence(per_detector, _with_confidences(90.0))
    assert overall == pytest.approx((90 * 0.6 + 0 * 0.4 + 90 * 0.5) / 1.5)


def test_unlisted_detector_uses_default_weight() -> None:
    """Detectors missing from the weight table fall back to default_weight."""

    per_detector = {"a": _with_confidences(60.0), "b": _with_confidences(90.0)}
    overall = ensemble_confidence(
        per_detector,
        _with_confidences(75.0),
        detector_weights={"a": 2.0},
        fused_weight=1.0,
        default_weight=1.0,
    )
    assert overall == pytest.approx((60 * 2 + 90 * 1 + 75 * 1) / 4.0)


def test_generalizes_to_three_detectors() -> None:
    per_detector = {
        "a": _with_confidences(90.0),
        "b": _with_confidences(80.0),
        "c": _with_confidences(70.0),
    }
    overall = ensemble_confidence(
        per_detector,
        _with_confidences(80.0),
        detector_weights={"a": 1.0, "b": 1.0, "c": 1.0},
        fused_weight=1.0,
    )
    assert overall == pytest.approx(80.0)
