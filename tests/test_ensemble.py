"""Tests for the ensemble engine."""

import asyncio
import time

import pytest
from PIL import Image

from stonefusion.config import EnsembleConfig
from stonefusion.detectors import DetectorStatus
from stonefusion.ensemble import EnsembleDetector, EnsembleResult
from stonefusion.errors import (
    DegenerateFusion,
    DetectorFailed,
    ModelUnavailable,
    NotInitialized,
)

from helpers import FakeDetector, make_detection


def _image() -> Image.Image:
    return Image.new("RGBA", (512, 512), (30, 30, 30, 255))


def _run(engine: EnsembleDetector, image=None) -> EnsembleResult:
    async def go():
        await engine.initialize()
        return await engine.analyze(image if image is not None else _image())

    return asyncio.run(go())


def test_overlapping_detections_fuse_into_one() -> None:
    """Overlapping boxes from two detectors should fuse into one record."""

    a = make_detection(confidence=95.0, box=(100, 100, 50, 50))
    b = make_detection(confidence=85.0, box=(110, 105, 55, 48))
    engine = EnsembleDetector([
        FakeDetector("capsule_net", [a]),
        FakeDetector("yolo", [b]),
    ])

    result = _run(engine)

    assert result.detected is True
    assert len(result.fused_detections) == 1
    fused_conf = (95 * 95 + 85 * 85) / 180
    assert result.fused_detections[0].confidence == pytest.approx(fused_conf)
    assert result.per_detector_results == {"capsule_net": [a], "yolo": [b]}
    assert result.overall_confidence == pytest.approx(
        (95 * 0.6 + 85 * 0.4 + fused_conf * 0.5) / 1.5
    )
    assert result.elapsed_time >= 0.0


def test_disjoint_detections_stay_separate() -> None:
    a = make_detection(confidence=95.0, box=(0, 0, 20, 20))
    b = make_detection(confidence=85.0, box=(300, 300, 20, 20))
    engine = EnsembleDetector([FakeDetector("capsule_net", [a]), FakeDetector("yolo", [b])])

    result = _run(engine)

    assert result.fused_detections == [a, b]


def test_no_detections_reports_not_detected() -> None:
    engine = EnsembleDetector([FakeDetector("capsule_net"), FakeDetector("yolo")])

    result = _run(engine)

    assert result.fused_detections == []
    assert result.overall_confidence == 0.0
    assert result.detected is False
    assert result.per_detector_results == {"capsule_net": [], "yolo": []}


def test_analyze_before_initialize_raises() -> None:
    engine = EnsembleDetector([FakeDetector("capsule_net")])
    with pytest.raises(NotInitialized):
        asyncio.run(engine.analyze(_image()))


def test_initialize_failure_is_model_unavailable() -> None:
    engine = EnsembleDetector([
        FakeDetector("capsule_net", init_error=RuntimeError("weights corrupt")),
        FakeDetector("yolo"),
    ])

    with pytest.raises(ModelUnavailable) as excinfo:
        asyncio.run(engine.initialize())

    assert excinfo.value.detector_name == "capsule_net"
    assert engine.is_initialized is False
    with pytest.raises(NotInitialized):
        asyncio.run(engine.analyze(_image()))


def test_detector_failure_aborts_and_cancels_siblings() -> None:
    """One failing detector should abort the analysis and cancel the rest."""

    slow = FakeDetector("capsule_net", [make_detection()], delay=10.0)
    broken = FakeDetector("yolo", detect_error=RuntimeError("gpu lost"))
    engine = EnsembleDetector([slow, broken])

    start = time.perf_counter()
    with pytest.raises(DetectorFailed) as excinfo:
        _run(engine)

    assert excinfo.value.detector_name == "yolo"
    assert slow.cancelled is True
    assert time.perf_counter() - start < 5.0


def test_detector_raising_cancelled_error_is_a_detector_failure() -> None:
    """A CancelledError raised by a detector itself is reported as its failure."""

    rogue = FakeDetector("a", detect_error=asyncio.CancelledError())
    slow = FakeDetector("b", [make_detection()], delay=0.05)
    engine = EnsembleDetector([rogue, slow])

    with pytest.raises(DetectorFailed) as excinfo:
        _run(engine)

    assert excinfo.value.detector_name == "a"
    assert "cancelled" in str(excinfo.value)


def test_initialize_raising_cancelled_error_is_model_unavailable() -> None:
    engine = EnsembleDetector([
        FakeDetector("a", init_error=asyncio.CancelledError()),
        FakeDetector("b"),
    ])

    with pytest.raises(ModelUnavailable) as excinfo:
        asyncio.run(engine.initialize())

    assert excinfo.value.detector_name == "a"
    assert engine.is_initialized is False


def test_cancelling_analysis_propagates_cancellation() -> None:
    """Cancelling the caller must still cancel, not turn into a detector error."""

    slow = FakeDetector("a", delay=10.0)
    engine = EnsembleDetector([slow, FakeDetector("b", delay=10.0)])

    async def go():
        await engine.initialize()
        task = asyncio.ensure_future(engine.analyze(_image()))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(go())
    assert slow.cancelled is True

def test_detectors_run_concurrently() -> None:
    """Three 0.3s detectors should finish in well under 0.9s."""

    engine = EnsembleDetector([
        FakeDetector("a", delay=0.3),
        FakeDetector("b", delay=0.3),
        FakeDetector("c", delay=0.3),
    ])

    result = _run(engine)

    assert result.elapsed_time < 0.8


def test_degenerate_policy_applies_to_engine() -> None:
    zero_a = make_detection(confidence=0.0, box=(0, 0, 10, 10), length=2.0)
    zero_b = make_detection(confidence=0.0, box=(1, 1, 10, 10), length=4.0)

    strict = EnsembleDetector([FakeDetector("a", [zero_a]), FakeDetector("b", [zero_b])])
    with pytest.raises(DegenerateFusion):
        _run(strict)

    lenient = EnsembleDetector(
        [FakeDetector("a", [zero_a]), FakeDetector("b", [zero_b])],
        EnsembleConfig.from_dict({"fusion": {"degenerate_policy": "unweighted"}}),
    )
    result = _run(lenient)
    assert result.fused_detections[0].measurements.length == pytest.approx(3.0)


def test_duplicate_detector_names_rejected() -> None:
    with pytest.raises(ValueError, match="Duplicate"):
        EnsembleDetector([FakeDetector("yolo"), FakeDetector("yolo")])


def test_empty_detector_list_rejected() -> None:
    with pytest.raises(ValueError):
        EnsembleDetector([])


def test_model_comparison() -> None:
    engine = EnsembleDetector([
        FakeDetector("capsule_net", [make_detection(confidence=90.0, box=(0, 0, 10, 10)),
                                     make_detection(confidence=96.0, box=(200, 200, 10, 10))]),
        FakeDetector("yolo"),
    ])

    comparison = _run(engine).model_comparison()

    assert comparison["capsule_net"] == {"detections": 2, "avg_confidence": pytest.approx(93.0)}
    assert comparison["yolo"] == {"detections": 0, "avg_confidence": 0.0}


def test_result_to_dict_is_json_ready() -> None:
    import json

    engine = EnsembleDetector([FakeDetector("capsule_net", [make_detection()])])
    data = _run(engine).to_dict()

    assert data["detected"] is True
    assert len(data["fused_detections"]) == 1
    json.dumps(data)


def test_from_config_builds_registered_detectors() -> None:
    fast = {"load_delay": 0.0, "inference_delay": 0.0, "device": "cpu", "detection_rate": 1.0}
    engine = EnsembleDetector.from_config({
        "detectors": [
            {"type": "capsule_net", "params": {**fast, "seed": 1}},
            {"type": "yolo", "params": {**fast, "seed": 2}},
        ],
    })
    assert set(engine.model_status.values()) == {DetectorStatus.LOADING}

    result = _run(engine)

    assert engine.model_status == {
        "capsule_net": DetectorStatus.READY,
        "yolo": DetectorStatus.READY,
    }
    assert len(result.per_detector_results["yolo"]) == 1
    assert 1 <= len(result.per_detector_results["capsule_net"]) <= 3
    assert 1 <= len(result.fused_detections) <= 4


def test_enhancement_runs_before_detection_without_touching_input() -> None:
    seen = []

    class RecordingDetector(FakeDetector):
        async def detect(self, image):
            seen.append(image)
            return []

    image = _image()
    before = image.tobytes()
    engine = EnsembleDetector(
        [RecordingDetector("a")],
        EnsembleConfig.from_dict({"preprocess": {"enhance": True, "gain": 1.5}}),
    )

    _run(engine, image)

    assert seen[0] is not image
    assert seen[0].getpixel((100, 100)) == (45, 45, 45, 255)
    assert image.tobytes() == before


def test_cleanup_resets_engine() -> None:
    detector = FakeDetector("a")
    engine = EnsembleDetector([detector])
    _run(engine)

    engine.cleanup()

    assert detector.cleaned_up is True
    assert engine.is_initialized is False
