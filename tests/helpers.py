"""Shared record builders and a scripted fake detector for tests."""

import asyncio

from stonefusion.detectors.base import (
    BoundingBox,
    Composition,
    Location,
    Measurements,
    Morphology,
    RiskAssessment,
    StoneDetection,
)


def make_detection(
    confidence: float = 90.0,
    box: tuple[float, float, float, float] = (0.0, 0.0, 10.0, 10.0),
    length: float = 5.0,
    composition_type: str = "Uric Acid",
    shape: str = "Oval",
    severity: str = "low",
) -> StoneDetection:
    return StoneDetection(
        confidence=confidence,
        bounding_box=BoundingBox(*box),
        measurements=Measurements(length=length, width=3.0, area=12.0, volume=20.0, perimeter=15.0),
        composition=Composition(type=composition_type, probability=90.0, density=1500.0, hardness=4.0),
        morphology=Morphology(shape=shape, surface="Smooth", texture="Homogeneous", irregularity=0.3),
        location=Location(anatomical="Renal Pelvis", coordinates=(10.0, 20.0), depth=30.0),
        risk_assessment=RiskAssessment(severity=severity, urgency=3, complications={"Pain"}),
    )


class FakeDetector:
    """Minimal Detector protocol implementation with scripted behaviour."""

    def __init__(self, name, detections=(), delay=0.0, detect_error=None, init_error=None):
        self.name = name
        self.detections = list(detections)
        self.delay = delay
        self.detect_error = detect_error
        self.init_error = init_error
        self.calls = 0
        self.cancelled = False
        self.cleaned_up = False

    async def initialize(self) -> None:
        if self.init_error is not None:
            raise self.init_error

    async def detect(self, image):
        self.calls += 1
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.detect_error is not None:
            raise self.detect_error
        return list(self.detections)

    def cleanup(self) -> None:
        self.cleaned_up = True
