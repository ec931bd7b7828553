"""
Detector module for stone detection abstraction.

This module provides:
- Detector: Protocol the ensemble engine depends on
- BaseDetector: Abstract base class owning the initialize/detect lifecycle
- StoneDetection: Immutable detection record and its sub-structures
- register_detector: Decorator to register new detector implementations
- get_detector: Factory function to instantiate detectors from config
"""

from stonefusion.detectors.base import (
    BaseDetector,
    BoundingBox,
    Composition,
    Detector,
    DetectorConfig,
    DetectorStatus,
    Location,
    Measurements,
    Morphology,
    RiskAssessment,
    Severity,
    StoneDetection,
)
from stonefusion.detectors.registry import (
    DETECTOR_REGISTRY,
    get_detector,
    list_detectors,
    register_detector,
)

# Import implementations to trigger registration
from stonefusion.detectors import capsule_net  # noqa: F401
from stonefusion.detectors import yolo  # noqa: F401

__all__ = [
    "BaseDetector",
    "BoundingBox",
    "Composition",
    "Detector",
    "DetectorConfig",
    "DetectorStatus",
    "Location",
    "Measurements",
    "Morphology",
    "RiskAssessment",
    "Severity",
    "StoneDetection",
    "DETECTOR_REGISTRY",
    "get_detector",
    "list_detectors",
    "register_detector",
]
