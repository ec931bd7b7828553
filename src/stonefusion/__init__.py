"""
stonefusion: multi-detector ensemble fusion for kidney stone detection.

This package provides tools to:
1. Run pluggable stone detectors concurrently over one image
2. Group overlapping detections and fuse each group by confidence weighting
3. Score the whole analysis with a weighted ensemble confidence
4. Batch-analyze image sets from the command line
"""

__version__ = "0.1.0"

from stonefusion.detectors import (
    BaseDetector,
    Detector,
    DetectorConfig,
    StoneDetection,
    get_detector,
    register_detector,
)
from stonefusion.ensemble import EnsembleDetector, EnsembleResult
from stonefusion.errors import (
    DegenerateFusion,
    DetectorFailed,
    EnsembleError,
    ModelUnavailable,
    NotInitialized,
)

__all__ = [
    "__version__",
    "BaseDetector",
    "Detector",
    "DetectorConfig",
    "StoneDetection",
    "get_detector",
    "register_detector",
    "EnsembleDetector",
    "EnsembleResult",
    "DegenerateFusion",
    "DetectorFailed",
    "EnsembleError",
    "ModelUnavailable",
    "NotInitialized",
]
