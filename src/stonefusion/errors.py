"""
Exception types raised by the ensemble engine and its detectors.

- ModelUnavailable: a detector failed to initialize (asset loading etc.)
- NotInitialized: detect()/analyze() called before initialize() succeeded
- DegenerateFusion: a cluster had zero total confidence weight
- DetectorFailed: a detector raised while running inference
"""


class EnsembleError(Exception):
    """Base class for all stonefusion errors."""


class ModelUnavailable(EnsembleError):
    """A detector could not be initialized."""

    def __init__(self, detector_name: str, reason: str = "") -> None:
        self.detector_name = detector_name
        self.reason = reason
        message = f"Detector '{detector_name}' is unavailable"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class NotInitialized(EnsembleError):
    """Inference was requested before initialize() completed."""


class DegenerateFusion(EnsembleError):
    """A cluster cannot be fused because its confidences sum to zero."""


class DetectorFailed(EnsembleError):
    """A detector raised during detect()."""

    def __init__(self, detector_name: str, reason: str = "") -> None:
        self.detector_name = detector_name
        self.reason = reason
        message = f"Detector '{detector_name}' failed"
        if reason:
            message += f": {reason}"
        super().__init__(message)
