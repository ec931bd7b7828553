"""
Detector registry for building detectors from configuration.

Any class satisfying the Detector protocol can be registered, whether or not
it derives from BaseDetector; it must accept a DetectorConfig as its only
constructor argument. The registry maps type names to classes. Instances are
always created on demand and owned by the engine that built them.
"""

import inspect
from typing import Callable, Type

from stonefusion.detectors.base import Detector, DetectorConfig

DETECTOR_REGISTRY: dict[str, Type[Detector]] = {}

_REQUIRED_COROUTINES = ("initialize", "detect")


def _check_detector_class(cls: type) -> None:
    if not inspect.isclass(cls):
        raise TypeError(f"Only classes can be registered as detectors, got {cls!r}")
    missing = [
        attr for attr in _REQUIRED_COROUTINES
        if not callable(getattr(cls, attr, None))
    ]
    if missing:
        raise TypeError(
            f"{cls.__name__} does not implement the Detector protocol: "
            f"missing {', '.join(missing)}"
        )


def register_detector(name: str) -> Callable[[Type[Detector]], Type[Detector]]:
    """
    Register a detector class under a config type name.

    Example:
        ```python
        @register_detector("yolo")
        class YOLODetector(SimulatedDetector):
            ...
        ```

        Then in the ensemble config:
        ```yaml
        detectors:
          - type: yolo
        ```

    Raises:
        ValueError: If the name is taken.
        TypeError: If the class lacks initialize()/detect().
    """

    def decorator(cls: Type[Detector]) -> Type[Detector]:
        existing = DETECTOR_REGISTRY.get(name)
        if existing is not None:
            raise ValueError(
                f"Detector type '{name}' is already taken by {existing.__name__}"
            )
        _check_detector_class(cls)
        DETECTOR_REGISTRY[name] = cls
        return cls

    return decorator


def get_detector(config: DetectorConfig | dict) -> Detector:
    """
    Build a new, uninitialized detector from configuration.

    Args:
        config: DetectorConfig or a dict with at least a 'type' key.

    Raises:
        KeyError: If the type is not registered.
    """
    if isinstance(config, dict):
        config = DetectorConfig(**config)

    try:
        detector_cls = DETECTOR_REGISTRY[config.type]
    except KeyError:
        raise KeyError(
            f"Unknown detector type '{config.type}'. "
            f"Registered: {sorted(DETECTOR_REGISTRY)}"
        ) from None

    detector = detector_cls(config)
    if not getattr(detector, "name", None):
        detector.name = config.name
    return detector


def list_detectors() -> list[str]:
    """Registered detector type names, in registration order."""
    return list(DETECTOR_REGISTRY)
