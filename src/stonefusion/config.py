"""
Ensemble configuration.

Configuration is a YAML file with four sections:

    detectors:   list of DetectorConfig dicts (type, name, model_path, params)
    fusion:      iou_threshold, degenerate_policy
    confidence:  detector_weights, fused_weight, default_weight
    preprocess:  enhance, gain

Every section is optional; missing values fall back to the defaults below.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from stonefusion.detectors.base import DetectorConfig
from stonefusion.fusion.confidence import (
    DEFAULT_DETECTOR_WEIGHTS,
    DEFAULT_FUSED_WEIGHT,
    DEFAULT_WEIGHT,
)
from stonefusion.fusion.overlap import DEFAULT_IOU_THRESHOLD
from stonefusion.fusion.weighted import DegeneratePolicy


def _default_detectors() -> list[DetectorConfig]:
    return [DetectorConfig(type="capsule_net"), DetectorConfig(type="yolo")]


@dataclass
class FusionConfig:
    """Overlap grouping and weighted fusion settings."""

    iou_threshold: float = DEFAULT_IOU_THRESHOLD
    degenerate_policy: DegeneratePolicy = DegeneratePolicy.RAISE

    def __post_init__(self):
        self.degenerate_policy = DegeneratePolicy(self.degenerate_policy)
        if not 0.0 <= self.iou_threshold < 1.0:
            raise ValueError(
                f"iou_threshold must be in [0, 1), got {self.iou_threshold}"
            )


@dataclass
class ConfidenceConfig:
    """Weights for the ensemble confidence aggregator."""

    detector_weights: dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_DETECTOR_WEIGHTS)
    )
    fused_weight: float = DEFAULT_FUSED_WEIGHT
    default_weight: float = DEFAULT_WEIGHT  # For detectors not in detector_weights

    def __post_init__(self):
        if self.detector_weights is None:
            self.detector_weights = {}
        for name, weight in self.detector_weights.items():
            if weight < 0:
                raise ValueError(f"Weight for detector '{name}' is negative: {weight}")
        if self.default_weight < 0:
            raise ValueError(f"default_weight is negative: {self.default_weight}")
        if self.fused_weight <= 0:
            raise ValueError(f"fused_weight must be positive, got {self.fused_weight}")


@dataclass
class PreprocessConfig:
    """Whole-image enhancement applied before detection."""

    enhance: bool = False
    gain: float = 1.2

    def __post_init__(self):
        if self.gain <= 0:
            raise ValueError(f"gain must be positive, got {self.gain}")


@dataclass
class EnsembleConfig:
    """Root configuration for an EnsembleDetector."""

    detectors: list[DetectorConfig] = field(default_factory=_default_detectors)
    fusion: FusionConfig = field(default_factory=FusionConfig)
    confidence: ConfidenceConfig = field(default_factory=ConfidenceConfig)
    preprocess: PreprocessConfig = field(default_factory=PreprocessConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "EnsembleConfig":
        """Build a config from a parsed YAML mapping."""
        data = data or {}
        kwargs: dict[str, Any] = {}
        # A blank YAML key parses as None and means "use the defaults"
        if data.get("detectors") is not None:
            kwargs["detectors"] = [
                d if isinstance(d, DetectorConfig) else DetectorConfig(**d)
                for d in data["detectors"]
            ]
        if data.get("fusion") is not None:
            kwargs["fusion"] = FusionConfig(**data["fusion"])
        if data.get("confidence") is not None:
            kwargs["confidence"] = ConfidenceConfig(**data["confidence"])
        if data.get("preprocess") is not None:
            kwargs["preprocess"] = PreprocessConfig(**data["preprocess"])
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        """Plain-data form suitable for yaml.dump."""
        return {
            "detectors": [
                {
                    "type": d.type,
                    "name": d.name,
                    "model_path": d.model_path,
                    "params": dict(d.params),
                }
                for d in self.detectors
            ],
            "fusion": {
                "iou_threshold": self.fusion.iou_threshold,
                "degenerate_policy": self.fusion.degenerate_policy.value,
            },
            "confidence": {
                "detector_weights": dict(self.confidence.detector_weights),
                "fused_weight": self.confidence.fused_weight,
                "default_weight": self.confidence.default_weight,
            },
            "preprocess": {
                "enhance": self.preprocess.enhance,
                "gain": self.preprocess.gain,
            },
        }


def load_config(config_path: Path) -> EnsembleConfig:
    """Load YAML configuration."""
    with open(config_path) as f:
        return EnsembleConfig.from_dict(yaml.safe_load(f))
