"""
Shared machinery for simulated stone detectors.

No trained weights ship with this project, so the bundled detectors sample
plausible stone records from per-model distributions. Everything around the
sampling is real: the input image is converted to the detector's input
tensor, inference latency is an awaited delay, and boxes sampled in
model-input space are mapped back to image pixel coordinates.

Sampling uses a numpy Generator seeded from params["seed"], so a detector
built with a fixed seed produces a reproducible sequence of results.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import torch
from PIL import Image

from stonefusion.detectors.base import (
    BaseDetector,
    BoundingBox,
    Composition,
    DetectorConfig,
    Location,
    Measurements,
    Morphology,
    RiskAssessment,
    Severity,
    StoneDetection,
)
from stonefusion.errors import ModelUnavailable
from stonefusion.preprocessing import image_to_tensor
from stonefusion.utils.device import get_device

logger = logging.getLogger(__name__)

Range = tuple[float, float]


@dataclass(frozen=True)
class SamplingProfile:
    """Distributions a simulated detector draws its records from."""

    input_size: int
    load_delay: float
    inference_delay: float
    detection_rate: float  # Probability that an image yields any detection
    max_detections: int
    confidence: Range
    box_origin: Range  # x and y, in model-input pixels
    box_size: Range
    length: Range
    width: Range
    area: Range
    volume_radius: Range  # volume = 4/3 * pi * r^3
    perimeter_radius: Range  # perimeter = 2 * pi * r
    composition_types: tuple[str, ...]
    probability: Range
    density: Range
    hardness: Range
    shapes: tuple[str, ...]
    surfaces: tuple[str, ...]
    textures: tuple[str, ...]
    irregularity: Range
    anatomical_sites: tuple[str, ...]
    depth: Range
    severities: tuple[Severity, ...]
    max_urgency: int
    complications: tuple[str, ...]
    complication_rate: float
    enhance_contrast: bool = False
    smooth: bool = False


class SimulatedDetector(BaseDetector):
    """
    Base class for the bundled detectors.

    Subclasses only set PROFILE. Recognised params:
        seed: Seed for the sampling generator (None = nondeterministic).
        load_delay: Seconds spent "loading" in initialize().
        inference_delay: Seconds spent "inferring" per detect() call.
        detection_rate: Overrides PROFILE.detection_rate.
        device: Device preference for input tensors (default "cpu").
    """

    PROFILE: SamplingProfile

    def __init__(self, config: DetectorConfig) -> None:
        super().__init__(config)
        profile = self.PROFILE
        self.seed = self.params.get("seed")
        self.load_delay = float(self.params.get("load_delay", profile.load_delay))
        self.inference_delay = float(
            self.params.get("inference_delay", profile.inference_delay)
        )
        self.detection_rate = float(
            self.params.get("detection_rate", profile.detection_rate)
        )
        if not 0.0 <= self.detection_rate <= 1.0:
            raise ValueError(
                f"detection_rate must be in [0, 1], got {self.detection_rate}"
            )
        self._rng: np.random.Generator | None = None
        self._device: torch.device | None = None

    async def _load(self) -> None:
        model_path = self.config.model_path
        if model_path is not None and not Path(model_path).exists():
            raise ModelUnavailable(self.name, f"model file not found: {model_path}")

        self._device = get_device(self.params.get("device", "cpu"))
        await asyncio.sleep(self.load_delay)
        self._rng = np.random.default_rng(self.seed)

    async def _infer(self, image: Image.Image) -> list[StoneDetection]:
        tensor = self._prepare(image)
        await asyncio.sleep(self.inference_delay)

        _, _, input_h, input_w = tensor.shape
        sx = image.width / input_w
        sy = image.height / input_h

        count = self._sample_count()
        detections = [self._sample_detection(sx, sy) for _ in range(count)]
        logger.debug(f"{self.name}: {len(detections)} detections")
        return detections

    def _prepare(self, image: Image.Image) -> torch.Tensor:
        profile = self.PROFILE
        return image_to_tensor(
            image,
            size=profile.input_size,
            device=self._device,
            enhance_contrast=profile.enhance_contrast,
            smooth=profile.smooth,
        )

    def _sample_count(self) -> int:
        rng = self._rng
        if rng.random() >= self.detection_rate:
            return 0
        return int(rng.integers(1, self.PROFILE.max_detections + 1))

    def _uniform(self, bounds: Range) -> float:
        return float(self._rng.uniform(bounds[0], bounds[1]))

    def _choice(self, options: tuple):
        return options[int(self._rng.integers(len(options)))]

    def _sample_detection(self, sx: float, sy: float) -> StoneDetection:
        p = self.PROFILE
        rng = self._rng

        box = BoundingBox(
            x=self._uniform(p.box_origin),
            y=self._uniform(p.box_origin),
            width=self._uniform(p.box_size),
            height=self._uniform(p.box_size),
        ).scale(sx, sy)

        volume_r = self._uniform(p.volume_radius)
        perimeter_r = self._uniform(p.perimeter_radius)
        measurements = Measurements(
            length=round(self._uniform(p.length), 2),
            width=round(self._uniform(p.width), 2),
            area=round(self._uniform(p.area), 2),
            volume=round(4.0 / 3.0 * math.pi * volume_r**3, 2),
            perimeter=round(2.0 * math.pi * perimeter_r, 2),
        )

        composition = Composition(
            type=self._choice(p.composition_types),
            probability=self._uniform(p.probability),
            density=self._uniform(p.density),
            hardness=self._uniform(p.hardness),
        )
        morphology = Morphology(
            shape=self._choice(p.shapes),
            surface=self._choice(p.surfaces),
            texture=self._choice(p.textures),
            irregularity=self._uniform(p.irregularity),
        )
        location = Location(
            anatomical=self._choice(p.anatomical_sites),
            coordinates=(
                self._uniform((0.0, p.input_size)) * sx,
                self._uniform((0.0, p.input_size)) * sy,
            ),
            depth=self._uniform(p.depth),
        )
        risk = RiskAssessment(
            severity=self._choice(p.severities),
            urgency=int(rng.integers(1, p.max_urgency + 1)),
            complications=frozenset(
                c for c in p.complications if rng.random() < p.complication_rate
            ),
        )

        return StoneDetection(
            confidence=self._uniform(p.confidence),
            bounding_box=box,
            measurements=measurements,
            composition=composition,
            morphology=morphology,
            location=location,
            risk_assessment=risk,
        )
