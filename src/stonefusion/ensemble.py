"""
Multi-detector ensemble engine.

The engine owns its detectors and runs them as a fan-out/fan-in join on the
caller's event loop:

1. analyze() optionally enhances the image, then starts one task per
   detector. All detectors see the same read-only image.
2. The join waits for every task. If any task fails or is cancelled, the
   others are cancelled and the error propagates; partial results are
   discarded.
3. Detections are concatenated in detector order, grouped by overlap and
   fused per cluster, then the overall confidence is computed. These steps
   are synchronous.

Usage:
    ```python
    engine = EnsembleDetector.from_config(load_config(Path("configs/ensemble_v1.yaml")))
    await engine.initialize()
    result = await engine.analyze(image)
    if result.detected:
        print(result.overall_confidence, len(result.fused_detections))
    ```
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Mapping, Sequence

from PIL import Image

from stonefusion.config import EnsembleConfig
from stonefusion.detectors.base import Detector, DetectorStatus, StoneDetection
from stonefusion.detectors.registry import get_detector
from stonefusion.errors import (
    DetectorFailed,
    EnsembleError,
    ModelUnavailable,
    NotInitialized,
)
from stonefusion.fusion.confidence import ensemble_confidence, mean_confidence
from stonefusion.fusion.weighted import fuse_detections
from stonefusion.preprocessing import enhance_image

logger = logging.getLogger(__name__)


@dataclass
class EnsembleResult:
    """
    Outcome of one analyze() call.

    Attributes:
        fused_detections: Consensus detections, one per overlap cluster.
        per_detector_results: Raw detections keyed by detector name.
        overall_confidence: Aggregated confidence, 0.0 when nothing was found.
        elapsed_time: Wall time of the analysis in seconds.
    """

    fused_detections: list[StoneDetection]
    per_detector_results: dict[str, list[StoneDetection]]
    overall_confidence: float
    elapsed_time: float

    @property
    def detected(self) -> bool:
        return len(self.fused_detections) > 0

    def model_comparison(self) -> dict[str, dict[str, float]]:
        """Detection count and mean confidence per detector."""
        return {
            name: {
                "detections": len(detections),
                "avg_confidence": mean_confidence(detections),
            }
            for name, detections in self.per_detector_results.items()
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "detected": self.detected,
            "overall_confidence": self.overall_confidence,
            "elapsed_time": self.elapsed_time,
            "fused_detections": [d.to_dict() for d in self.fused_detections],
            "per_detector_results": {
                name: [d.to_dict() for d in detections]
                for name, detections in self.per_detector_results.items()
            },
            "model_comparison": self.model_comparison(),
        }


def _cancelled_by_caller() -> bool:
    """True if the current task has a pending cancel() request.

    A CancelledError raised by a detector itself leaves this False and is
    treated as a detector failure.
    """
    task = asyncio.current_task()
    return task is not None and task.cancelling() > 0


async def _join_fail_fast(jobs: Mapping[str, Awaitable]) -> dict[str, Any]:
    """Run jobs concurrently; on the first failure cancel the rest and re-raise."""
    tasks = {
        name: asyncio.ensure_future(job) for name, job in jobs.items()
    }
    try:
        results = await asyncio.gather(*tasks.values())
    except BaseException:
        for task in tasks.values():
            task.cancel()
        await asyncio.gather(*tasks.values(), return_exceptions=True)
        raise
    return dict(zip(tasks.keys(), results))


class EnsembleDetector:
    """
    Runs several detectors over one image and fuses their outputs.

    Detectors must have unique names. The engine is unusable until
    initialize() has been awaited successfully.
    """

    def __init__(
        self,
        detectors: Sequence[Detector],
        config: EnsembleConfig | None = None,
    ) -> None:
        if not detectors:
            raise ValueError("EnsembleDetector needs at least one detector")

        names = [d.name for d in detectors]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate detector names: {duplicates}")

        self.config = config or EnsembleConfig()
        self._detectors: dict[str, Detector] = {d.name: d for d in detectors}
        self._initialized = False

    @classmethod
    def from_config(cls, config: EnsembleConfig | dict) -> "EnsembleDetector":
        """Build the engine and its detectors from configuration."""
        if isinstance(config, dict):
            config = EnsembleConfig.from_dict(config)
        detectors = [get_detector(dc) for dc in config.detectors]
        return cls(detectors, config)

    @property
    def detectors(self) -> dict[str, Detector]:
        return dict(self._detectors)

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def model_status(self) -> dict[str, DetectorStatus]:
        """Lifecycle state per detector."""
        fallback = DetectorStatus.READY if self._initialized else DetectorStatus.LOADING
        return {
            name: getattr(detector, "status", fallback)
            for name, detector in self._detectors.items()
        }

    async def initialize(self) -> None:
        """
        Initialize all detectors concurrently.

        Raises:
            ModelUnavailable: If any detector fails to initialize.
        """
        self._initialized = False
        logger.info(f"Initializing {len(self._detectors)} detectors: {list(self._detectors)}")

        jobs = {
            name: self._initialize_one(detector)
            for name, detector in self._detectors.items()
        }
        try:
            await _join_fail_fast(jobs)
        except ModelUnavailable as e:
            logger.error(f"Failed to initialize detectors: {e}")
            raise

        self._initialized = True
        logger.info("All detectors loaded")

    async def analyze(self, image: Image.Image) -> EnsembleResult:
        """
        Run every detector on the image and fuse the results.

        Args:
            image: Input image; never modified.

        Returns:
            EnsembleResult for this image.

        Raises:
            NotInitialized: If initialize() has not succeeded.
            ModelUnavailable, NotInitialized, DetectorFailed: If any detector
                fails; no partial result is returned.
        """
        if not self._initialized:
            raise NotInitialized("EnsembleDetector.initialize() must be awaited first")

        start = time.perf_counter()

        preprocess = self.config.preprocess
        if preprocess.enhance:
            image = enhance_image(image, gain=preprocess.gain)

        jobs = {
            name: self._detect_one(detector, image)
            for name, detector in self._detectors.items()
        }
        try:
            per_detector = await _join_fail_fast(jobs)
        except EnsembleError as e:
            logger.error(f"Analysis failed: {e}")
            raise

        all_detections = [d for detections in per_detector.values() for d in detections]
        fusion = self.config.fusion
        fused = fuse_detections(
            all_detections,
            iou_threshold=fusion.iou_threshold,
            degenerate_policy=fusion.degenerate_policy,
        )

        weights = self.config.confidence
        overall = ensemble_confidence(
            per_detector,
            fused,
            detector_weights=weights.detector_weights,
            fused_weight=weights.fused_weight,
            default_weight=weights.default_weight,
        )

        elapsed = time.perf_counter() - start
        counts = {name: len(d) for name, d in per_detector.items()}
        logger.info(
            f"Analysis: {counts} -> {len(fused)} fused, "
            f"confidence={overall:.2f}, {elapsed:.3f}s"
        )

        return EnsembleResult(
            fused_detections=fused,
            per_detector_results=per_detector,
            overall_confidence=overall,
            elapsed_time=elapsed,
        )

    def cleanup(self) -> None:
        """Release detector resources; initialize() is required again afterwards."""
        for detector in self._detectors.values():
            cleanup = getattr(detector, "cleanup", None)
            if callable(cleanup):
                cleanup()
        self._initialized = False

    @staticmethod
    async def _initialize_one(detector: Detector) -> None:
        try:
            await detector.initialize()
        except ModelUnavailable:
            raise
        except asyncio.CancelledError as e:
            if _cancelled_by_caller():
                raise
            raise ModelUnavailable(detector.name, "initialization cancelled") from e
        except Exception as e:
            raise ModelUnavailable(detector.name, str(e)) from e

    @staticmethod
    async def _detect_one(detector: Detector, image: Image.Image) -> list[StoneDetection]:
        try:
            return list(await detector.detect(image))
        except EnsembleError:
            raise
        except asyncio.CancelledError as e:
            if _cancelled_by_caller():
                raise
            raise DetectorFailed(detector.name, "cancelled") from e
        except Exception as e:
            raise DetectorFailed(detector.name, str(e)) from e
