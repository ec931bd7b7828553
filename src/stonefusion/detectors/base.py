"""
Base types for stone detectors.

All detector implementations expose the Detector protocol (name, initialize,
detect). BaseDetector is the usual way to get there: it owns the
initialize/detect lifecycle so implementations only provide _load() and
_infer(). The engine is agnostic to how many detectors it runs and which.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from PIL import Image

from stonefusion.errors import ModelUnavailable, NotInitialized

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    """Clinical severity of a detected stone."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class DetectorStatus(str, Enum):
    """Lifecycle state of a detector."""
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


def _check_range(name: str, value: float, low: float, high: float) -> None:
    if not low <= value <= high:
        raise ValueError(f"{name} must be in [{low}, {high}], got {value}")


@dataclass(frozen=True)
class BoundingBox:
    """
    Axis-aligned box in image pixel coordinates.

    (x, y) is the top-left corner; width and height extend right and down.
    """

    x: float
    y: float
    width: float
    height: float

    def __post_init__(self):
        if self.width < 0 or self.height < 0:
            raise ValueError(
                f"Invalid bbox: width={self.width}, height={self.height} "
                f"must be non-negative"
            )

    @property
    def x2(self) -> float:
        return self.x + self.width

    @property
    def y2(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> tuple[float, float]:
        return (self.x + self.width / 2.0, self.y + self.height / 2.0)

    @property
    def area(self) -> float:
        return self.width * self.height

    def scale(self, sx: float, sy: float) -> "BoundingBox":
        """Return a new box with x/width scaled by sx and y/height by sy."""
        return BoundingBox(
            x=self.x * sx, y=self.y * sy, width=self.width * sx, height=self.height * sy
        )


@dataclass(frozen=True)
class Measurements:
    """Physical-scale measurements (mm, mm^2, mm^3)."""

    length: float
    width: float
    area: float
    volume: float
    perimeter: float


@dataclass(frozen=True)
class Composition:
    type: str
    probability: float
    density: float
    hardness: float

    def __post_init__(self):
        _check_range("composition.probability", self.probability, 0.0, 100.0)


@dataclass(frozen=True)
class Morphology:
    shape: str
    surface: str
    texture: str
    irregularity: float

    def __post_init__(self):
        _check_range("morphology.irregularity", self.irregularity, 0.0, 1.0)


@dataclass(frozen=True)
class Location:
    anatomical: str
    coordinates: tuple[float, float]
    depth: float


@dataclass(frozen=True)
class RiskAssessment:
    severity: Severity
    urgency: int
    complications: frozenset[str] = frozenset()

    def __post_init__(self):
        # Accept plain strings/iterables from config or JSON
        object.__setattr__(self, "severity", Severity(self.severity))
        object.__setattr__(self, "complications", frozenset(self.complications))
        _check_range("risk_assessment.urgency", self.urgency, 1, 10)


@dataclass(frozen=True)
class StoneDetection:
    """
    One candidate stone reported by a single detector (or fused by the engine).

    Attributes:
        confidence: Detector certainty in [0, 100].
        bounding_box: Box in image pixel coordinates.
        measurements: Numeric size attributes, averaged during fusion.
        composition: Categorical sub-structure, taken whole during fusion.
        morphology: Categorical sub-structure, taken whole during fusion.
        location: Categorical sub-structure, taken whole during fusion.
        risk_assessment: Categorical sub-structure, taken whole during fusion.
        detected: Always True for records produced by detectors or fusion.
    """

    confidence: float
    bounding_box: BoundingBox
    measurements: Measurements
    composition: Composition
    morphology: Morphology
    location: Location
    risk_assessment: RiskAssessment
    detected: bool = True

    def __post_init__(self):
        _check_range("confidence", self.confidence, 0.0, 100.0)

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready representation."""
        data = asdict(self)
        data["location"]["coordinates"] = list(self.location.coordinates)
        data["risk_assessment"]["severity"] = self.risk_assessment.severity.value
        data["risk_assessment"]["complications"] = sorted(
            self.risk_assessment.complications
        )
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StoneDetection":
        """Rebuild a record from the shape produced by to_dict()."""
        location = dict(data["location"])
        location["coordinates"] = tuple(location["coordinates"])
        return cls(
            confidence=data["confidence"],
            bounding_box=BoundingBox(**data["bounding_box"]),
            measurements=Measurements(**data["measurements"]),
            composition=Composition(**data["composition"]),
            morphology=Morphology(**data["morphology"]),
            location=Location(**location),
            risk_assessment=RiskAssessment(**data["risk_assessment"]),
            detected=data.get("detected", True),
        )


@dataclass
class DetectorConfig:
    """Configuration for a detector instance."""

    type: str
    name: str | None = None  # Defaults to type; must be unique within an engine
    model_path: str | None = None  # Optional weights file checked at initialize()
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.params is None:
            self.params = {}
        if self.name is None:
            self.name = self.type


@runtime_checkable
class Detector(Protocol):
    """Capability the ensemble engine depends on."""

    name: str

    async def initialize(self) -> None: ...

    async def detect(self, image: Image.Image) -> list[StoneDetection]: ...


class BaseDetector(ABC):
    """
    Abstract base class for stone detectors.

    Subclasses implement _load() (asset loading, called once by initialize())
    and _infer() (one inference call). The base class enforces that detect()
    is only callable after a successful initialize() and converts load
    failures into ModelUnavailable.

    Example:
        ```python
        @register_detector("my_detector")
        class MyDetector(BaseDetector):
            async def _load(self) -> None:
                self.model = load_my_model(self.config.model_path)

            async def _infer(self, image: Image.Image) -> list[StoneDetection]:
                return [to_record(r) for r in self.model(image)]
        ```
    """

    def __init__(self, config: DetectorConfig) -> None:
        self.config = config
        self.name = config.name or config.type
        self.params = config.params or {}
        self._status = DetectorStatus.LOADING
        self._initialized = False

    @property
    def status(self) -> DetectorStatus:
        return self._status

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """
        Load model assets.

        Raises:
            ModelUnavailable: If loading fails for any reason.
        """
        self._status = DetectorStatus.LOADING
        try:
            await self._load()
        except ModelUnavailable:
            self._status = DetectorStatus.ERROR
            raise
        except Exception as e:
            self._status = DetectorStatus.ERROR
            raise ModelUnavailable(self.name, str(e)) from e
        self._initialized = True
        self._status = DetectorStatus.READY
        logger.info(f"Detector '{self.name}' loaded")

    async def detect(self, image: Image.Image) -> list[StoneDetection]:
        """
        Detect stones in an image.

        Args:
            image: The input image. It is never modified.

        Returns:
            Detection records, possibly empty.

        Raises:
            NotInitialized: If initialize() has not completed successfully.
        """
        if not self._initialized:
            raise NotInitialized(f"Detector '{self.name}' is not initialized")
        return await self._infer(image)

    @abstractmethod
    async def _load(self) -> None:
        """Load weights or other assets."""

    @abstractmethod
    async def _infer(self, image: Image.Image) -> list[StoneDetection]:
        """Run one inference call."""

    def cleanup(self) -> None:
        """
        Optional cleanup method to release resources.

        Override this method if your detector needs explicit cleanup.
        """
        self._initialized = False
        self._status = DetectorStatus.LOADING
