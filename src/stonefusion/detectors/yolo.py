"""
YOLO real-time detector (low latency, lower precision).

Runs on 416x416 inputs with resize and normalization only, and reports at
most one stone per image from a coarser vocabulary.
"""

from stonefusion.detectors.base import Severity
from stonefusion.detectors.registry import register_detector
from stonefusion.detectors.simulated import SamplingProfile, SimulatedDetector

YOLO_PROFILE = SamplingProfile(
    input_size=416,
    load_delay=1.8,
    inference_delay=0.3,
    detection_rate=0.7,
    max_detections=1,
    confidence=(88.0, 98.0),
    box_origin=(100.0, 300.0),
    box_size=(50.0, 150.0),
    length=(3.0, 13.0),
    width=(2.0, 9.0),
    area=(10.0, 104.25),
    volume_radius=(1.5, 5.5),
    perimeter_radius=(2.5, 7.5),
    composition_types=("Calcium Oxalate", "Uric Acid", "Calcium Phosphate"),
    probability=(82.0, 98.0),
    density=(1100.0, 2000.0),
    hardness=(2.5, 7.0),
    shapes=("Irregular", "Oval", "Angular"),
    surfaces=("Rough", "Smooth", "Crystalline"),
    textures=("Heterogeneous", "Homogeneous"),
    irregularity=(0.1, 1.0),
    anatomical_sites=("Kidney", "Ureter", "Bladder"),
    depth=(15.0, 55.0),
    severities=(Severity.LOW, Severity.MEDIUM, Severity.HIGH),
    max_urgency=8,
    complications=("Obstruction", "Pain"),
    complication_rate=0.4,
)


@register_detector("yolo")
class YOLODetector(SimulatedDetector):
    """Fast single-detection model with a 416px input."""

    PROFILE = YOLO_PROFILE
