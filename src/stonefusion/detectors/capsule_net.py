"""
Capsule network detector (high precision, high latency).

Runs on 512x512 inputs with the full preprocessing chain (contrast
standardization and Gaussian smoothing). Finds stones less often than the
YOLO detector, but reports up to three per image with high confidence and a
finer-grained composition and anatomical vocabulary.

Example config:
    ```yaml
    detectors:
      - type: capsule_net
        model_path: models/capsule-kidney-stone.pt
        params:
          seed: 7
          inference_delay: 1.5
    ```
"""

from stonefusion.detectors.base import Severity
from stonefusion.detectors.registry import register_detector
from stonefusion.detectors.simulated import SamplingProfile, SimulatedDetector

CAPSULE_PROFILE = SamplingProfile(
    input_size=512,
    load_delay=2.0,
    inference_delay=1.5,
    detection_rate=0.3,
    max_detections=3,
    confidence=(92.0, 99.0),
    box_origin=(100.0, 400.0),
    box_size=(40.0, 120.0),
    length=(2.0, 14.0),
    width=(1.5, 9.5),
    area=(5.0, 83.54),
    volume_radius=(1.0, 4.0),
    perimeter_radius=(2.0, 6.0),
    composition_types=(
        "Calcium Oxalate Monohydrate",
        "Calcium Oxalate Dihydrate",
        "Uric Acid",
        "Calcium Phosphate",
        "Struvite",
        "Cystine",
    ),
    probability=(85.0, 99.0),
    density=(1200.0, 2000.0),
    hardness=(3.0, 7.0),
    shapes=("Oval", "Irregular", "Spiculated", "Round", "Elongated"),
    surfaces=("Smooth", "Rough", "Crystalline", "Jagged"),
    textures=("Homogeneous", "Heterogeneous", "Layered"),
    irregularity=(0.2, 1.0),
    anatomical_sites=(
        "Renal Pelvis",
        "Upper Calyx",
        "Middle Calyx",
        "Lower Calyx",
        "Ureteropelvic Junction",
    ),
    depth=(10.0, 60.0),
    severities=(Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL),
    max_urgency=10,
    complications=("Hydronephrosis", "Infection", "Renal Colic"),
    complication_rate=0.3,
    enhance_contrast=True,
    smooth=True,
)


@register_detector("capsule_net")
class CapsuleNetDetector(SimulatedDetector):
    """High-precision detector with a 512px input and full preprocessing."""

    PROFILE = CAPSULE_PROFILE
