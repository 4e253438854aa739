from .base import (
    DETECTOR_REGISTRY,
    DetectorParameter,
    OscillationDetector,
    create_detector,
    register_detector,
)
from .classifier import classify, compute_population_statistics, duration_filter
from .config import ThresholdConfig
from .segmenter import find_zero_crossings, segment
from .slow_wave import (
    DeltaWaveDetector,
    DetectionResult,
    HalfWaveDetector,
    SlowOscillationDetector,
    SlowWaveDetector,
)

__all__ = [
    "OscillationDetector",
    "DetectorParameter",
    "DETECTOR_REGISTRY",
    "register_detector",
    "create_detector",
    "ThresholdConfig",
    "DetectionResult",
    "SlowWaveDetector",
    "HalfWaveDetector",
    "SlowOscillationDetector",
    "DeltaWaveDetector",
    "classify",
    "compute_population_statistics",
    "duration_filter",
    "find_zero_crossings",
    "segment",
]
