from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping, Protocol, Type

from shared.models import SampleTrace

from .config import ThresholdConfig


@dataclass
class DetectorParameter:
    name: str
    default: float | int | bool | str | None
    min: float | None = None
    max: float | None = None
    help: str = ""


class OscillationDetector(Protocol):
    name: str
    display_name: str

    @property
    def config(self) -> ThresholdConfig:
        ...

    @property
    def parameters(self) -> Mapping[str, DetectorParameter]:
        ...

    def configure(self, **params) -> None:
        ...

    def detect(self, trace: SampleTrace):
        """Run the full pipeline over one channel and return a DetectionResult."""
        ...


DETECTOR_REGISTRY: Dict[str, Type[OscillationDetector]] = {}


def register_detector(cls: Type[OscillationDetector]) -> Type[OscillationDetector]:
    if not hasattr(cls, "name"):
        raise ValueError(f"Detector {cls} must have a 'name' attribute")
    DETECTOR_REGISTRY[cls.name] = cls
    return cls


def create_detector(name: str, **params) -> OscillationDetector:
    try:
        cls = DETECTOR_REGISTRY[name]
    except KeyError:
        raise ValueError(f"Unknown detector {name!r}; available: {sorted(DETECTOR_REGISTRY)}") from None
    detector = cls()
    if params:
        detector.configure(**params)
    return detector
