"""
Shared data structures used by the detection and analysis layers.
"""

from .annotations import AnnotationRecord, AnnotationStore, event_annotations, peak_indices
from .errors import (
    InsufficientDataError,
    InternalInvariantError,
    InvalidConfigurationError,
    NumericDegeneracyError,
)
from .models import (
    AcceptedEvent,
    Anchor,
    CandidateEvent,
    CrossingPolarity,
    EndOfStream,
    Peak,
    PhaseTrace,
    PopulationStatistics,
    SampleTrace,
    WaveClass,
    WaveType,
)

__all__ = [
    "AcceptedEvent",
    "Anchor",
    "AnnotationRecord",
    "AnnotationStore",
    "CandidateEvent",
    "CrossingPolarity",
    "EndOfStream",
    "InsufficientDataError",
    "InternalInvariantError",
    "InvalidConfigurationError",
    "NumericDegeneracyError",
    "Peak",
    "PhaseTrace",
    "PopulationStatistics",
    "SampleTrace",
    "WaveClass",
    "WaveType",
    "event_annotations",
    "peak_indices",
]
