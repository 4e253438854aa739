from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

import numpy as np


def _freeze_array(array: np.ndarray, *, ndim: int | None = None, dtype=np.float64) -> np.ndarray:
    """Return a read-only, C-contiguous copy of `array`, validating dimensions."""
    arr = np.array(array, dtype=dtype, copy=True, order="C")
    if ndim is not None and arr.ndim != ndim:
        raise ValueError(f"array must be {ndim}D, got {arr.ndim}D")
    arr.setflags(write=False)
    return arr


# ----------------------------
# Enumerations
# ----------------------------

class CrossingPolarity(str, Enum):
    """Polarity of the zero-crossings that bound a full wave."""

    POS_TO_NEG = "pos2neg"  # DOWN state first, then UP state
    NEG_TO_POS = "neg2pos"


class WaveType(str, Enum):
    FULL = "full"
    HALF = "half"
    NEGATIVE_HALF = "negative_half"
    POSITIVE_HALF = "positive_half"


class WaveClass(str, Enum):
    UNCLASSIFIED = "unclassified"
    SLOW_OSCILLATION = "slow_oscillation"
    DELTA = "delta"


class Anchor(str, Enum):
    """Reference sample of an event for time-locked operations."""

    ONSET = "onset"
    NEGATIVE_PEAK = "negative_peak"
    POSITIVE_PEAK = "positive_peak"


# ----------------------------
# Signal containers
# ----------------------------

@dataclass(frozen=True)
class SampleTrace:
    """One channel of samples with per-sample timestamps (seconds).

    Timestamps are monotonic but may jump across recording gaps.
    """

    samples: np.ndarray
    timestamps: np.ndarray
    sample_rate: float
    channel: str = "ch0"

    def __post_init__(self) -> None:
        if not np.isfinite(self.sample_rate) or self.sample_rate <= 0:
            raise ValueError("sample_rate must be positive")
        samples = _freeze_array(self.samples, ndim=1)
        timestamps = _freeze_array(self.timestamps, ndim=1)
        if samples.shape != timestamps.shape:
            raise ValueError("samples and timestamps must have the same length")
        if timestamps.size > 1 and np.any(np.diff(timestamps) <= 0):
            raise ValueError("timestamps must be strictly increasing")
        object.__setattr__(self, "samples", samples)
        object.__setattr__(self, "timestamps", timestamps)
        object.__setattr__(self, "sample_rate", float(self.sample_rate))

    @classmethod
    def regular(
        cls,
        samples: np.ndarray,
        sample_rate: float,
        *,
        start_time: float = 0.0,
        channel: str = "ch0",
    ) -> "SampleTrace":
        """Build a gap-free trace starting at `start_time`."""
        n = int(np.asarray(samples).shape[0])
        timestamps = start_time + np.arange(n, dtype=np.float64) / float(sample_rate)
        return cls(samples=samples, timestamps=timestamps, sample_rate=sample_rate, channel=channel)

    @property
    def n_samples(self) -> int:
        return int(self.samples.shape[0])

    @property
    def duration_sec(self) -> float:
        """Recorded signal time, excluding gaps."""
        return self.n_samples / self.sample_rate

    def with_samples(self, samples: np.ndarray) -> "SampleTrace":
        """Same timeline and channel, different values (e.g. after filtering)."""
        return SampleTrace(samples=samples, timestamps=self.timestamps, sample_rate=self.sample_rate, channel=self.channel)


# ----------------------------
# Events
# ----------------------------

@dataclass(frozen=True)
class Peak:
    index: int
    time: float
    value: float


@dataclass(frozen=True)
class CandidateEvent:
    """A span between two consecutive same-polarity zero-crossings.

    Indices are sample indices into the filtered trace; times are the
    matching timestamps. The opposite-polarity crossing inside the span is
    the mid point.
    """

    start_index: int
    stop_index: int
    start_time: float
    stop_time: float
    negative_peak: Peak
    positive_peak: Peak
    mid_index: int
    mid_time: float
    polarity: CrossingPolarity = CrossingPolarity.POS_TO_NEG

    def __post_init__(self) -> None:
        if self.stop_index <= self.start_index:
            raise ValueError("stop_index must be greater than start_index")
        if not (self.start_index < self.mid_index < self.stop_index):
            raise ValueError("mid_index must lie strictly between start and stop")
        if not (self.start_time < self.mid_time < self.stop_time):
            raise ValueError("mid_time must lie strictly between start and stop times")

    # -- spans --

    @property
    def duration(self) -> float:
        return self.stop_time - self.start_time

    @property
    def negative_half(self) -> Tuple[float, float]:
        if self.polarity is CrossingPolarity.POS_TO_NEG:
            return self.start_time, self.mid_time
        return self.mid_time, self.stop_time

    @property
    def positive_half(self) -> Tuple[float, float]:
        if self.polarity is CrossingPolarity.POS_TO_NEG:
            return self.mid_time, self.stop_time
        return self.start_time, self.mid_time

    @property
    def negative_duration(self) -> float:
        lo, hi = self.negative_half
        return hi - lo

    @property
    def positive_duration(self) -> float:
        lo, hi = self.positive_half
        return hi - lo

    # -- amplitudes --

    @property
    def negative_amplitude(self) -> float:
        return self.negative_peak.value

    @property
    def positive_amplitude(self) -> float:
        return self.positive_peak.value

    @property
    def peak_to_peak(self) -> float:
        return self.positive_peak.value - self.negative_peak.value

    # -- negative peak to positive peak --

    @property
    def transition(self) -> float:
        return abs(self.positive_peak.time - self.negative_peak.time)

    @property
    def transition_frequency(self) -> Optional[float]:
        trans = self.transition
        if trans <= 0:
            return None
        return 1.0 / (2.0 * trans)


def _slope(delta: float, t0: float, t1: float) -> Optional[float]:
    elapsed = t1 - t0
    if elapsed <= 0:
        return None
    return delta / elapsed


@dataclass(frozen=True)
class AcceptedEvent(CandidateEvent):
    """A candidate that passed classification, plus its derived attributes.

    Slopes that are not meaningful for the wave type return None.
    """

    wave_type: WaveType = WaveType.FULL
    wave_class: WaveClass = WaveClass.UNCLASSIFIED
    phase: np.ndarray = field(default_factory=lambda: np.empty(0), repr=False, compare=False)

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.wave_type is WaveType.FULL and not (self.negative_peak.value < 0 <= self.positive_peak.value):
            raise ValueError("full waves need a negative trough and a non-negative peak")
        object.__setattr__(self, "phase", _freeze_array(self.phase, ndim=1))

    @property
    def _has_negative_half(self) -> bool:
        return self.wave_type is not WaveType.POSITIVE_HALF

    @property
    def _has_positive_half(self) -> bool:
        return self.wave_type is not WaveType.NEGATIVE_HALF

    @property
    def slope_neg1(self) -> Optional[float]:
        """Falling slope into the negative peak."""
        if not self._has_negative_half:
            return None
        lo, _ = self.negative_half
        return _slope(self.negative_peak.value, lo, self.negative_peak.time)

    @property
    def slope_neg2(self) -> Optional[float]:
        """Rising slope out of the negative peak."""
        if not self._has_negative_half:
            return None
        _, hi = self.negative_half
        return _slope(-self.negative_peak.value, self.negative_peak.time, hi)

    @property
    def slope_pos1(self) -> Optional[float]:
        if not self._has_positive_half:
            return None
        lo, _ = self.positive_half
        return _slope(self.positive_peak.value, lo, self.positive_peak.time)

    @property
    def slope_pos2(self) -> Optional[float]:
        if not self._has_positive_half:
            return None
        _, hi = self.positive_half
        return _slope(-self.positive_peak.value, self.positive_peak.time, hi)

    @property
    def slope(self) -> Optional[float]:
        return self.slope_neg2

    @property
    def is_slow_oscillation(self) -> bool:
        return self.wave_class is WaveClass.SLOW_OSCILLATION

    @property
    def is_delta(self) -> bool:
        return self.wave_class is WaveClass.DELTA

    def anchor_index(self, anchor: Anchor) -> int:
        if anchor is Anchor.ONSET:
            return self.start_index
        if anchor is Anchor.NEGATIVE_PEAK:
            return self.negative_peak.index
        if anchor is Anchor.POSITIVE_PEAK:
            return self.positive_peak.index
        raise ValueError(f"unknown anchor {anchor!r}")


# ----------------------------
# Run-level values
# ----------------------------

@dataclass(frozen=True)
class PopulationStatistics:
    """Pass-1 population summary and the absolute thresholds derived from it.

    Negative thresholds are signed (an event passes if its trough is below);
    positive and peak-to-peak thresholds must be exceeded.
    """

    n: int
    central: str
    negative_center: float
    positive_center: float
    p2p_center: float
    relative_negative_threshold: Optional[float] = None
    relative_p2p_threshold: Optional[float] = None
    percentile_negative_threshold: Optional[float] = None
    percentile_positive_threshold: Optional[float] = None
    percentile_p2p_threshold: Optional[float] = None


@dataclass(frozen=True)
class PhaseTrace:
    """Per-sample phase in degrees, 0 at the negative-to-positive crossing."""

    degrees: np.ndarray
    magnitude: np.ndarray

    def __post_init__(self) -> None:
        degrees = _freeze_array(self.degrees, ndim=1)
        magnitude = _freeze_array(self.magnitude, ndim=1)
        if degrees.shape != magnitude.shape:
            raise ValueError("degrees and magnitude must have the same length")
        object.__setattr__(self, "degrees", degrees)
        object.__setattr__(self, "magnitude", magnitude)

    def __len__(self) -> int:
        return int(self.degrees.shape[0])

    @property
    def radians(self) -> np.ndarray:
        return np.deg2rad(self.degrees)


# ----------------------------
# Worker sentinel
# ----------------------------

def _restore_end_of_stream() -> "_EndOfStreamSentinel":
    return EndOfStream


class _EndOfStreamSentinel:
    __slots__ = ()

    def __repr__(self) -> str:
        return "EndOfStream"

    def __reduce__(self):
        return (_restore_end_of_stream, ())


EndOfStream = _EndOfStreamSentinel()


__all__ = [
    "Anchor",
    "AcceptedEvent",
    "CandidateEvent",
    "CrossingPolarity",
    "EndOfStream",
    "Peak",
    "PhaseTrace",
    "PopulationStatistics",
    "SampleTrace",
    "WaveClass",
    "WaveType",
]
