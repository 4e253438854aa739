# analysis/models.py
from __future__ import annotations

import math
from dataclasses import dataclass, asdict, field
from enum import Enum
from typing import Dict, Optional

import numpy as np

from shared.errors import InvalidConfigurationError
from shared.models import Anchor, _freeze_array


class ShuffleMode(str, Enum):
    WHOLE_TRACE = "whole_trace"
    WITHIN_EPOCH = "within_epoch"


@dataclass(frozen=True)
class CouplingConfig:
    """
    Settings for the phase-coupling test between an anchor and a target stream.

    ``n_reps`` of 0 skips the permutation null. Permutations run in blocks of
    ``block_size`` replicates, each block seeded from ``seed``.
    """

    n_reps: int = 0
    shuffle: ShuffleMode = ShuffleMode.WHOLE_TRACE
    epoch_sec: float = 30.0
    stratify_by_phase: bool = False
    use_mask: bool = True
    tolerance_sec: float = 0.0
    n_phase_bins: int = 18
    seed: Optional[int] = None
    n_workers: int = 1
    block_size: int = 100

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)

    def validate(self) -> None:
        if self.n_reps < 0 or 0 < self.n_reps < 10:
            raise InvalidConfigurationError("n_reps must be 0 or at least 10")
        if not isinstance(self.shuffle, ShuffleMode):
            raise InvalidConfigurationError(f"unknown shuffle mode {self.shuffle!r}")
        if self.shuffle is ShuffleMode.WITHIN_EPOCH and not (math.isfinite(self.epoch_sec) and self.epoch_sec > 0):
            raise InvalidConfigurationError("epoch_sec must be positive for within-epoch shuffling")
        if not math.isfinite(self.tolerance_sec) or self.tolerance_sec < 0:
            raise InvalidConfigurationError("tolerance_sec must be non-negative")
        if self.n_phase_bins < 1 or 360 % self.n_phase_bins != 0:
            raise InvalidConfigurationError("n_phase_bins must divide 360")
        if self.n_workers < 1:
            raise InvalidConfigurationError("n_workers must be at least 1")
        if self.block_size < 1:
            raise InvalidConfigurationError("block_size must be at least 1")
        if self.seed is not None and self.seed < 0:
            raise InvalidConfigurationError("seed must be non-negative")


@dataclass(frozen=True)
class NullSummary:
    """Observed statistic against its permutation null.

    ``z`` is None and ``undefined`` True when the null has zero spread.
    """

    observed: float
    mean: float
    sd: float
    p_empirical: float
    z: Optional[float]
    undefined: bool = False
    n_reps: int = 0


@dataclass(frozen=True)
class PhaseBinOverlap:
    """Target counts per anchor-phase bin, optionally with a per-bin null."""

    bin_edges: np.ndarray
    observed: np.ndarray
    null_mean: Optional[np.ndarray] = None
    null_sd: Optional[np.ndarray] = None
    z: Optional[np.ndarray] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "bin_edges", _freeze_array(self.bin_edges, ndim=1))
        object.__setattr__(self, "observed", _freeze_array(self.observed, ndim=1))
        for name in ("null_mean", "null_sd", "z"):
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(self, name, _freeze_array(value, ndim=1))

    @property
    def n_bins(self) -> int:
        return int(self.observed.shape[0])


@dataclass(frozen=True)
class CouplingResult:
    """Phase coupling of one target stream to one anchor stream."""

    shuffle_mode: ShuffleMode
    n_targets: int
    n_included: int
    itpc: float
    rayleigh_p: float
    angle: Optional[float]
    overlap: int
    target_phases: np.ndarray = field(repr=False)
    target_included: np.ndarray = field(repr=False)
    phase_bins: Optional[PhaseBinOverlap] = field(default=None, repr=False)
    itpc_null: Optional[NullSummary] = None
    overlap_null: Optional[NullSummary] = None
    significance_rate: Optional[float] = None
    n_reps: int = 0
    seed: Optional[int] = None
    channel: Optional[str] = None
    frequency: Optional[float] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "target_phases", _freeze_array(self.target_phases, ndim=1))
        object.__setattr__(self, "target_included", _freeze_array(self.target_included, ndim=1, dtype=bool))

    @property
    def overlap_proportion(self) -> Optional[float]:
        if self.n_targets == 0:
            return None
        return self.overlap / self.n_targets

    @property
    def significant(self) -> bool:
        return self.rayleigh_p < 0.05


@dataclass(frozen=True)
class PhaseLockedAverage:
    bin_edges: np.ndarray
    means: np.ndarray
    counts: np.ndarray

    def __post_init__(self) -> None:
        object.__setattr__(self, "bin_edges", _freeze_array(self.bin_edges, ndim=1))
        object.__setattr__(self, "means", _freeze_array(self.means, ndim=1))
        object.__setattr__(self, "counts", _freeze_array(self.counts, ndim=1, dtype=np.int64))


@dataclass(frozen=True)
class TimeLockedAverage:
    offsets_sec: np.ndarray
    means: np.ndarray
    counts: np.ndarray
    anchor: Anchor = Anchor.NEGATIVE_PEAK

    def __post_init__(self) -> None:
        object.__setattr__(self, "offsets_sec", _freeze_array(self.offsets_sec, ndim=1))
        object.__setattr__(self, "means", _freeze_array(self.means, ndim=1))
        object.__setattr__(self, "counts", _freeze_array(self.counts, ndim=1, dtype=np.int64))


@dataclass(frozen=True)
class SlopeSummary:
    mean: Optional[float]
    median: Optional[float]


@dataclass(frozen=True)
class ChannelSummary:
    """Per-channel aggregate statistics; None where no events contribute."""

    channel: str
    count: int
    rate_per_min: float
    duration_mean: Optional[float] = None
    duration_median: Optional[float] = None
    negative_duration_mean: Optional[float] = None
    negative_duration_median: Optional[float] = None
    positive_duration_mean: Optional[float] = None
    positive_duration_median: Optional[float] = None
    amplitude_mean: Optional[float] = None
    amplitude_median: Optional[float] = None
    positive_amplitude_mean: Optional[float] = None
    p2p_mean: Optional[float] = None
    p2p_median: Optional[float] = None
    transition_mean: Optional[float] = None
    transition_median: Optional[float] = None
    transition_frequency_mean: Optional[float] = None
    transition_frequency_median: Optional[float] = None
    slopes: Dict[str, SlopeSummary] = field(default_factory=dict)


@dataclass(frozen=True)
class EpochRow:
    epoch: int
    start_time: float
    count: int
    duration_mean: Optional[float] = None
    amplitude_mean: Optional[float] = None
    p2p_mean: Optional[float] = None
    slope_mean: Optional[float] = None


@dataclass(frozen=True)
class ChannelReport:
    """Outcome of one channel's unit of work; ``error`` is set if it aborted."""

    channel: str
    result: Optional[object] = None
    summary: Optional[ChannelSummary] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


__all__ = [
    "ChannelReport",
    "ChannelSummary",
    "CouplingConfig",
    "CouplingResult",
    "EpochRow",
    "NullSummary",
    "PhaseBinOverlap",
    "PhaseLockedAverage",
    "ShuffleMode",
    "SlopeSummary",
    "TimeLockedAverage",
]
