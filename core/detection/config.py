from __future__ import annotations

import math
from dataclasses import dataclass, asdict
from typing import Dict, Optional

from core.conditioning import BandPassSettings
from shared.errors import InvalidConfigurationError
from shared.models import CrossingPolarity, WaveType


@dataclass(frozen=True)
class ThresholdConfig:
    """
    Detection criteria for zero-crossing delimited oscillatory events.

    Durations are in seconds and amplitudes in signal units. A zero duration
    bound disables that bound. Percentile cut-points ``P`` keep events whose
    magnitude lies strictly above the ``P``-th percentile of the population
    that passed the duration filters. With separate cut-points a negative
    cut of 100 admits no slow oscillations but still admits delta waves.
    """

    # band-pass
    low_hz: float = 0.5
    high_hz: float = 4.0
    fir_ripple: float = 0.01
    fir_transition_width: float = 0.5

    polarity: CrossingPolarity = CrossingPolarity.POS_TO_NEG
    wave_type: WaveType = WaveType.FULL

    # whole-wave duration, only applied when duration_min > 0
    duration_min: float = 0.0
    duration_max: float = 2.0
    negative_duration_min: float = 0.0
    negative_duration_max: float = 0.0
    positive_duration_min: float = 0.0
    positive_duration_max: float = 0.0

    # multiples of the population mean/median
    relative_multiplier: float = 0.0
    use_mean: bool = False
    ignore_negative_peak: bool = False

    # absolute amplitudes
    fixed_negative_uv: float = 0.0
    fixed_p2p_uv: float = 0.0

    percentile: Optional[float] = None
    percentile_negative: Optional[float] = None
    percentile_positive: Optional[float] = None

    # trough-to-peak timing window for slow oscillations
    p2p_min_sec: float = 0.0
    p2p_max_sec: float = 0.0
    delta_lookback_sec: float = 0.5

    slow_oscillations_only: bool = False
    delta_only: bool = False

    fast_slow_threshold_hz: Optional[float] = None
    fast_slow_mode: Optional[str] = None  # "fast" or "slow"

    min_crossings: int = 10
    min_population: int = 10

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)

    @property
    def bandpass(self) -> BandPassSettings:
        return BandPassSettings(
            low_hz=self.low_hz,
            high_hz=self.high_hz,
            ripple=self.fir_ripple,
            transition_width_hz=self.fir_transition_width,
        )

    @property
    def using_relative(self) -> bool:
        return self.relative_multiplier > 0

    @property
    def using_separate_percentiles(self) -> bool:
        return self.percentile_negative is not None or self.percentile_positive is not None

    @property
    def using_percentile(self) -> bool:
        return self.percentile is not None or self.using_separate_percentiles

    @property
    def using_population(self) -> bool:
        return self.using_relative or self.using_percentile

    def validate(self, sample_rate: Optional[float] = None) -> None:
        """Raise InvalidConfigurationError on any contradictory or out-of-range field."""
        if self.slow_oscillations_only and self.delta_only:
            raise InvalidConfigurationError("slow_oscillations_only and delta_only are mutually exclusive")
        if (self.slow_oscillations_only or self.delta_only) and not self.using_separate_percentiles:
            raise InvalidConfigurationError(
                "slow-oscillation/delta classification needs percentile_negative or percentile_positive"
            )
        if self.percentile is not None and self.using_separate_percentiles:
            raise InvalidConfigurationError("use either a combined percentile or separate negative/positive percentiles")
        for name in ("percentile", "percentile_negative", "percentile_positive"):
            value = getattr(self, name)
            if value is not None and not (math.isfinite(value) and 0.0 <= value <= 100.0):
                raise InvalidConfigurationError(f"{name} must lie in [0, 100], got {value}")

        for name in (
            "duration_min",
            "duration_max",
            "negative_duration_min",
            "negative_duration_max",
            "positive_duration_min",
            "positive_duration_max",
            "p2p_min_sec",
            "p2p_max_sec",
            "delta_lookback_sec",
            "relative_multiplier",
        ):
            value = getattr(self, name)
            if not math.isfinite(value) or value < 0:
                raise InvalidConfigurationError(f"{name} must be a non-negative number")
        for lo, hi in (
            ("duration_min", "duration_max"),
            ("negative_duration_min", "negative_duration_max"),
            ("positive_duration_min", "positive_duration_max"),
            ("p2p_min_sec", "p2p_max_sec"),
        ):
            if getattr(self, lo) > 0 and getattr(self, hi) > 0 and getattr(self, lo) > getattr(self, hi):
                raise InvalidConfigurationError(f"{lo} must not exceed {hi}")

        if not math.isfinite(self.fixed_negative_uv) or self.fixed_negative_uv > 0:
            raise InvalidConfigurationError("fixed_negative_uv must be <= 0")
        if not math.isfinite(self.fixed_p2p_uv) or self.fixed_p2p_uv < 0:
            raise InvalidConfigurationError("fixed_p2p_uv must be >= 0")

        if self.fast_slow_mode not in (None, "fast", "slow"):
            raise InvalidConfigurationError("fast_slow_mode must be 'fast', 'slow' or None")
        if (self.fast_slow_mode is None) != (self.fast_slow_threshold_hz is None):
            raise InvalidConfigurationError("fast_slow_mode and fast_slow_threshold_hz must be set together")
        if self.fast_slow_threshold_hz is not None and not (
            math.isfinite(self.fast_slow_threshold_hz) and self.fast_slow_threshold_hz > 0
        ):
            raise InvalidConfigurationError("fast_slow_threshold_hz must be positive")

        if not isinstance(self.polarity, CrossingPolarity):
            raise InvalidConfigurationError(f"unknown polarity {self.polarity!r}")
        if not isinstance(self.wave_type, WaveType):
            raise InvalidConfigurationError(f"unknown wave_type {self.wave_type!r}")
        if self.min_crossings < 2:
            raise InvalidConfigurationError("min_crossings must be at least 2")
        if self.min_population < 1:
            raise InvalidConfigurationError("min_population must be at least 1")

        if sample_rate is not None:
            try:
                self.bandpass.validate(sample_rate)
            except ValueError as exc:
                raise InvalidConfigurationError(str(exc)) from exc


__all__ = ["ThresholdConfig"]
