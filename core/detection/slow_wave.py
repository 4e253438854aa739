from __future__ import annotations

import dataclasses
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Tuple

import numpy as np

from core.conditioning import FilterFunction, bandpass_filter
from core.hilbert import attach_phase, compute_phase_trace
from shared.errors import InsufficientDataError, InternalInvariantError, InvalidConfigurationError
from shared.models import (
    AcceptedEvent,
    Anchor,
    CrossingPolarity,
    PhaseTrace,
    PopulationStatistics,
    SampleTrace,
    WaveType,
    _freeze_array,
)

from .base import DetectorParameter, register_detector
from .classifier import classify, compute_population_statistics, duration_filter
from .config import ThresholdConfig
from .segmenter import find_zero_crossings, segment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DetectionResult:
    """Everything one detector run produced for one channel.

    An empty ``events`` tuple is a valid outcome; ``diagnostic`` explains why
    when the run stopped early for lack of data.
    """

    channel: str
    config: ThresholdConfig
    sample_rate: float
    timestamps: np.ndarray = field(repr=False)
    filtered: np.ndarray = field(repr=False)
    phase: PhaseTrace = field(repr=False)
    events: Tuple[AcceptedEvent, ...] = ()
    population: Optional[PopulationStatistics] = None
    n_crossings: int = 0
    n_candidates: int = 0
    n_duration_survivors: int = 0
    rejections: Mapping[str, int] = field(default_factory=dict)
    diagnostic: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "timestamps", _freeze_array(self.timestamps, ndim=1))
        object.__setattr__(self, "filtered", _freeze_array(self.filtered, ndim=1))
        object.__setattr__(self, "events", tuple(self.events))
        object.__setattr__(self, "rejections", dict(self.rejections))

    @property
    def count(self) -> int:
        return len(self.events)

    @property
    def empty(self) -> bool:
        return not self.events

    @property
    def n_samples(self) -> int:
        return int(self.filtered.shape[0])

    @property
    def duration_sec(self) -> float:
        return self.n_samples / self.sample_rate

    def peak_indices(self, anchor: Anchor = Anchor.NEGATIVE_PEAK) -> List[int]:
        return [ev.anchor_index(anchor) for ev in self.events]


@register_detector
class SlowWaveDetector:
    """Zero-crossing slow-wave detector over a band-passed trace."""

    name = "slow_wave"
    display_name = "Slow waves (full wave)"
    defaults: Mapping[str, object] = {}

    def __init__(self, config: Optional[ThresholdConfig] = None, *, filter_fn: FilterFunction = bandpass_filter) -> None:
        base = config if config is not None else ThresholdConfig(**self.defaults)
        base.validate()
        self._config = base
        self._filter = filter_fn

    @property
    def config(self) -> ThresholdConfig:
        return self._config

    @property
    def parameters(self) -> Mapping[str, DetectorParameter]:
        cfg = self._config
        return {
            "low_hz": DetectorParameter("low_hz", cfg.low_hz, min=0.0, help="Band-pass lower edge (Hz)"),
            "high_hz": DetectorParameter("high_hz", cfg.high_hz, min=0.0, help="Band-pass upper edge (Hz)"),
            "duration_min": DetectorParameter("duration_min", cfg.duration_min, min=0.0, help="Minimum wave duration (s), 0 disables"),
            "duration_max": DetectorParameter("duration_max", cfg.duration_max, min=0.0, help="Maximum wave duration (s)"),
            "relative_multiplier": DetectorParameter(
                "relative_multiplier", cfg.relative_multiplier, min=0.0, help="Multiple of the population mean/median, 0 disables"
            ),
            "percentile": DetectorParameter("percentile", cfg.percentile, min=0.0, max=100.0, help="Combined percentile cut"),
            "percentile_negative": DetectorParameter(
                "percentile_negative", cfg.percentile_negative, min=0.0, max=100.0, help="Trough magnitude percentile cut"
            ),
            "percentile_positive": DetectorParameter(
                "percentile_positive", cfg.percentile_positive, min=0.0, max=100.0, help="Peak percentile cut"
            ),
            "fixed_negative_uv": DetectorParameter("fixed_negative_uv", cfg.fixed_negative_uv, max=0.0, help="Absolute trough threshold"),
            "fixed_p2p_uv": DetectorParameter("fixed_p2p_uv", cfg.fixed_p2p_uv, min=0.0, help="Absolute peak-to-peak threshold"),
        }

    def configure(self, **params) -> None:
        if "polarity" in params:
            params["polarity"] = CrossingPolarity(params["polarity"])
        if "wave_type" in params:
            params["wave_type"] = WaveType(params["wave_type"])
        try:
            updated = dataclasses.replace(self._config, **params)
        except TypeError as exc:
            raise InvalidConfigurationError(str(exc)) from exc
        updated.validate()
        self._config = updated

    def detect(self, trace: SampleTrace) -> DetectionResult:
        cfg = self._config
        cfg.validate(trace.sample_rate)
        filtered = self._filter(
            np.asarray(trace.samples, dtype=np.float64),
            trace.sample_rate,
            cfg.bandpass.band,
            cfg.fir_ripple,
            cfg.fir_transition_width,
        )
        if len(filtered) != trace.n_samples:
            raise ValueError("filter must preserve the trace length")
        phase = compute_phase_trace(filtered)
        result = dict(
            n_crossings=int(find_zero_crossings(filtered, cfg.polarity).size),
            channel=trace.channel,
            config=cfg,
            sample_rate=trace.sample_rate,
            timestamps=trace.timestamps,
            filtered=filtered,
            phase=phase,
        )

        tally: Counter = Counter()
        n_candidates = n_survivors = 0
        try:
            candidates = segment(
                filtered,
                trace.timestamps,
                trace.sample_rate,
                polarity=cfg.polarity,
                min_crossings=cfg.min_crossings,
            )
            n_candidates = len(candidates)
            survivors = duration_filter(candidates, cfg)
            n_survivors = len(survivors)
            population = compute_population_statistics(survivors, cfg)
            accepted = classify(
                survivors,
                population,
                cfg,
                filtered=filtered,
                sample_rate=trace.sample_rate,
                tally=tally,
            )
        except InsufficientDataError as exc:
            logger.warning("Channel %s: %s", trace.channel, exc)
            return DetectionResult(
                n_candidates=n_candidates,
                n_duration_survivors=n_survivors,
                diagnostic=str(exc),
                **result,
            )
        except InternalInvariantError as exc:
            raise exc.with_context(channel=trace.channel) from exc

        events = attach_phase(accepted, phase)
        logger.info(
            "Channel %s: %d of %d candidates accepted (%d passed duration criteria)",
            trace.channel,
            len(events),
            n_candidates,
            n_survivors,
        )
        if tally:
            logger.debug("Channel %s rejections: %s", trace.channel, dict(tally))
        return DetectionResult(
            events=tuple(events),
            population=population,
            n_candidates=n_candidates,
            n_duration_survivors=n_survivors,
            rejections=dict(tally),
            **result,
        )


@register_detector
class HalfWaveDetector(SlowWaveDetector):
    name = "half_wave"
    display_name = "Slow waves (half waves)"
    defaults = {"wave_type": WaveType.HALF}


@register_detector
class SlowOscillationDetector(SlowWaveDetector):
    """Large troughs followed within a bounded delay by a large peak."""

    name = "slow_oscillation"
    display_name = "Slow oscillations (percentile)"
    defaults = {
        "percentile_negative": 60.0,
        "percentile_positive": 85.0,
        "p2p_min_sec": 0.15,
        "p2p_max_sec": 0.5,
        "slow_oscillations_only": True,
    }


@register_detector
class DeltaWaveDetector(SlowWaveDetector):
    """Large peaks with no large trough in the preceding look-back window."""

    name = "delta_wave"
    display_name = "Delta waves (percentile)"
    defaults = {
        "percentile_negative": 60.0,
        "percentile_positive": 85.0,
        "p2p_min_sec": 0.15,
        "p2p_max_sec": 0.5,
        "delta_lookback_sec": 0.5,
        "delta_only": True,
    }


__all__ = [
    "DeltaWaveDetector",
    "DetectionResult",
    "HalfWaveDetector",
    "SlowOscillationDetector",
    "SlowWaveDetector",
]
