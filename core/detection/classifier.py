"""Two-pass amplitude and duration classification of candidate waves.

Pass 1 (:func:`duration_filter`) keeps candidates that satisfy the duration
bounds. :func:`compute_population_statistics` summarises those survivors
and derives absolute thresholds. Pass 2 (:func:`classify`) applies the
amplitude rules against those fixed statistics.
"""
from __future__ import annotations

import logging
from collections import Counter
from typing import List, Optional, Sequence, Tuple

import numpy as np

from core.timeline import seconds_to_samples
from shared.errors import InsufficientDataError
from shared.models import (
    AcceptedEvent,
    CandidateEvent,
    PopulationStatistics,
    WaveClass,
)

from .config import ThresholdConfig

logger = logging.getLogger(__name__)


def _outside(value: float, lo: float, hi: float) -> bool:
    if lo > 0 and value < lo:
        return True
    if hi > 0 and value > hi:
        return True
    return False


def duration_filter(candidates: Sequence[CandidateEvent], config: ThresholdConfig) -> List[CandidateEvent]:
    survivors: List[CandidateEvent] = []
    for cand in candidates:
        if config.duration_min > 0 and _outside(cand.duration, config.duration_min, config.duration_max):
            continue
        if _outside(cand.negative_duration, config.negative_duration_min, config.negative_duration_max):
            continue
        if _outside(cand.positive_duration, config.positive_duration_min, config.positive_duration_max):
            continue
        survivors.append(cand)
    return survivors


def _percentile_cut(values: np.ndarray, pct: Optional[float]) -> Optional[float]:
    # P=0 keeps everything
    if pct is None or pct <= 0:
        return None
    return float(np.percentile(values, pct))


def compute_population_statistics(
    survivors: Sequence[CandidateEvent],
    config: ThresholdConfig,
) -> PopulationStatistics:
    if not survivors:
        raise InsufficientDataError("no candidates met duration criteria")
    if config.using_population and len(survivors) < config.min_population:
        raise InsufficientDataError(
            f"only {len(survivors)} candidates met duration criteria "
            f"(need at least {config.min_population} for population thresholds)"
        )

    neg = np.array([c.negative_amplitude for c in survivors], dtype=np.float64)
    pos = np.array([c.positive_amplitude for c in survivors], dtype=np.float64)
    p2p = pos - neg
    center = np.mean if config.use_mean else np.median
    neg_c, pos_c, p2p_c = float(center(neg)), float(center(pos)), float(center(p2p))

    rel_neg = rel_p2p = None
    if config.using_relative:
        rel_neg = neg_c * config.relative_multiplier
        rel_p2p = p2p_c * config.relative_multiplier

    pct_neg = pct_pos = pct_p2p = None
    if config.percentile is not None:
        cut = _percentile_cut(np.abs(neg), config.percentile)
        pct_neg = None if cut is None else -cut
        pct_p2p = _percentile_cut(p2p, config.percentile)
    else:
        cut = _percentile_cut(np.abs(neg), config.percentile_negative)
        pct_neg = None if cut is None else -cut
        pct_pos = _percentile_cut(pos, config.percentile_positive)

    stats = PopulationStatistics(
        n=len(survivors),
        central="mean" if config.use_mean else "median",
        negative_center=neg_c,
        positive_center=pos_c,
        p2p_center=p2p_c,
        relative_negative_threshold=rel_neg,
        relative_p2p_threshold=rel_p2p,
        percentile_negative_threshold=pct_neg,
        percentile_positive_threshold=pct_pos,
        percentile_p2p_threshold=pct_p2p,
    )
    logger.info(
        "Population of %d: %s negative %.4g, p2p %.4g; thresholds rel(%s, %s) pct(%s, %s, %s)",
        stats.n,
        stats.central,
        neg_c,
        p2p_c,
        rel_neg,
        rel_p2p,
        pct_neg,
        pct_pos,
        pct_p2p,
    )
    return stats


def _lookback_minimum(filtered: np.ndarray, peak_index: int, n_back: int) -> float:
    lo = max(0, peak_index - n_back - 1)
    return float(np.min(filtered[lo : peak_index + 1]))


def evaluate(
    cand: CandidateEvent,
    stats: PopulationStatistics,
    config: ThresholdConfig,
    *,
    filtered: Optional[np.ndarray] = None,
    sample_rate: Optional[float] = None,
) -> Tuple[Optional[str], WaveClass]:
    """Return ``(rejection_reason, wave_class)``; the reason is None for accepted waves."""
    neg = cand.negative_amplitude
    p2p = cand.peak_to_peak

    if config.fixed_negative_uv < 0 and neg > config.fixed_negative_uv:
        return "fixed_negative", WaveClass.UNCLASSIFIED
    if config.fixed_p2p_uv > 0 and p2p < config.fixed_p2p_uv:
        return "fixed_p2p", WaveClass.UNCLASSIFIED

    if stats.relative_negative_threshold is not None:
        if not config.ignore_negative_peak and neg > stats.relative_negative_threshold:
            return "relative_negative", WaveClass.UNCLASSIFIED
        if p2p < stats.relative_p2p_threshold:
            return "relative_p2p", WaveClass.UNCLASSIFIED

    if config.fast_slow_mode is not None:
        tf = cand.transition_frequency
        if tf is None:
            return "transition", WaveClass.UNCLASSIFIED
        if config.fast_slow_mode == "fast" and tf < config.fast_slow_threshold_hz:
            return "transition", WaveClass.UNCLASSIFIED
        if config.fast_slow_mode == "slow" and tf > config.fast_slow_threshold_hz:
            return "transition", WaveClass.UNCLASSIFIED

    if not config.using_percentile:
        return None, WaveClass.UNCLASSIFIED

    neg_cut = stats.percentile_negative_threshold
    if config.percentile is not None:
        if neg_cut is not None and not neg < neg_cut:
            return "percentile_negative", WaveClass.UNCLASSIFIED
        if stats.percentile_p2p_threshold is not None and not p2p > stats.percentile_p2p_threshold:
            return "percentile_p2p", WaveClass.UNCLASSIFIED
        return None, WaveClass.UNCLASSIFIED

    # separate cut-points: slow oscillation vs delta
    pos_cut = stats.percentile_positive_threshold
    if pos_cut is not None and not cand.positive_amplitude > pos_cut:
        return "percentile_positive", WaveClass.UNCLASSIFIED

    if neg_cut is not None and neg < neg_cut:
        trans = cand.transition
        if config.p2p_min_sec > 0 and trans < config.p2p_min_sec:
            return "p2p_timing", WaveClass.SLOW_OSCILLATION
        if config.p2p_max_sec > 0 and trans > config.p2p_max_sec:
            return "p2p_timing", WaveClass.SLOW_OSCILLATION
        wave_class = WaveClass.SLOW_OSCILLATION
    else:
        if neg_cut is not None and filtered is not None and sample_rate is not None:
            n_back = seconds_to_samples(config.delta_lookback_sec, sample_rate)
            if _lookback_minimum(filtered, cand.positive_peak.index, n_back) < neg_cut:
                return "delta_lookback", WaveClass.DELTA
        wave_class = WaveClass.DELTA

    if config.slow_oscillations_only and wave_class is not WaveClass.SLOW_OSCILLATION:
        return "class", wave_class
    if config.delta_only and wave_class is not WaveClass.DELTA:
        return "class", wave_class
    return None, wave_class


def classify(
    candidates: Sequence[CandidateEvent],
    stats: PopulationStatistics,
    config: ThresholdConfig,
    *,
    filtered: Optional[np.ndarray] = None,
    sample_rate: Optional[float] = None,
    tally: Optional[Counter] = None,
) -> List[AcceptedEvent]:
    """Pass 2: accept candidates against fixed population statistics.

    ``filtered`` and ``sample_rate`` are only consulted by the delta look-back
    rule. Rejection reasons are counted into ``tally`` when given.
    """
    accepted: List[AcceptedEvent] = []
    for cand in candidates:
        reason, wave_class = evaluate(cand, stats, config, filtered=filtered, sample_rate=sample_rate)
        if reason is not None:
            if tally is not None:
                tally[reason] += 1
            continue
        accepted.append(
            AcceptedEvent(
                start_index=cand.start_index,
                stop_index=cand.stop_index,
                start_time=cand.start_time,
                stop_time=cand.stop_time,
                negative_peak=cand.negative_peak,
                positive_peak=cand.positive_peak,
                mid_index=cand.mid_index,
                mid_time=cand.mid_time,
                polarity=cand.polarity,
                wave_type=config.wave_type,
                wave_class=wave_class,
            )
        )
    return accepted


__all__ = ["classify", "compute_population_statistics", "duration_filter", "evaluate"]
