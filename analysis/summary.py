from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from core.detection.slow_wave import DetectionResult
from core.timeline import epoch_bounds, epoch_of
from shared.models import AcceptedEvent

from .metrics import central_tendency
from .models import ChannelSummary, EpochRow, SlopeSummary

_SLOPES = ("slope_neg1", "slope_neg2", "slope_pos1", "slope_pos2")


def _mean(values: Sequence[Optional[float]]) -> Optional[float]:
    return central_tendency(values)[0]


def summarize(result: DetectionResult, *, all_slopes: bool = False) -> ChannelSummary:
    """Per-channel aggregates over the accepted events.

    Only the rising slope out of the trough is summarised unless
    ``all_slopes`` is set.
    """
    events = result.events
    minutes = result.duration_sec / 60.0
    rate = len(events) / minutes if minutes > 0 else 0.0

    def ct(attr: str):
        return central_tendency([getattr(ev, attr) for ev in events])

    names = _SLOPES if all_slopes else ("slope_neg2",)
    slopes = {}
    for name in names:
        mean, median = ct(name)
        slopes[name] = SlopeSummary(mean=mean, median=median)

    dur = ct("duration")
    neg_dur = ct("negative_duration")
    pos_dur = ct("positive_duration")
    amp = ct("negative_amplitude")
    p2p = ct("peak_to_peak")
    trans = ct("transition")
    trans_f = ct("transition_frequency")
    return ChannelSummary(
        channel=result.channel,
        count=len(events),
        rate_per_min=rate,
        duration_mean=dur[0],
        duration_median=dur[1],
        negative_duration_mean=neg_dur[0],
        negative_duration_median=neg_dur[1],
        positive_duration_mean=pos_dur[0],
        positive_duration_median=pos_dur[1],
        amplitude_mean=amp[0],
        amplitude_median=amp[1],
        positive_amplitude_mean=ct("positive_amplitude")[0],
        p2p_mean=p2p[0],
        p2p_median=p2p[1],
        transition_mean=trans[0],
        transition_median=trans[1],
        transition_frequency_mean=trans_f[0],
        transition_frequency_median=trans_f[1],
        slopes=slopes,
    )


def epoch_table(result: DetectionResult, *, epoch_sec: float = 30.0) -> List[EpochRow]:
    """One row per fixed-length epoch; events belong to the epoch of their start sample."""
    bounds = epoch_bounds(result.n_samples, result.sample_rate, epoch_sec)
    buckets: List[List[AcceptedEvent]] = [[] for _ in bounds]
    for ev in result.events:
        buckets[epoch_of(ev.start_index, result.sample_rate, epoch_sec)].append(ev)

    rows = []
    for k, ((start, _), evs) in enumerate(zip(bounds, buckets)):
        rows.append(
            EpochRow(
                epoch=k,
                start_time=float(result.timestamps[start]),
                count=len(evs),
                duration_mean=_mean([ev.duration for ev in evs]),
                amplitude_mean=_mean([ev.negative_amplitude for ev in evs]),
                p2p_mean=_mean([ev.peak_to_peak for ev in evs]),
                slope_mean=_mean([ev.slope for ev in evs]),
            )
        )
    return rows


def event_rows(result: DetectionResult, *, include_indices: bool = False) -> List[Dict[str, Any]]:
    rows = []
    for k, ev in enumerate(result.events):
        row: Dict[str, Any] = {
            "event": k,
            "start": ev.start_time,
            "stop": ev.stop_time,
            "duration": ev.duration,
            "negative_duration": ev.negative_duration,
            "positive_duration": ev.positive_duration,
            "negative_peak_time": ev.negative_peak.time,
            "negative_amplitude": ev.negative_amplitude,
            "positive_peak_time": ev.positive_peak.time,
            "positive_amplitude": ev.positive_amplitude,
            "p2p": ev.peak_to_peak,
            "transition": ev.transition,
            "transition_frequency": ev.transition_frequency,
            "wave_type": ev.wave_type.value,
            "wave_class": ev.wave_class.value,
        }
        for name in _SLOPES:
            row[name] = getattr(ev, name)
        if include_indices:
            row.update(
                start_index=ev.start_index,
                stop_index=ev.stop_index,
                mid_index=ev.mid_index,
                negative_peak_index=ev.negative_peak.index,
                positive_peak_index=ev.positive_peak.index,
            )
        rows.append(row)
    return rows


__all__ = ["epoch_table", "event_rows", "summarize"]
