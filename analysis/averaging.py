from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np

from core.timeline import seconds_to_samples
from shared.models import AcceptedEvent, Anchor, PhaseTrace

from .metrics import phase_bin_edges
from .models import PhaseLockedAverage, TimeLockedAverage

logger = logging.getLogger(__name__)


class _PhaseBinner:
    """Bin lookup that starts from the previous bin.

    Phase is locally monotone within an event, so consecutive lookups are
    usually answered by the remembered bin or the next one.
    """

    def __init__(self, edges: np.ndarray) -> None:
        self._edges = edges
        self._n = int(edges.shape[0])
        self.last = 0

    def reset(self) -> None:
        self.last = 0

    def __call__(self, x: float) -> int:
        th = self._edges
        last = self.last
        if x < th[last] and (last == 0 or x >= th[last - 1]):
            return last
        start = last + 1 if x >= th[last] else 0
        for b in range(start, self._n):
            if x < th[b]:
                self.last = b
                return b
        self.last = self._n - 1
        return self.last


def phase_locked_average(
    signal: np.ndarray,
    phase: PhaseTrace,
    events: Sequence[AcceptedEvent],
    *,
    n_bins: int = 20,
    mask: Optional[np.ndarray] = None,
) -> PhaseLockedAverage:
    """Mean of ``signal`` per phase bin over the samples of every event.

    Bins with no samples report NaN and a zero count.
    """
    data = np.asarray(signal, dtype=np.float64)
    if data.shape[0] != len(phase):
        raise ValueError("signal must share the phase trace's sample grid")
    if mask is not None and len(mask) != data.shape[0]:
        raise ValueError("mask must share the phase trace's sample grid")

    edges = phase_bin_edges(n_bins)
    sums = np.zeros(n_bins, dtype=np.float64)
    counts = np.zeros(n_bins, dtype=np.int64)
    binner = _PhaseBinner(edges)
    degrees = phase.degrees
    for ev in events:
        binner.reset()
        for p in range(ev.start_index, ev.stop_index + 1):
            if mask is not None and not mask[p]:
                continue
            b = binner(float(degrees[p]))
            sums[b] += data[p]
            counts[b] += 1

    with np.errstate(invalid="ignore", divide="ignore"):
        means = np.where(counts > 0, sums / np.maximum(counts, 1), np.nan)
    return PhaseLockedAverage(bin_edges=edges, means=means, counts=counts)


def time_locked_average(
    signal: np.ndarray,
    events: Sequence[AcceptedEvent],
    sample_rate: float,
    *,
    window_sec: float,
    right_sec: Optional[float] = None,
    anchor: Anchor = Anchor.NEGATIVE_PEAK,
) -> TimeLockedAverage:
    """Average ``signal`` around each event's anchor sample.

    The window spans ``window_sec`` before and ``right_sec`` (default
    ``window_sec``) after the anchor. Offsets falling outside the trace are
    skipped, so each offset is averaged over its own contributing count.
    """
    if sample_rate <= 0:
        raise ValueError("sample_rate must be positive")
    if window_sec < 0 or (right_sec is not None and right_sec < 0):
        raise ValueError("window lengths must be non-negative")
    data = np.asarray(signal, dtype=np.float64)
    n = data.shape[0]
    n_left = seconds_to_samples(window_sec, sample_rate)
    n_right = seconds_to_samples(window_sec if right_sec is None else right_sec, sample_rate)
    width = n_left + 1 + n_right

    sums = np.zeros(width, dtype=np.float64)
    counts = np.zeros(width, dtype=np.int64)
    for ev in events:
        centre = ev.anchor_index(anchor)
        lo = centre - n_left
        first = max(0, lo)
        last = min(n - 1, centre + n_right)
        if last < first:
            continue
        sums[first - lo : last - lo + 1] += data[first : last + 1]
        counts[first - lo : last - lo + 1] += 1

    means = np.where(counts > 0, sums / np.maximum(counts, 1), np.nan)
    offsets = np.arange(-n_left, n_right + 1, dtype=np.float64) / sample_rate
    logger.debug("Time-locked average over %d events, %d offsets", len(events), width)
    return TimeLockedAverage(offsets_sec=offsets, means=means, counts=counts, anchor=anchor)


__all__ = ["phase_locked_average", "time_locked_average"]
