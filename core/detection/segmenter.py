from __future__ import annotations

import logging
from typing import Callable, List

import numpy as np

from core.timeline import is_discontinuous
from shared.errors import InsufficientDataError, InternalInvariantError
from shared.models import CandidateEvent, CrossingPolarity, Peak

logger = logging.getLogger(__name__)

DiscontinuityPredicate = Callable[[np.ndarray, float, int, int], bool]


def find_zero_crossings(filtered: np.ndarray, polarity: CrossingPolarity) -> np.ndarray:
    """Indices of the first sample after each crossing of the given polarity.

    Zero counts as positive.
    """
    x = np.asarray(filtered, dtype=np.float64)
    if x.size < 2:
        return np.empty(0, dtype=np.int64)
    if polarity is CrossingPolarity.POS_TO_NEG:
        hits = (x[1:] < 0) & (x[:-1] >= 0)
    else:
        hits = (x[1:] >= 0) & (x[:-1] < 0)
    return np.flatnonzero(hits) + 1


def _mid_crossing(x: np.ndarray, lo: int, hi: int, polarity: CrossingPolarity) -> int:
    """Last opposite-polarity crossing in ``[lo, hi]``, or -1."""
    prev = x[lo - 1 : hi]
    cur = x[lo : hi + 1]
    if polarity is CrossingPolarity.POS_TO_NEG:
        hits = (prev < 0) & (cur >= 0)
    else:
        hits = (prev >= 0) & (cur < 0)
    found = np.flatnonzero(hits)
    if found.size == 0:
        return -1
    return lo + int(found[-1])


def segment(
    filtered: np.ndarray,
    timestamps: np.ndarray,
    sample_rate: float,
    *,
    polarity: CrossingPolarity = CrossingPolarity.POS_TO_NEG,
    min_crossings: int = 10,
    discontinuous: DiscontinuityPredicate = is_discontinuous,
) -> List[CandidateEvent]:
    """Split a filtered trace into candidate waves between consecutive crossings.

    Spans that cross a recording gap are skipped. Raises InsufficientDataError
    when fewer than ``min_crossings`` crossings exist and InternalInvariantError
    when a span has no interior crossing between its extrema.
    """
    x = np.asarray(filtered, dtype=np.float64)
    ts = np.asarray(timestamps, dtype=np.float64)
    if x.shape != ts.shape:
        raise ValueError("filtered and timestamps must have the same length")

    crossings = find_zero_crossings(x, polarity)
    logger.info("%d zero crossings detected", crossings.size)
    if crossings.size < min_crossings:
        raise InsufficientDataError(
            f"only {crossings.size} zero crossings found (need at least {min_crossings})"
        )

    candidates: List[CandidateEvent] = []
    skipped = 0
    for k in range(1, crossings.size):
        start = int(crossings[k - 1])
        stop = int(crossings[k])
        if discontinuous(ts, sample_rate, start, stop):
            skipped += 1
            continue

        span = x[start:stop]
        neg_i = start + int(np.argmin(span))
        pos_i = start + int(np.argmax(span))
        mid = _mid_crossing(x, min(neg_i, pos_i), max(neg_i, pos_i), polarity)
        if mid <= start:
            raise InternalInvariantError(
                "no interior zero crossing between the wave extrema",
                event_index=k - 1,
            )

        candidates.append(
            CandidateEvent(
                start_index=start,
                stop_index=stop,
                start_time=float(ts[start]),
                stop_time=float(ts[stop]),
                negative_peak=Peak(index=neg_i, time=float(ts[neg_i]), value=float(x[neg_i])),
                positive_peak=Peak(index=pos_i, time=float(ts[pos_i]), value=float(x[pos_i])),
                mid_index=mid,
                mid_time=float(ts[mid]),
                polarity=polarity,
            )
        )

    if skipped:
        logger.info("Skipped %d spans crossing a discontinuity", skipped)
    return candidates


__all__ = ["DiscontinuityPredicate", "find_zero_crossings", "segment"]
