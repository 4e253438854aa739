from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

import numpy as np

from shared.models import CandidateEvent


def _tolerance(sample_rate: float) -> float:
    return 0.5 / float(sample_rate)


def is_discontinuous(timestamps: np.ndarray, sample_rate: float, i: int, j: int) -> bool:
    """True if samples ``i`` .. ``j`` do not form one gap-free stretch.

    The elapsed time between the two samples must match ``(j - i) / sample_rate``
    to within half a sample period.
    """
    if sample_rate <= 0:
        raise ValueError("sample_rate must be positive")
    n = len(timestamps)
    if j < i or i < 0 or j >= n:
        return True
    expected = (j - i) / float(sample_rate)
    elapsed = float(timestamps[j]) - float(timestamps[i])
    return abs(elapsed - expected) > _tolerance(sample_rate)


def seconds_to_samples(seconds: float, sample_rate: float) -> int:
    """Nearest whole number of samples spanning ``seconds``."""
    return int(round(seconds * sample_rate))


def epoch_length(sample_rate: float, epoch_sec: float) -> int:
    if epoch_sec <= 0:
        raise ValueError("epoch_sec must be positive")
    return max(1, seconds_to_samples(epoch_sec, sample_rate))


def epoch_bounds(n_samples: int, sample_rate: float, epoch_sec: float) -> List[Tuple[int, int]]:
    """Non-overlapping half-open sample ranges; the last one may be partial."""
    step = epoch_length(sample_rate, epoch_sec)
    return [(start, min(start + step, n_samples)) for start in range(0, n_samples, step)]


def epoch_of(index: int, sample_rate: float, epoch_sec: float) -> int:
    return int(index) // epoch_length(sample_rate, epoch_sec)


# ----------------------------
# Event membership
# ----------------------------

def event_membership(events: Sequence[CandidateEvent], n_samples: int) -> np.ndarray:
    """Per-sample ordinal of the covering event (inclusive spans), else -1."""
    owner = np.full(int(n_samples), -1, dtype=np.int64)
    for k, ev in enumerate(events):
        lo = max(0, ev.start_index)
        hi = min(int(n_samples) - 1, ev.stop_index)
        if hi >= lo:
            owner[lo : hi + 1] = k
    return owner


def event_mask(events: Sequence[CandidateEvent], n_samples: int, *, pad_samples: int = 0) -> np.ndarray:
    """Boolean in-event mask, each span widened by ``pad_samples`` on both sides."""
    if pad_samples < 0:
        raise ValueError("pad_samples must be non-negative")
    mask = np.zeros(int(n_samples), dtype=bool)
    for ev in events:
        lo = max(0, ev.start_index - pad_samples)
        hi = min(int(n_samples) - 1, ev.stop_index + pad_samples)
        if hi >= lo:
            mask[lo : hi + 1] = True
    return mask


def nearest_event(
    index: int,
    membership: np.ndarray,
    timestamps: np.ndarray,
) -> Tuple[float, Optional[int]]:
    """Signed seconds from sample ``index`` to the nearest event and that event's ordinal.

    Inside an event the distance is 0. Earlier events give negative distances;
    ties go to the later event. ``(0.0, None)`` when there are no events.
    """
    if not 0 <= index < len(membership):
        raise ValueError("index out of range")
    here = int(membership[index])
    if here != -1:
        return 0.0, here
    covered = np.flatnonzero(membership != -1)
    if covered.size == 0:
        return 0.0, None
    pos = int(np.searchsorted(covered, index))
    best: Tuple[float, Optional[int]] = (0.0, None)
    if pos > 0:
        back = int(covered[pos - 1])
        best = (-(float(timestamps[index]) - float(timestamps[back])), int(membership[back]))
    if pos < covered.size:
        fwd = int(covered[pos])
        sec_fwd = float(timestamps[fwd]) - float(timestamps[index])
        if best[1] is None or sec_fwd <= abs(best[0]):
            best = (sec_fwd, int(membership[fwd]))
    return best


__all__ = [
    "epoch_bounds",
    "epoch_length",
    "epoch_of",
    "event_mask",
    "event_membership",
    "is_discontinuous",
    "nearest_event",
    "seconds_to_samples",
]
