from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Deque, Dict, Iterable, List, Mapping, Optional, Sequence

from .models import AcceptedEvent, Anchor


@dataclass(frozen=True)
class AnnotationRecord:
    """A labelled interval handed to an external annotation store."""

    label: str
    channel: str
    start: float
    stop: float
    meta: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.stop < self.start:
            raise ValueError("stop must not precede start")
        object.__setattr__(self, "meta", dict(self.meta))


def event_annotations(
    events: Sequence[AcceptedEvent],
    *,
    label: str,
    channel: str,
    half_waves: bool = False,
) -> List[AnnotationRecord]:
    """One full-wave record per event, optionally plus `<label>_neg`/`<label>_pos` half-wave records."""
    records: List[AnnotationRecord] = []
    for ev in events:
        dur = ev.duration
        meta: Dict[str, Any] = {
            "frq": 1.0 / dur,
            "slope": ev.slope,
            "p2p": ev.peak_to_peak,
            "amp": ev.negative_amplitude,
            "transf": ev.transition_frequency,
            "rp_mid": (ev.mid_time - ev.start_time) / dur,
            "rp_pos": (ev.positive_peak.time - ev.start_time) / dur,
            "rp_neg": (ev.negative_peak.time - ev.start_time) / dur,
            "class": ev.wave_class.value,
        }
        records.append(AnnotationRecord(label=label, channel=channel, start=ev.start_time, stop=ev.stop_time, meta=meta))
        if half_waves:
            neg_lo, neg_hi = ev.negative_half
            pos_lo, pos_hi = ev.positive_half
            records.append(AnnotationRecord(label=f"{label}_neg", channel=channel, start=neg_lo, stop=neg_hi))
            records.append(AnnotationRecord(label=f"{label}_pos", channel=channel, start=pos_lo, stop=pos_hi))
    return records


def peak_indices(events: Sequence[AcceptedEvent], anchor: Anchor = Anchor.NEGATIVE_PEAK) -> List[int]:
    """Flat list of sample indices for reuse as another detector's anchor stream."""
    return [int(ev.anchor_index(anchor)) for ev in events]


class AnnotationStore:
    """
    Thread-safe, optionally bounded in-memory sink for annotation records.

    Channel workers push into the store concurrently; callers read back one
    label at a time or drain everything.
    """

    def __init__(self, capacity: Optional[int] = None) -> None:
        if capacity is not None and capacity <= 0:
            raise ValueError("capacity must be positive")
        self._records: Deque[AnnotationRecord] = deque(maxlen=capacity)
        self._lock = Lock()

    def push(self, record: AnnotationRecord) -> None:
        with self._lock:
            self._records.append(record)

    def extend(self, records: Iterable[AnnotationRecord]) -> None:
        with self._lock:
            self._records.extend(records)

    def by_label(self, label: str) -> List[AnnotationRecord]:
        with self._lock:
            return sorted((r for r in self._records if r.label == label), key=lambda r: (r.channel, r.start))

    def labels(self) -> List[str]:
        with self._lock:
            return sorted({r.label for r in self._records})

    def drain(self) -> List[AnnotationRecord]:
        """Remove and return all records in insertion order."""
        with self._lock:
            records = list(self._records)
            self._records.clear()
            return records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


__all__ = ["AnnotationRecord", "AnnotationStore", "event_annotations", "peak_indices"]
