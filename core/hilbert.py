"""Instantaneous phase of a band-limited trace.

Phase is reported in degrees on [0, 360) with 0 at the negative-to-positive
zero-crossing, 90 at the positive peak, 180 at the positive-to-negative
crossing and 270 at the trough.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import List, Sequence, Tuple

import numpy as np
from scipy import signal

from shared.models import AcceptedEvent, PhaseTrace

logger = logging.getLogger(__name__)


def analytic_signal(samples: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Return ``(magnitude, phase)`` of the FFT-based analytic signal.

    ``phase`` is in radians on (-pi, pi], 0 at the positive peak.
    """
    data = np.asarray(samples, dtype=np.float64)
    if data.ndim != 1:
        raise ValueError("samples must be 1D")
    if data.size == 0:
        return np.empty(0), np.empty(0)
    z = signal.hilbert(data)
    return np.abs(z), np.angle(z)


def to_phase_degrees(phase: np.ndarray) -> np.ndarray:
    """Map analytic-signal radians onto [0, 360) anchored at the rising crossing."""
    degrees = np.mod(np.degrees(np.asarray(phase, dtype=np.float64)) + 90.0, 360.0)
    # fmod of a tiny negative rounds up to 360
    degrees[degrees >= 360.0] = 0.0
    return degrees


def compute_phase_trace(filtered: np.ndarray) -> PhaseTrace:
    magnitude, phase = analytic_signal(filtered)
    return PhaseTrace(degrees=to_phase_degrees(phase), magnitude=magnitude)


def attach_phase(events: Sequence[AcceptedEvent], phase: PhaseTrace) -> List[AcceptedEvent]:
    """Copy each event's inclusive span of the phase trace into the event."""
    n = len(phase)
    out: List[AcceptedEvent] = []
    for ev in events:
        if ev.stop_index >= n:
            raise ValueError("event extends past the phase trace")
        span = phase.degrees[ev.start_index : ev.stop_index + 1]
        out.append(dataclasses.replace(ev, phase=span))
    logger.debug("Attached phase to %d events", len(out))
    return out


def instantaneous_frequency(phase: np.ndarray, sample_rate: float) -> np.ndarray:
    """Per-sample frequency (Hz) from the unwrapped analytic phase (radians)."""
    if sample_rate <= 0:
        raise ValueError("sample_rate must be positive")
    data = np.asarray(phase, dtype=np.float64)
    if data.size < 2:
        return np.zeros(data.size)
    return np.gradient(np.unwrap(data)) * sample_rate / (2.0 * np.pi)


def mean_event_phase(event: AcceptedEvent) -> float:
    """Circular mean of an event's phase span in degrees, NaN if empty."""
    if event.phase.size == 0:
        return float("nan")
    rad = np.deg2rad(event.phase)
    angle = np.degrees(np.arctan2(np.mean(np.sin(rad)), np.mean(np.cos(rad))))
    return float(angle % 360.0)


__all__ = [
    "analytic_signal",
    "attach_phase",
    "compute_phase_trace",
    "instantaneous_frequency",
    "mean_event_phase",
    "to_phase_degrees",
]
