"""Signal conditioning, timeline and phase utilities plus the detectors."""

from .conditioning import BandPassFilter, BandPassSettings, bandpass_filter, design_bandpass
from .hilbert import analytic_signal, attach_phase, compute_phase_trace, instantaneous_frequency
from .timeline import event_mask, event_membership, is_discontinuous, nearest_event
from shared.models import EndOfStream, PhaseTrace, SampleTrace

__all__ = [
    "BandPassFilter",
    "BandPassSettings",
    "EndOfStream",
    "PhaseTrace",
    "SampleTrace",
    "analytic_signal",
    "attach_phase",
    "bandpass_filter",
    "compute_phase_trace",
    "design_bandpass",
    "event_mask",
    "event_membership",
    "instantaneous_frequency",
    "is_discontinuous",
    "nearest_event",
]
