"""Phase-locked averaging, coupling statistics and per-channel summaries."""

from .analysis_worker import JobResult, WorkerPool, run_channels, run_coupling
from .averaging import phase_locked_average, time_locked_average
from .coupling import couple, phase_events
from .models import (
    ChannelReport,
    ChannelSummary,
    CouplingConfig,
    CouplingResult,
    EpochRow,
    NullSummary,
    PhaseBinOverlap,
    PhaseLockedAverage,
    ShuffleMode,
    TimeLockedAverage,
)
from .summary import epoch_table, event_rows, summarize

__all__ = [
    "ChannelReport",
    "ChannelSummary",
    "CouplingConfig",
    "CouplingResult",
    "EpochRow",
    "JobResult",
    "NullSummary",
    "PhaseBinOverlap",
    "PhaseLockedAverage",
    "ShuffleMode",
    "TimeLockedAverage",
    "WorkerPool",
    "couple",
    "epoch_table",
    "event_rows",
    "phase_events",
    "phase_locked_average",
    "run_channels",
    "run_coupling",
    "summarize",
    "time_locked_average",
]
