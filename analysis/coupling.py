"""Phase coupling between an anchor oscillation and a target event stream.

The observed statistics are the inter-trial phase concentration (ITPC) of
the anchor phase at each target sample, its asymptotic Rayleigh p-value,
the mean coupling angle, the number of targets overlapping the anchor
events and a per-phase-bin count of targets.

The permutation null circularly shifts every target by one common random
offset per replicate, either over the whole trace or within each target's
epoch. That shift drives the overlap and phase-bin nulls. When a mask of
anchor events is used, the ITPC null instead moves each included target to
a random position inside its own spanning masked region, so the null keeps
the observed overlap fixed.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from core.detection.slow_wave import DetectionResult
from core.timeline import epoch_length, event_mask, seconds_to_samples
from shared.errors import NumericDegeneracyError
from shared.models import PhaseTrace

from .metrics import (
    circular_mean,
    empirical_p,
    null_moments,
    phase_bin_counts,
    phase_bin_edges,
    rayleigh_p,
    resultant_length,
    z_score,
)
from .models import CouplingConfig, CouplingResult, NullSummary, PhaseBinOverlap, ShuffleMode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _NullBlock:
    itpc: np.ndarray
    significant: np.ndarray
    overlap: np.ndarray
    bins: np.ndarray


@dataclass(frozen=True)
class _Layout:
    """Per-target geometry needed by every permutation replicate."""

    targets: np.ndarray
    included: np.ndarray
    n_samples: int
    max_shift: int
    epoch_start: Optional[np.ndarray]
    epoch_len: Optional[np.ndarray]
    region_start: Optional[np.ndarray]
    region_size: Optional[np.ndarray]


def _mask_regions(mask: np.ndarray, positions: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Start and length of the contiguous True run containing each position."""
    padded = np.concatenate(([False], mask, [False])).astype(np.int8)
    edges = np.diff(padded)
    starts = np.flatnonzero(edges == 1)
    stops = np.flatnonzero(edges == -1)
    run = np.searchsorted(starts, positions, side="right") - 1
    return starts[run], stops[run] - starts[run]


def _layout(
    targets: np.ndarray,
    included: np.ndarray,
    n_samples: int,
    mask: Optional[np.ndarray],
    config: CouplingConfig,
    sample_rate: float,
) -> _Layout:
    epoch_start = epoch_len = None
    if config.shuffle is ShuffleMode.WITHIN_EPOCH:
        es = epoch_length(sample_rate, config.epoch_sec)
        epoch_start = (targets // es) * es
        # final epoch may be partial
        epoch_len = np.minimum(es, n_samples - epoch_start)
        max_shift = es
    else:
        max_shift = n_samples

    region_start = region_size = None
    if mask is not None:
        region_start, region_size = _mask_regions(mask, targets[included])

    return _Layout(
        targets=targets,
        included=included,
        n_samples=n_samples,
        max_shift=max_shift,
        epoch_start=epoch_start,
        epoch_len=epoch_len,
        region_start=region_start,
        region_size=region_size,
    )


def _null_block(
    seed: np.random.SeedSequence,
    n_reps: int,
    layout: _Layout,
    degrees: np.ndarray,
    mask: Optional[np.ndarray],
    n_bins: int,
) -> _NullBlock:
    rng = np.random.default_rng(seed)
    targets = layout.targets
    inc_targets = targets[layout.included]
    counted = int(inc_targets.size)

    itpc = np.zeros(n_reps, dtype=np.float64)
    significant = np.zeros(n_reps, dtype=bool)
    overlap = np.zeros(n_reps, dtype=np.int64)
    bins = np.zeros((n_reps, n_bins), dtype=np.int64)

    for r in range(n_reps):
        pp = int(rng.integers(layout.max_shift))
        if layout.epoch_start is None:
            shifted = (targets + pp) % layout.n_samples
        else:
            shifted = layout.epoch_start + (targets - layout.epoch_start + pp) % layout.epoch_len

        if mask is not None:
            overlap[r] = int(np.count_nonzero(mask[shifted]))
            if counted:
                shift = rng.integers(0, layout.region_size)
                offset = inc_targets - layout.region_start
                within = layout.region_start + (offset + shift) % layout.region_size
                null_phase = degrees[within]
            else:
                null_phase = degrees[:0]
            bins[r] = phase_bin_counts(null_phase, n_bins)
        else:
            overlap[r] = targets.size
            bins[r] = phase_bin_counts(degrees[shifted], n_bins)
            null_phase = degrees[shifted]

        if counted:
            itpc[r] = resultant_length(null_phase)
            significant[r] = rayleigh_p(counted, itpc[r]) < 0.05

    return _NullBlock(itpc=itpc, significant=significant, overlap=overlap, bins=bins)


def _block_sizes(n_reps: int, block_size: int) -> List[int]:
    full, rest = divmod(n_reps, block_size)
    return [block_size] * full + ([rest] if rest else [])


def _summarize_null(observed: float, null: np.ndarray, label: str) -> NullSummary:
    mean, sd = null_moments(null)
    try:
        z: Optional[float] = z_score(observed, null)
        undefined = False
    except NumericDegeneracyError:
        logger.warning("%s coupling statistic undefined: null distribution has zero spread", label)
        z = None
        undefined = True
    return NullSummary(
        observed=float(observed),
        mean=mean,
        sd=sd,
        p_empirical=empirical_p(observed, null),
        z=z,
        undefined=undefined,
        n_reps=int(null.size),
    )


def _bin_null(observed: np.ndarray, null: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    mean = null.mean(axis=0)
    sd = null.std(axis=0, ddof=1)
    z = np.full(mean.shape, np.nan)
    ok = sd > 0
    z[ok] = (observed[ok] - mean[ok]) / sd[ok]
    return mean, sd, z


def phase_events(
    targets: Sequence[int],
    phase: PhaseTrace,
    config: CouplingConfig,
    *,
    sample_rate: float,
    mask: Optional[np.ndarray] = None,
    pool=None,
    channel: Optional[str] = None,
    frequency: Optional[float] = None,
) -> CouplingResult:
    """Couple target sample indices to the anchor phase trace.

    Targets outside ``mask`` (when given) are excluded from the ITPC, angle
    and phase-bin statistics. Per-bin z-scores are NaN where the bin's null
    has zero spread.
    """
    config.validate()
    if sample_rate <= 0:
        raise ValueError("sample_rate must be positive")
    n_samples = len(phase)
    degrees = phase.degrees
    e = np.asarray(targets, dtype=np.int64).reshape(-1)
    if e.size and (e.min() < 0 or e.max() >= n_samples):
        raise ValueError("target index outside the phase trace")
    if mask is not None:
        mask = np.asarray(mask, dtype=bool)
        if mask.shape[0] != n_samples:
            raise ValueError("mask must share the phase trace's sample grid")
        included = mask[e]
    else:
        included = np.ones(e.size, dtype=bool)

    obs_phase = degrees[e[included]]
    counted = int(obs_phase.size)
    itpc = resultant_length(obs_phase)
    target_phases = np.full(e.size, np.nan)
    target_phases[included] = obs_phase
    edges = phase_bin_edges(config.n_phase_bins)
    obs_bins = phase_bin_counts(obs_phase, config.n_phase_bins)

    result = dict(
        shuffle_mode=config.shuffle,
        n_targets=int(e.size),
        n_included=counted,
        itpc=itpc,
        rayleigh_p=rayleigh_p(counted, itpc),
        angle=circular_mean(obs_phase),
        overlap=counted,
        target_phases=target_phases,
        target_included=included,
        channel=channel,
        frequency=frequency,
    )
    logger.info(
        "Coupling %s: %d of %d targets included, ITPC %.4f, angle %s",
        channel or "-",
        counted,
        e.size,
        itpc,
        result["angle"],
    )

    if config.n_reps == 0:
        return CouplingResult(phase_bins=PhaseBinOverlap(bin_edges=edges, observed=obs_bins), **result)

    root = np.random.SeedSequence(config.seed)
    sizes = _block_sizes(config.n_reps, config.block_size)
    seeds = root.spawn(len(sizes))
    layout = _layout(e, included, n_samples, mask, config, sample_rate)

    args = [(seed, size, layout, degrees, mask, config.n_phase_bins) for seed, size in zip(seeds, sizes)]
    if config.n_workers > 1 and len(args) > 1:
        if pool is None:
            from .analysis_worker import WorkerPool

            with WorkerPool(config.n_workers) as own:
                blocks = own.map(lambda a: _null_block(*a), args)
        else:
            blocks = pool.map(lambda a: _null_block(*a), args)
    else:
        blocks = []
        for i, a in enumerate(args):
            blocks.append(_null_block(*a))
            logger.debug("Permutation block %d/%d done", i + 1, len(args))

    null_itpc = np.concatenate([b.itpc for b in blocks])
    null_sig = np.concatenate([b.significant for b in blocks])
    null_overlap = np.concatenate([b.overlap for b in blocks])
    null_bins = np.concatenate([b.bins for b in blocks], axis=0)

    if config.stratify_by_phase:
        bin_mean, bin_sd, bin_z = _bin_null(obs_bins, null_bins)
        bins = PhaseBinOverlap(bin_edges=edges, observed=obs_bins, null_mean=bin_mean, null_sd=bin_sd, z=bin_z)
    else:
        bins = PhaseBinOverlap(bin_edges=edges, observed=obs_bins)

    return CouplingResult(
        phase_bins=bins,
        itpc_null=_summarize_null(itpc, null_itpc, "ITPC"),
        overlap_null=_summarize_null(counted, null_overlap, "Overlap") if mask is not None else None,
        significance_rate=float(np.mean(null_sig)),
        n_reps=config.n_reps,
        seed=int(root.entropy),
        **result,
    )


def couple(
    anchor: DetectionResult,
    targets: Sequence[int],
    config: CouplingConfig,
    *,
    frequency: Optional[float] = None,
    pool=None,
) -> CouplingResult:
    """Couple targets to a detector run's phase, masked by its events when configured."""
    mask = None
    if config.use_mask:
        pad = seconds_to_samples(config.tolerance_sec, anchor.sample_rate)
        mask = event_mask(anchor.events, anchor.n_samples, pad_samples=pad)
    return phase_events(
        targets,
        anchor.phase,
        config,
        sample_rate=anchor.sample_rate,
        mask=mask,
        pool=pool,
        channel=anchor.channel,
        frequency=frequency,
    )


__all__ = ["couple", "phase_events"]
