"""Circular and permutation statistics used by the coupling engine.

This module provides:
- circular_mean: mean direction of a set of phases (degrees)
- resultant_length: mean resultant length, an ITPC-style concentration
- rayleigh_p: asymptotic Rayleigh p-value exp(-n R^2)
- empirical_p: one-sided permutation p-value with +1/+1 correction
- z_score: standardised observed statistic against a null sample
- central_tendency: mean/median helpers that return None for empty input
- phase_bin_counts: histogram of phases over equal-width bins
"""
import math
from typing import Optional, Sequence, Tuple

import numpy as np

from shared.errors import NumericDegeneracyError


def _as_radians(degrees: Sequence[float]) -> np.ndarray:
    return np.deg2rad(np.asarray(degrees, dtype=np.float64))


def mean_vector(degrees: Sequence[float]) -> complex:
    rad = _as_radians(degrees)
    if rad.size == 0:
        return 0j
    return complex(np.mean(np.exp(1j * rad)))


def circular_mean(degrees: Sequence[float]) -> Optional[float]:
    """Mean direction in [0, 360), or None for an empty set."""
    if len(degrees) == 0:
        return None
    angle = math.degrees(np.angle(mean_vector(degrees))) % 360.0
    return 0.0 if angle >= 360.0 else angle


def resultant_length(degrees: Sequence[float]) -> float:
    """Mean resultant length in [0, 1]; 0 for an empty set."""
    if len(degrees) == 0:
        return 0.0
    return float(min(1.0, abs(mean_vector(degrees))))


def rayleigh_p(n: int, r: float) -> float:
    if n <= 0:
        return 1.0
    return float(math.exp(-n * r * r))


def empirical_p(observed: float, null: Sequence[float]) -> float:
    """Fraction of null values at least as large as ``observed``, with +1/+1 correction."""
    values = np.asarray(null, dtype=np.float64)
    return float((np.count_nonzero(values >= observed) + 1) / (values.size + 1))


def null_moments(null: Sequence[float]) -> Tuple[float, float]:
    values = np.asarray(null, dtype=np.float64)
    if values.size == 0:
        return float("nan"), float("nan")
    sd = float(np.std(values, ddof=1)) if values.size > 1 else 0.0
    return float(np.mean(values)), sd


def z_score(observed: float, null: Sequence[float]) -> float:
    mean, sd = null_moments(null)
    if not sd > 0:
        raise NumericDegeneracyError("null distribution has zero standard deviation")
    return float((observed - mean) / sd)


def central_tendency(values: Sequence[Optional[float]]) -> Tuple[Optional[float], Optional[float]]:
    """``(mean, median)`` over non-None values, ``(None, None)`` if there are none."""
    data = np.asarray([v for v in values if v is not None], dtype=np.float64)
    if data.size == 0:
        return None, None
    return float(np.mean(data)), float(np.median(data))


def phase_bin_edges(n_bins: int) -> np.ndarray:
    """Upper bin edges ``360/n, 2*360/n, ..., 360``."""
    if n_bins < 1:
        raise ValueError("n_bins must be positive")
    return np.arange(1, n_bins + 1, dtype=np.float64) * (360.0 / n_bins)


def phase_bin_counts(degrees: Sequence[float], n_bins: int) -> np.ndarray:
    data = np.asarray(degrees, dtype=np.float64)
    idx = np.floor(data / (360.0 / n_bins)).astype(np.int64)
    idx = np.clip(idx, 0, n_bins - 1)
    return np.bincount(idx, minlength=n_bins).astype(np.int64)
