from __future__ import annotations

import math
from dataclasses import dataclass, asdict
from typing import Callable, Dict, Tuple

import numpy as np
from scipy import signal

# filter(trace, sample_rate, band, ripple, transition_width) -> trace
FilterFunction = Callable[[np.ndarray, float, Tuple[float, float], float, float], np.ndarray]


@dataclass(frozen=True)
class BandPassSettings:
    """Kaiser-window FIR band-pass configuration."""

    low_hz: float = 0.5
    high_hz: float = 4.0
    ripple: float = 0.01
    transition_width_hz: float = 0.5

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)

    @property
    def band(self) -> Tuple[float, float]:
        return (self.low_hz, self.high_hz)

    @property
    def attenuation_db(self) -> float:
        return -20.0 * math.log10(self.ripple)

    def validate(self, sample_rate: float) -> None:
        if not np.isfinite(sample_rate) or sample_rate <= 0:
            raise ValueError("sample_rate must be positive")
        nyquist = sample_rate / 2.0
        if not (np.isfinite(self.low_hz) and np.isfinite(self.high_hz)):
            raise ValueError("band edges must be finite")
        if not (0 < self.low_hz < self.high_hz < nyquist):
            raise ValueError("band must satisfy 0 < low_hz < high_hz < Nyquist")
        if not (np.isfinite(self.ripple) and 0 < self.ripple < 1):
            raise ValueError("ripple must be between 0 and 1")
        if not (np.isfinite(self.transition_width_hz) and 0 < self.transition_width_hz < nyquist):
            raise ValueError("transition_width_hz must be between 0 and Nyquist")


def design_bandpass(settings: BandPassSettings, sample_rate: float) -> np.ndarray:
    """Return odd-length, linear-phase FIR taps for `settings`."""
    settings.validate(sample_rate)
    nyquist = sample_rate / 2.0
    numtaps, beta = signal.kaiserord(settings.attenuation_db, settings.transition_width_hz / nyquist)
    if numtaps % 2 == 0:
        numtaps += 1
    return signal.firwin(
        numtaps,
        [settings.low_hz, settings.high_hz],
        window=("kaiser", beta),
        pass_zero=False,
        fs=sample_rate,
    )


class BandPassFilter:
    """Zero-delay FIR band-pass that caches its taps per sample rate."""

    def __init__(self, settings: BandPassSettings) -> None:
        self._settings = settings
        self._taps: Dict[float, np.ndarray] = {}

    @property
    def settings(self) -> BandPassSettings:
        return self._settings

    def taps(self, sample_rate: float) -> np.ndarray:
        key = float(sample_rate)
        if key not in self._taps:
            self._taps[key] = design_bandpass(self._settings, key)
        return self._taps[key]

    def apply(self, samples: np.ndarray, sample_rate: float) -> np.ndarray:
        data = np.asarray(samples, dtype=np.float64)
        if data.ndim != 1:
            raise ValueError("samples must be 1D")
        if data.size == 0:
            return data.copy()
        taps = self.taps(sample_rate)
        # odd symmetric taps centred by mode="same": no group delay
        filtered = signal.fftconvolve(data, taps, mode="same")
        return filtered - float(np.mean(filtered))


def bandpass_filter(
    samples: np.ndarray,
    sample_rate: float,
    band: Tuple[float, float],
    ripple: float = 0.01,
    transition_width: float = 0.5,
) -> np.ndarray:
    """Zero-mean band-limited copy of `samples`, same length."""
    settings = BandPassSettings(low_hz=band[0], high_hz=band[1], ripple=ripple, transition_width_hz=transition_width)
    return BandPassFilter(settings).apply(samples, sample_rate)


__all__ = ["BandPassFilter", "BandPassSettings", "FilterFunction", "bandpass_filter", "design_bandpass"]
