from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
ROOT_STR = str(ROOT)
if ROOT_STR not in sys.path:
    sys.path.insert(0, ROOT_STR)

from core.detection import ThresholdConfig  # noqa: E402
from shared.models import SampleTrace  # noqa: E402
from test.fixtures.signal_generators import make_sine  # noqa: E402

SAMPLE_RATE = 100.0


@pytest.fixture
def sine_trace() -> SampleTrace:
    """60 s of a 0.75 Hz sine at 100 Hz."""
    return SampleTrace.regular(make_sine(0.75, 50.0, 60.0, SAMPLE_RATE), SAMPLE_RATE, channel="C3")


@pytest.fixture
def wide_band_config() -> ThresholdConfig:
    return ThresholdConfig(low_hz=0.3, high_hz=4.0)


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(1234)
