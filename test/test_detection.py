import logging

import numpy as np
import pytest

from core.detection import (
    DETECTOR_REGISTRY,
    DeltaWaveDetector,
    HalfWaveDetector,
    SlowOscillationDetector,
    SlowWaveDetector,
    ThresholdConfig,
    create_detector,
)
from shared.errors import InternalInvariantError, InvalidConfigurationError
from shared.models import CrossingPolarity, SampleTrace, WaveClass, WaveType
from test.fixtures.signal_generators import make_gapped_timestamps, make_sine, make_slow_wave_train

SR = 100.0
PERIOD = 1.0 / 0.75


def _sine_trace(duration: float = 60.0, **kwargs) -> SampleTrace:
    return SampleTrace.regular(make_sine(0.75, 50.0, duration, SR), SR, channel="C3", **kwargs)


def test_fixed_sine_yields_one_event_per_cycle(sine_trace, wide_band_config):
    result = SlowWaveDetector(wide_band_config).detect(sine_trace)

    # 45 cycles, but only 45 bounding crossings fit in 60 s
    assert 43 <= result.count <= 45
    assert result.diagnostic is None
    assert result.n_crossings == result.n_candidates + 1
    assert result.n_duration_survivors == result.n_candidates
    interior = result.events[3:-3]
    assert interior
    for ev in interior:
        assert ev.duration == pytest.approx(PERIOD, abs=0.05)
        assert ev.negative_amplitude == pytest.approx(-50.0, abs=2.5)
        assert ev.positive_amplitude == pytest.approx(50.0, abs=2.5)
    for ev in result.events:
        assert ev.negative_amplitude < 0 <= ev.positive_amplitude
        assert ev.start_index < ev.mid_index < ev.stop_index
        assert ev.phase.size == ev.stop_index - ev.start_index + 1
        assert ev.wave_type is WaveType.FULL
    starts = [ev.start_index for ev in result.events]
    assert starts == sorted(starts)


def test_relative_threshold_above_every_wave_rejects_all(sine_trace):
    config = ThresholdConfig(low_hz=0.3, high_hz=4.0, relative_multiplier=10.0, use_mean=True)
    result = SlowWaveDetector(config).detect(sine_trace)

    assert result.count == 0
    assert result.empty
    assert result.n_candidates >= 43
    assert result.population is not None
    assert result.population.relative_negative_threshold == pytest.approx(10.0 * result.population.negative_center)
    assert result.rejections["relative_negative"] == result.n_candidates


def test_gap_excludes_the_spanning_candidate(wide_band_config):
    base = SlowWaveDetector(wide_band_config).detect(_sine_trace())
    samples = make_sine(0.75, 50.0, 60.0, SR)
    gapped = SampleTrace(
        samples=samples,
        timestamps=make_gapped_timestamps(samples.size, SR, gap_index=3040, gap_sec=10.0),
        sample_rate=SR,
        channel="C3",
    )
    result = SlowWaveDetector(wide_band_config).detect(gapped)

    assert result.n_candidates == base.n_candidates - 1
    assert result.count == base.count - 1
    assert not any(ev.start_index < 3040 <= ev.stop_index for ev in result.events)
    # events after the gap carry the shifted timestamps
    late = [ev for ev in result.events if ev.start_index >= 3040]
    assert late and late[0].start_time > 40.0


def test_short_trace_reports_diagnostic(wide_band_config, caplog):
    with caplog.at_level(logging.WARNING, logger="core.detection.slow_wave"):
        result = SlowWaveDetector(wide_band_config).detect(_sine_trace(duration=5.0))

    assert result.empty
    assert "zero crossings" in result.diagnostic
    assert result.n_candidates == 0
    assert result.filtered.shape == (500,)
    assert len(result.phase) == 500
    assert any("zero crossings" in rec.getMessage() for rec in caplog.records)


def test_duration_filter_can_empty_the_population():
    config = ThresholdConfig(low_hz=0.3, high_hz=4.0, duration_min=0.2, duration_max=0.6)
    result = SlowWaveDetector(config).detect(_sine_trace(duration=20.0))

    assert result.empty
    assert result.n_candidates > 0
    assert result.n_duration_survivors == 0
    assert "duration criteria" in result.diagnostic


def test_sample_rate_checked_before_scanning():
    detector = SlowWaveDetector(ThresholdConfig(low_hz=0.5, high_hz=60.0))
    with pytest.raises(InvalidConfigurationError):
        detector.detect(_sine_trace())


def test_contradictory_config_rejected_at_construction():
    with pytest.raises(InvalidConfigurationError):
        SlowWaveDetector(ThresholdConfig(slow_oscillations_only=True))


def test_invariant_violation_carries_channel():
    def poisoned(samples, sample_rate, band, ripple, width):
        out = np.array(samples, dtype=np.float64)
        out[3050] = np.nan
        return out

    detector = SlowWaveDetector(ThresholdConfig(low_hz=0.3, high_hz=4.0), filter_fn=poisoned)
    with pytest.raises(InternalInvariantError) as info:
        detector.detect(_sine_trace())
    assert info.value.channel == "C3"
    assert info.value.event_index is not None
    assert "channel=C3" in str(info.value)


def test_filter_must_preserve_length():
    detector = SlowWaveDetector(filter_fn=lambda s, sr, band, ripple, width: np.asarray(s)[:-1])
    with pytest.raises(ValueError):
        detector.detect(_sine_trace())


def test_negative_to_positive_polarity(sine_trace):
    config = ThresholdConfig(low_hz=0.3, high_hz=4.0, polarity=CrossingPolarity.NEG_TO_POS)
    result = SlowWaveDetector(config).detect(sine_trace)
    assert 43 <= result.count <= 45
    for ev in result.events:
        assert ev.positive_peak.index < ev.mid_index < ev.negative_peak.index


def test_half_wave_detector(sine_trace):
    result = HalfWaveDetector().detect(sine_trace)
    assert result.count > 0
    assert all(ev.wave_type is WaveType.HALF for ev in result.events)


def test_percentile_detectors_classify():
    samples = make_slow_wave_train(120.0, SR, seed=11, freq_range=(1.0, 2.5))
    trace = SampleTrace.regular(samples, SR, channel="Fz")

    so = SlowOscillationDetector().detect(trace)
    assert so.count > 0
    for ev in so.events:
        assert ev.wave_class is WaveClass.SLOW_OSCILLATION
        assert 0.15 <= ev.transition <= 0.5
        assert ev.negative_amplitude < so.population.percentile_negative_threshold
        assert ev.positive_amplitude > so.population.percentile_positive_threshold

    delta = DeltaWaveDetector().detect(trace)
    assert all(ev.wave_class is WaveClass.DELTA for ev in delta.events)
    so_starts = {ev.start_index for ev in so.events}
    assert so_starts.isdisjoint(ev.start_index for ev in delta.events)


def test_registry_and_factory():
    assert {"slow_wave", "half_wave", "slow_oscillation", "delta_wave"} <= set(DETECTOR_REGISTRY)

    det = create_detector("slow_oscillation")
    assert isinstance(det, SlowOscillationDetector)
    assert det.config.percentile_negative == 60.0
    assert det.config.slow_oscillations_only

    det = create_detector("slow_wave", low_hz=0.3, polarity="neg2pos")
    assert det.config.low_hz == 0.3
    assert det.config.polarity is CrossingPolarity.NEG_TO_POS

    with pytest.raises(ValueError):
        create_detector("spindle")


def test_configure_validates():
    det = SlowWaveDetector()
    det.configure(duration_min=0.8, duration_max=2.0, wave_type="half")
    assert det.config.duration_min == 0.8
    assert det.config.wave_type is WaveType.HALF
    assert det.parameters["duration_min"].default == 0.8

    with pytest.raises(InvalidConfigurationError):
        det.configure(no_such_field=1)
    with pytest.raises(InvalidConfigurationError):
        det.configure(delta_only=True)
    with pytest.raises(ValueError):
        det.configure(polarity="sideways")
    # failed updates leave the previous configuration in place
    assert det.config.duration_min == 0.8
    assert not det.config.delta_only
