import pickle

import numpy as np
import pytest

from shared.errors import InternalInvariantError
from shared.models import (
    AcceptedEvent,
    Anchor,
    CandidateEvent,
    CrossingPolarity,
    EndOfStream,
    Peak,
    PhaseTrace,
    SampleTrace,
    WaveType,
)
from test.fixtures.event_factory import make_event


def _event(wave_type: WaveType, neg: float = -40.0, pos: float = 20.0) -> AcceptedEvent:
    # start 0 s, trough 0.2 s, mid 0.5 s, peak 0.7 s, stop 1.0 s
    return AcceptedEvent(
        start_index=0,
        stop_index=100,
        start_time=0.0,
        stop_time=1.0,
        negative_peak=Peak(20, 0.2, neg),
        positive_peak=Peak(70, 0.7, pos),
        mid_index=50,
        mid_time=0.5,
        wave_type=wave_type,
    )


def test_sample_trace_is_readonly_copy():
    samples = np.arange(10, dtype=np.float64)
    trace = SampleTrace.regular(samples, 10.0, start_time=5.0, channel="Cz")

    assert trace.n_samples == 10
    assert trace.duration_sec == pytest.approx(1.0)
    assert trace.timestamps[0] == 5.0 and trace.timestamps[-1] == pytest.approx(5.9)
    assert not trace.samples.flags.writeable
    samples[0] = 99.0
    assert trace.samples[0] == 0.0

    filtered = trace.with_samples(samples * 2)
    assert filtered.channel == "Cz"
    np.testing.assert_array_equal(filtered.timestamps, trace.timestamps)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"samples": np.zeros(3), "timestamps": np.zeros(4), "sample_rate": 10.0},
        {"samples": np.zeros(3), "timestamps": np.array([0.0, 0.2, 0.1]), "sample_rate": 10.0},
        {"samples": np.zeros(3), "timestamps": np.arange(3.0), "sample_rate": 0.0},
        {"samples": np.zeros((2, 3)), "timestamps": np.arange(3.0), "sample_rate": 10.0},
    ],
)
def test_sample_trace_rejects_bad_input(kwargs):
    with pytest.raises(ValueError):
        SampleTrace(**kwargs)


def test_candidate_geometry():
    ev = _event(WaveType.FULL)
    assert ev.duration == pytest.approx(1.0)
    assert ev.negative_half == (0.0, 0.5)
    assert ev.positive_half == (0.5, 1.0)
    assert ev.peak_to_peak == pytest.approx(60.0)
    assert ev.transition == pytest.approx(0.5)
    assert ev.transition_frequency == pytest.approx(1.0)


def test_candidate_rejects_misplaced_mid():
    with pytest.raises(ValueError):
        CandidateEvent(
            start_index=0,
            stop_index=10,
            start_time=0.0,
            stop_time=0.1,
            negative_peak=Peak(2, 0.02, -1.0),
            positive_peak=Peak(7, 0.07, 1.0),
            mid_index=10,
            mid_time=0.1,
        )


def test_negative_first_halves_swap_for_opposite_polarity():
    ev = CandidateEvent(
        start_index=0,
        stop_index=100,
        start_time=0.0,
        stop_time=1.0,
        negative_peak=Peak(70, 0.7, -1.0),
        positive_peak=Peak(20, 0.2, 1.0),
        mid_index=40,
        mid_time=0.4,
        polarity=CrossingPolarity.NEG_TO_POS,
    )
    assert ev.positive_half == (0.0, 0.4)
    assert ev.negative_duration == pytest.approx(0.6)


def test_slopes_per_wave_type():
    full = _event(WaveType.FULL)
    assert full.slope_neg1 == pytest.approx(-40.0 / 0.2)
    assert full.slope_neg2 == pytest.approx(40.0 / 0.3)
    assert full.slope_pos1 == pytest.approx(20.0 / 0.2)
    assert full.slope_pos2 == pytest.approx(-20.0 / 0.3)
    assert full.slope == full.slope_neg2

    neg_only = _event(WaveType.NEGATIVE_HALF)
    assert neg_only.slope_pos1 is None and neg_only.slope_pos2 is None
    assert neg_only.slope_neg2 is not None

    pos_only = _event(WaveType.POSITIVE_HALF, neg=5.0)
    assert pos_only.slope_neg1 is None and pos_only.slope is None
    assert pos_only.slope_pos1 == pytest.approx(20.0 / 0.2)


def test_full_wave_requires_trough_and_peak():
    with pytest.raises(ValueError):
        _event(WaveType.FULL, neg=5.0)
    # half waves carry no such constraint
    _event(WaveType.HALF, neg=5.0)


def test_anchor_index():
    ev = make_event(100, 200)
    assert ev.anchor_index(Anchor.ONSET) == 100
    assert ev.anchor_index(Anchor.NEGATIVE_PEAK) == 125
    assert ev.anchor_index(Anchor.POSITIVE_PEAK) == 175


def test_phase_trace_shapes():
    trace = PhaseTrace(degrees=np.array([0.0, 90.0, 180.0]), magnitude=np.ones(3))
    assert len(trace) == 3
    np.testing.assert_allclose(trace.radians, [0.0, np.pi / 2, np.pi])
    with pytest.raises(ValueError):
        PhaseTrace(degrees=np.zeros(3), magnitude=np.zeros(4))


def test_end_of_stream_survives_pickling():
    assert pickle.loads(pickle.dumps(EndOfStream)) is EndOfStream
    assert repr(EndOfStream) == "EndOfStream"


def test_invariant_error_context():
    err = InternalInvariantError("no interior crossing", event_index=3)
    assert "event_index=3" in str(err)
    scoped = err.with_context(channel="C4", frequency=1.5)
    assert scoped.channel == "C4"
    assert scoped.frequency == 1.5
    assert scoped.event_index == 3
    assert str(scoped) == "no interior crossing (channel=C4, frequency=1.5, event_index=3)"


def test_invariant_error_context_keeps_parenthesised_message():
    err = InternalInvariantError("extrema disagree (trough after peak)", event_index=7)
    scoped = err.with_context(channel="O2")
    assert scoped.detail == "extrema disagree (trough after peak)"
    assert str(scoped) == "extrema disagree (trough after peak) (channel=O2, event_index=7)"
    # applying context twice does not nest it
    assert str(scoped.with_context(frequency=0.8)) == (
        "extrema disagree (trough after peak) (channel=O2, frequency=0.8, event_index=7)"
    )
