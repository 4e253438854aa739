import threading
import time

import numpy as np
import pytest

from analysis.analysis_worker import JobResult, WorkerPool, run_channels, run_coupling
from analysis.models import CouplingConfig
from core.detection import SlowWaveDetector, ThresholdConfig
from shared.errors import InvalidConfigurationError
from shared.models import SampleTrace
from test.fixtures.signal_generators import make_sine

SR = 100.0


def _trace(channel: str, duration: float = 60.0, freq: float = 0.75) -> SampleTrace:
    return SampleTrace.regular(make_sine(freq, 50.0, duration, SR), SR, channel=channel)


def _detector() -> SlowWaveDetector:
    return SlowWaveDetector(ThresholdConfig(low_hz=0.3, high_hz=4.0))


def test_results_come_back_in_submission_order() -> None:
    def slow_identity(value: int) -> int:
        time.sleep(0.01 * (5 - value))
        return value

    with WorkerPool(3) as pool:
        assert pool.map(slow_identity, range(6)) == [0, 1, 2, 3, 4, 5]


def test_job_errors_are_captured() -> None:
    def boom(value: int) -> int:
        raise RuntimeError(f"bad {value}")

    with WorkerPool(2) as pool:
        pool.submit(boom, 1)
        pool.submit(lambda: 7)
        outcomes = pool.gather()

    assert [o.job_id for o in outcomes] == [0, 1]
    assert not outcomes[0].ok and isinstance(outcomes[0].error, RuntimeError)
    assert outcomes[1] == JobResult(job_id=1, value=7)


def test_map_reraises_first_error() -> None:
    def maybe_fail(value: int) -> int:
        if value == 2:
            raise ValueError("two")
        return value

    with WorkerPool(2) as pool:
        with pytest.raises(ValueError, match="two"):
            pool.map(maybe_fail, range(4))


def test_workers_stop_on_close() -> None:
    pool = WorkerPool(2)
    pool.start()
    workers = [t for t in threading.enumerate() if t.name.startswith("AnalysisWorker-")]
    assert len(workers) >= 2
    pool.close()
    assert pool.map(lambda v: v + 1, [1]) == [2]
    pool.close()


def test_invalid_pool_size() -> None:
    with pytest.raises(ValueError):
        WorkerPool(0)


@pytest.mark.parametrize("n_workers", [1, 3])
def test_run_channels_reports_in_input_order(n_workers: int) -> None:
    traces = [_trace("C3"), _trace("C4", freq=1.0), _trace("Pz", duration=5.0)]
    reports = run_channels(traces, _detector, n_workers=n_workers)

    assert [r.channel for r in reports] == ["C3", "C4", "Pz"]
    assert all(r.ok for r in reports)
    assert reports[0].summary.count == reports[0].result.count
    assert reports[1].summary.rate_per_min == pytest.approx(reports[1].result.count)
    # a short channel is an empty result, not an error
    assert reports[2].result.empty
    assert reports[2].summary.count == 0


def test_run_channels_validates_every_channel_first() -> None:
    calls = []

    def factory() -> SlowWaveDetector:
        calls.append(1)
        return SlowWaveDetector(ThresholdConfig(low_hz=0.3, high_hz=40.0))

    low_rate = SampleTrace.regular(np.zeros(500), 50.0, channel="slow")
    with pytest.raises(InvalidConfigurationError):
        run_channels([_trace("C3"), low_rate], factory)
    assert len(calls) == 2


def test_run_channels_isolates_invariant_failures() -> None:
    def poisoned(samples, sample_rate, band, ripple, width):
        out = np.array(samples, dtype=np.float64)
        if out.size > 3050:
            out[3050] = np.nan
        return out

    def factory() -> SlowWaveDetector:
        return SlowWaveDetector(ThresholdConfig(low_hz=0.3, high_hz=4.0), filter_fn=poisoned)

    traces = [_trace("C3"), SampleTrace.regular(make_sine(0.75, 50.0, 20.0, SR), SR, channel="C4")]
    reports = run_channels(traces, factory, n_workers=2)

    assert not reports[0].ok
    assert "channel=C3" in reports[0].error
    assert reports[1].ok


def test_run_coupling_one_report_per_unit() -> None:
    anchor = _detector().detect(_trace("C3"))
    targets = anchor.peak_indices()
    units = [(anchor, targets, 0.75), (anchor, [anchor.n_samples + 10], 0.75)]
    reports = run_coupling(units, CouplingConfig(), n_workers=2)

    assert [r.channel for r in reports] == ["C3", "C3"]
    assert reports[0].ok
    assert reports[0].result.n_included == len(targets)
    assert not reports[1].ok
    assert "outside" in reports[1].error
