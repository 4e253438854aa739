from __future__ import annotations

import itertools
import logging
import queue
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from core.detection import DetectionResult, OscillationDetector
from shared.errors import InternalInvariantError
from shared.models import EndOfStream, SampleTrace

from .coupling import couple
from .models import ChannelReport, CouplingConfig
from .summary import summarize

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JobResult:
    job_id: int
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class AnalysisWorker(threading.Thread):
    """Background worker that runs queued jobs and records their outcomes."""

    def __init__(self, pool: "WorkerPool", index: int) -> None:
        super().__init__(name=f"AnalysisWorker-{index}", daemon=True)
        self._pool = pool

    def run(self) -> None:  # type: ignore[override]
        while True:
            item = self._pool.input_queue.get()
            if item is EndOfStream:
                break
            job_id, fn, args, kwargs = item
            try:
                outcome = JobResult(job_id=job_id, value=fn(*args, **kwargs))
            except Exception as exc:  # captured into the job result
                outcome = JobResult(job_id=job_id, error=exc)
            self._pool._complete(outcome)


class WorkerPool:
    """
    Fixed set of worker threads fed from one queue.

    Jobs are numbered on submission and results are returned in submission
    order, independent of which worker ran them or when.
    """

    def __init__(self, n_workers: int = 1) -> None:
        if n_workers < 1:
            raise ValueError("n_workers must be at least 1")
        self.n_workers = int(n_workers)
        self.input_queue: "queue.Queue[Tuple[int, Callable, tuple, dict] | EndOfStream]" = queue.Queue()
        self._ids = itertools.count()
        self._results: Dict[int, JobResult] = {}
        self._pending = 0
        self._cond = threading.Condition()
        self._workers: List[AnalysisWorker] = []

    def start(self) -> None:
        if self._workers:
            return
        self._workers = [AnalysisWorker(self, i) for i in range(self.n_workers)]
        for worker in self._workers:
            worker.start()

    def submit(self, fn: Callable, *args, **kwargs) -> int:
        self.start()
        job_id = next(self._ids)
        with self._cond:
            self._pending += 1
        self.input_queue.put((job_id, fn, args, kwargs))
        return job_id

    def _complete(self, outcome: JobResult) -> None:
        with self._cond:
            self._results[outcome.job_id] = outcome
            self._pending -= 1
            self._cond.notify_all()

    def gather(self) -> List[JobResult]:
        """Wait for every submitted job and return (and forget) their results by job id."""
        with self._cond:
            while self._pending:
                self._cond.wait()
            results = [self._results[k] for k in sorted(self._results)]
            self._results.clear()
        return results

    def map(self, fn: Callable[[Any], Any], items: Iterable[Any]) -> List[Any]:
        """Apply ``fn`` to each item on the pool; re-raises the first job error."""
        for item in items:
            self.submit(fn, item)
        values = []
        for outcome in self.gather():
            if outcome.error is not None:
                raise outcome.error
            values.append(outcome.value)
        return values

    def close(self) -> None:
        for _ in self._workers:
            self.input_queue.put(EndOfStream)
        for worker in self._workers:
            worker.join(timeout=1.0)
        self._workers = []

    def __enter__(self) -> "WorkerPool":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def _detect_channel(detector: OscillationDetector, trace: SampleTrace, all_slopes: bool) -> ChannelReport:
    try:
        result = detector.detect(trace)
    except InternalInvariantError as exc:
        logger.error("Channel %s aborted: %s", trace.channel, exc)
        return ChannelReport(channel=trace.channel, error=str(exc))
    return ChannelReport(channel=trace.channel, result=result, summary=summarize(result, all_slopes=all_slopes))


def run_channels(
    traces: Sequence[SampleTrace],
    detector_factory: Callable[[], OscillationDetector],
    *,
    n_workers: int = 1,
    all_slopes: bool = False,
) -> List[ChannelReport]:
    """Detect every channel independently and report in input order.

    Configuration is validated against each channel's sample rate before
    any channel is processed.
    """
    detectors = [detector_factory() for _ in traces]
    for detector, trace in zip(detectors, traces):
        detector.config.validate(trace.sample_rate)

    with WorkerPool(n_workers) as pool:
        for detector, trace in zip(detectors, traces):
            pool.submit(_detect_channel, detector, trace, all_slopes)
        outcomes = pool.gather()

    reports = []
    for outcome in outcomes:
        if outcome.error is not None:
            raise outcome.error
        reports.append(outcome.value)
    logger.info("Processed %d channels (%d aborted)", len(reports), sum(not r.ok for r in reports))
    return reports


def run_coupling(
    units: Sequence[Tuple[DetectionResult, Sequence[int], Optional[float]]],
    config: CouplingConfig,
    *,
    n_workers: int = 1,
) -> List[ChannelReport]:
    """Run one coupling test per ``(anchor_result, targets, frequency)`` unit."""
    config.validate()

    def _unit(anchor: DetectionResult, targets: Sequence[int], frequency: Optional[float]) -> ChannelReport:
        result = couple(anchor, targets, config, frequency=frequency)
        return ChannelReport(channel=anchor.channel, result=result)

    with WorkerPool(n_workers) as pool:
        for anchor, targets, frequency in units:
            pool.submit(_unit, anchor, targets, frequency)
        outcomes = pool.gather()

    reports = []
    for (anchor, _, frequency), outcome in zip(units, outcomes):
        if outcome.error is None:
            reports.append(outcome.value)
        elif isinstance(outcome.error, (ValueError, ArithmeticError)):
            logger.error("Coupling for %s at %s Hz aborted: %s", anchor.channel, frequency, outcome.error)
            reports.append(ChannelReport(channel=anchor.channel, error=str(outcome.error)))
        else:
            raise outcome.error
    return reports


__all__ = ["AnalysisWorker", "JobResult", "WorkerPool", "run_channels", "run_coupling"]
