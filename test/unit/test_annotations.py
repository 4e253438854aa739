from __future__ import annotations

import threading

import pytest

from shared.annotations import AnnotationRecord, AnnotationStore, event_annotations, peak_indices
from shared.models import Anchor, WaveClass
from test.fixtures.event_factory import make_event


class TestEventAnnotations:
    def test_full_wave_records(self):
        events = [make_event(100, 200, neg=-40.0, pos=20.0, wave_class=WaveClass.SLOW_OSCILLATION)]
        (rec,) = event_annotations(events, label="SO", channel="C3")
        assert rec.label == "SO" and rec.channel == "C3"
        assert (rec.start, rec.stop) == (pytest.approx(1.0), pytest.approx(2.0))
        assert rec.meta["frq"] == pytest.approx(1.0)
        assert rec.meta["p2p"] == pytest.approx(60.0)
        assert rec.meta["amp"] == pytest.approx(-40.0)
        assert rec.meta["rp_mid"] == pytest.approx(0.5)
        assert rec.meta["rp_neg"] == pytest.approx(0.25)
        assert rec.meta["rp_pos"] == pytest.approx(0.75)
        assert rec.meta["class"] == "slow_oscillation"

    def test_half_wave_records(self):
        records = event_annotations([make_event(100, 200)], label="SW", channel="C3", half_waves=True)
        assert [r.label for r in records] == ["SW", "SW_neg", "SW_pos"]
        assert (records[1].start, records[1].stop) == (pytest.approx(1.0), pytest.approx(1.5))
        assert (records[2].start, records[2].stop) == (pytest.approx(1.5), pytest.approx(2.0))

    def test_peak_indices(self):
        events = [make_event(100, 200), make_event(300, 400)]
        assert peak_indices(events) == [125, 325]
        assert peak_indices(events, Anchor.POSITIVE_PEAK) == [175, 375]
        assert peak_indices(events, Anchor.ONSET) == [100, 300]

    def test_record_rejects_reversed_interval(self):
        with pytest.raises(ValueError):
            AnnotationRecord(label="x", channel="c", start=2.0, stop=1.0)


class TestAnnotationStore:
    def test_by_label_sorted(self):
        store = AnnotationStore()
        store.extend(
            [
                AnnotationRecord("SO", "C4", 5.0, 6.0),
                AnnotationRecord("SO", "C3", 9.0, 10.0),
                AnnotationRecord("SW", "C3", 1.0, 2.0),
                AnnotationRecord("SO", "C3", 2.0, 3.0),
            ]
        )
        assert [(r.channel, r.start) for r in store.by_label("SO")] == [("C3", 2.0), ("C3", 9.0), ("C4", 5.0)]
        assert store.labels() == ["SO", "SW"]
        assert len(store) == 4

    def test_drain_empties(self):
        store = AnnotationStore()
        store.push(AnnotationRecord("SO", "C3", 0.0, 1.0))
        assert len(store.drain()) == 1
        assert len(store) == 0

    def test_capacity_drops_oldest(self):
        store = AnnotationStore(capacity=2)
        for k in range(3):
            store.push(AnnotationRecord("SO", "C3", float(k), float(k) + 0.5))
        assert [r.start for r in store.drain()] == [1.0, 2.0]

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            AnnotationStore(capacity=0)

    def test_concurrent_pushes(self):
        store = AnnotationStore()

        def worker(channel: str) -> None:
            for k in range(200):
                store.push(AnnotationRecord("SO", channel, float(k), float(k)))

        threads = [threading.Thread(target=worker, args=(f"ch{i}",)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(store) == 800
