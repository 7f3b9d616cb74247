"""
Test suite for the hostaudit finding sink
"""

import threading

import pytest

from hostaudit.core.findings import FindingSink
from hostaudit.core.model import InvalidSeverityError, Severity
from hostaudit.core.risk import RiskEngine


class TestFindingSink:
    """Append-only store behaviour."""

    @pytest.fixture
    def sink(self):
        return FindingSink(RiskEngine())

    def test_register_scores_and_emit_does_not(self, sink):
        sink.register("HIGH", "system", "kernel_exploit", "DirtyPipe")
        sink.emit("HIGH", "system", "kernel_version", "Kernel: 5.10.0")
        summary = sink.risk_engine.summary()
        assert summary.total_score == 75
        assert summary.counts[Severity.HIGH] == 2
        assert [f.scored for f in sink.all()] == [True, False]

    def test_invalid_severity_stores_nothing(self, sink):
        with pytest.raises(InvalidSeverityError):
            sink.register("SEVERE", "system", "x", "y")
        assert len(sink) == 0
        assert sink.risk_engine.total_score == 0

    def test_empty_hint_is_absent(self, sink):
        finding = sink.register("LOW", "software", "compiler_available", "gcc", "")
        assert finding.hint is None

    def test_timestamps_are_monotonic(self, sink):
        for i in range(50):
            sink.emit("INFO", "system", "tick", str(i))
        stamps = [f.timestamp for f in sink.all()]
        assert stamps == sorted(stamps)

    def test_snapshot_is_immutable(self, sink):
        sink.emit("INFO", "system", "x", "y")
        snapshot = sink.all()
        sink.emit("INFO", "system", "x", "z")
        assert len(snapshot) == 1
        assert len(sink) == 2

    def test_concurrent_registration_keeps_total_consistent(self, sink):
        def worker(name):
            for _ in range(200):
                sink.register("LOW", name, "generic", "detail")

        threads = [threading.Thread(target=worker, args=(f"probe{i}",)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(sink) == 1600
        assert sink.risk_engine.total_score == sink.risk_engine.recompute(sink.all())
        assert sorted(f.sequence for f in sink.all()) == list(range(1600))

    def test_filter_by_min_severity_keeps_insertion_order(self, sink):
        sink.register("LOW", "a", "c", "1")
        sink.register("CRITICAL", "a", "c", "2")
        sink.register("INFO", "a", "c", "3")
        sink.register("HIGH", "a", "c", "4")
        assert [f.detail for f in sink.filter_by_min_severity("HIGH")] == ["2", "4"]
        assert len(sink.filter_by_min_severity("info")) == 4

    def test_sort_for_report(self, sink):
        sink.register("LOW", "zeta", "c", "1")
        sink.register("CRITICAL", "beta", "c", "2")
        sink.register("CRITICAL", "alpha", "c", "3")
        sink.register("CRITICAL", "alpha", "c", "4")
        ordered = sink.sort_for_report()
        assert [f.detail for f in ordered] == ["3", "4", "2", "1"]
        assert sink.sort_for_report(ordered) == ordered

    def test_observers_called_after_append(self, sink):
        seen = []
        sink.add_observer(lambda f: seen.append((f.detail, len(sink))))
        sink.emit("INFO", "a", "c", "first")
        assert seen == [("first", 1)]

    def test_failing_observer_does_not_break_registration(self, sink):
        def broken(_finding):
            raise RuntimeError("boom")

        sink.add_observer(broken)
        sink.register("HIGH", "a", "c", "still stored")
        assert len(sink) == 1

    def test_by_probe(self, sink):
        sink.emit("INFO", "a", "c", "1")
        sink.emit("INFO", "b", "c", "2")
        assert [f.detail for f in sink.by_probe("b")] == ["2"]

    def test_rejecting_guard_stores_nothing(self, sink):
        def closed():
            raise RuntimeError("closed")

        sink.register("HIGH", "a", "c", "kept")
        with pytest.raises(RuntimeError):
            sink.register("CRITICAL", "a", "c", "dropped", guard=closed)
        with pytest.raises(RuntimeError):
            sink.emit("INFO", "a", "c", "dropped", guard=closed)

        assert [f.detail for f in sink.all()] == ["kept"]
        assert sink.risk_engine.total_score == 75

    def test_guard_runs_under_append_lock(self, sink):
        held = []
        sink.register("LOW", "a", "c", "1", guard=lambda: held.append(sink._lock.locked()))
        sink.exclusive(lambda: held.append(sink._lock.locked()))
        assert held == [True, True]
