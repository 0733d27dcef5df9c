"""
Observability Tests
===================

Evaluation logs and metrics are write-only side channels: they record what
memo cells and transform caches did, and never change a result.
"""

import pytest

from threadview.memo import MemoCell
from threadview.observability import (
    EvaluationEventType, LogCollector, MetricsCollector, ObservabilityConfig,
    ObservabilityEngine,
)


class TestLogCollector:

    def test_bounded_and_append_only(self):
        engine = ObservabilityEngine(ObservabilityConfig(max_log_entries=2))
        for name in ("a", "b", "c"):
            engine.log_event('memo', EvaluationEventType.CELL_RECOMPUTED, "recompute", name)

        assert [e.entity_id for e in engine.get_layer_log('memo')] == ["b", "c"]

    def test_filtering(self):
        engine = ObservabilityEngine()
        engine.cell_recomputed("first", 1.0)
        engine.cell_failed("second", ValueError("bad"))

        collector = LogCollector('memo')
        for entry in engine.get_layer_log('memo'):
            collector.collect(entry)

        errors = collector.get_entries(event_type=EvaluationEventType.ERROR)
        assert [e.entity_id for e in errors] == ["second"]
        assert dict(errors[0].metadata) == {"error": "ValueError", "message": "bad"}
        assert collector.get_entries(entity_id="first")[0].duration_ms == 1.0
        assert collector.total_collected == 2


class TestMetricsCollector:

    def test_counters_accumulate_per_label_set(self):
        metrics = MetricsCollector()
        metrics.record("memo_cell_hits_total", 1, {"cell": "a"})
        metrics.record("memo_cell_hits_total", 1, {"cell": "a"})
        metrics.record("memo_cell_hits_total", 1, {"cell": "b"})

        assert metrics.get_total("memo_cell_hits_total", {"cell": "a"}) == 2
        assert metrics.get_total("memo_cell_hits_total") == 3
        assert metrics.get_total("memo_cell_hits_total", {"cell": "c"}) == 0

    def test_gauges_keep_the_last_value(self):
        metrics = MetricsCollector()
        metrics.record("transform_cache_entries", 3)
        metrics.record("transform_cache_entries", 5)

        assert metrics.get_total("transform_cache_entries") == 5
        assert metrics.get_latest("transform_cache_entries").value == 5

    def test_time_series_is_bounded(self):
        metrics = MetricsCollector(max_points_per_metric=3)
        for i in range(5):
            metrics.record("memo_cell_duration_ms", float(i))

        assert [p.value for p in metrics.get_metric("memo_cell_duration_ms")] == [2.0, 3.0, 4.0]
        assert metrics.compute_aggregates("memo_cell_duration_ms")['max'] == 4.0
        assert metrics.compute_aggregates("unknown") == {}


class TestObservabilityEngine:

    def test_hits_are_not_logged_by_default(self):
        engine = ObservabilityEngine()
        engine.cell_hit("cell")

        assert engine.get_layer_log('memo') == []
        assert engine.get_metrics().get_total("memo_cell_hits_total") == 1

    def test_disabled_log_and_metrics(self):
        engine = ObservabilityEngine(ObservabilityConfig(enable_metrics=False, enable_evaluation_log=False))
        engine.cell_recomputed("cell", 1.0)

        assert engine.get_metrics() is None
        assert engine.get_unified_log() == []

    def test_unified_log_is_in_sequence_order(self):
        engine = ObservabilityEngine()
        engine.transform_applied("MergeFunction", 1.0, 1)
        engine.cell_recomputed("cell", 1.0)
        engine.transform_reused("MergeFunction")

        layers = [entry.layer for entry in engine.get_unified_log()]
        assert layers == ['transform_cache', 'memo', 'transform_cache']
        assert engine.get_layer_log('unknown') == []

    def test_report(self):
        engine = ObservabilityEngine()
        engine.cell_recomputed("cell", 1.0)
        engine.cell_hit("cell")
        engine.transform_applied("DropFunction", 1.0, 1)

        report = engine.generate_report()

        assert report['total_entries'] == 2
        assert report['by_layer'] == {'memo': 1, 'transform_cache': 1}
        assert report['memo_cell_hits'] == 1
        assert report['transform_cache_misses'] == 1

    def test_failures_are_logged_and_still_raised(self):
        engine = ObservabilityEngine()

        def compute():
            raise RuntimeError("boom")

        cell = MemoCell(compute, name="failing", observer=engine)
        with pytest.raises(RuntimeError):
            cell.get()

        entries = engine.get_layer_log('memo')
        assert entries[-1].event_type == EvaluationEventType.ERROR
        assert entries[-1].entity_id == "failing"
