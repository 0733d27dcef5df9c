"""
Observability Layer

RESPONSIBILITY: Evaluation log, cache metrics, timing of derived values
ALLOWED INPUTS: Notifications from memo cells and the transform cache
OUTPUTS: EvaluationLogEntry records, MetricPoint series, aggregates

WHAT THIS LAYER MUST NOT DO:
============================
- Modify evaluation results
- Hold references to threads or tables (only names and numbers)
- Block or delay evaluation beyond appending a record

BOUNDARY ENFORCEMENT:
=====================
- Collectors are append-only and bounded by ObservabilityConfig
- Read access returns copies
"""

from __future__ import annotations
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Deque, Dict, List, Optional, Tuple
import itertools


# =============================================================================
# RECORDS
# =============================================================================

class EvaluationEventType(Enum):
    """Explicit evaluation event types."""
    CELL_RECOMPUTED = "cell_recomputed"
    CELL_HIT = "cell_hit"
    TRANSFORM_APPLIED = "transform_applied"
    TRANSFORM_REUSED = "transform_reused"
    SELECTORS_CREATED = "selectors_created"
    ERROR = "error"


@dataclass(frozen=True)
class EvaluationLogEntry:
    """Immutable evaluation log entry."""
    sequence: int
    event_type: EvaluationEventType
    timestamp: datetime
    layer: str
    action: str
    entity_id: Optional[str] = None
    duration_ms: Optional[float] = None
    metadata: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class MetricPoint:
    """Immutable metric data point."""
    metric_name: str
    value: float
    timestamp: datetime
    labels: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)


# =============================================================================
# LOG COLLECTORS (One per layer)
# =============================================================================

class LogCollector:
    """
    Append-only log collector for one layer.

    Holds at most max_entries records; the oldest are discarded first.
    """

    def __init__(self, layer_name: str, max_entries: int = 10_000):
        self._layer_name = layer_name
        self._entries: Deque[EvaluationLogEntry] = deque(maxlen=max_entries)
        self._total = 0

    def collect(self, entry: EvaluationLogEntry):
        """Collect an entry (append-only)."""
        self._entries.append(entry)
        self._total += 1

    def get_entries(
        self,
        event_type: Optional[EvaluationEventType] = None,
        entity_id: Optional[str] = None
    ) -> List[EvaluationLogEntry]:
        """Get entries, optionally filtered."""
        entries = list(self._entries)

        if event_type:
            entries = [e for e in entries if e.event_type == event_type]

        if entity_id:
            entries = [e for e in entries if e.entity_id == entity_id]

        return entries

    @property
    def layer_name(self) -> str:
        return self._layer_name

    @property
    def entry_count(self) -> int:
        return len(self._entries)

    @property
    def total_collected(self) -> int:
        return self._total


# =============================================================================
# METRICS COLLECTOR
# =============================================================================

class MetricType(Enum):
    """Types of metrics collected."""
    COUNTER = "counter"
    GAUGE = "gauge"
    TIMING = "timing"


@dataclass
class MetricDefinition:
    """Definition of a metric to collect."""
    name: str
    metric_type: MetricType
    description: str
    labels: Tuple[str, ...] = field(default_factory=tuple)


class MetricsCollector:
    """
    Collect metrics from memo cells and the transform cache.

    Counters keep a running total per label set; every recorded value is
    also appended to a bounded time series.
    """

    def __init__(self, max_points_per_metric: int = 10_000):
        self._max_points = max_points_per_metric
        self._metrics: Dict[str, Deque[MetricPoint]] = {}
        self._totals: Dict[Tuple[str, Tuple[Tuple[str, str], ...]], float] = {}
        self._definitions: Dict[str, MetricDefinition] = {}
        self._register_default_metrics()

    def _register_default_metrics(self):
        """Register standard metrics."""
        defaults = [
            MetricDefinition(
                name="memo_cell_hits_total",
                metric_type=MetricType.COUNTER,
                description="Memo cell queries answered from the single slot",
                labels=("cell",)
            ),
            MetricDefinition(
                name="memo_cell_recomputations_total",
                metric_type=MetricType.COUNTER,
                description="Memo cell queries that invoked the wrapped function",
                labels=("cell",)
            ),
            MetricDefinition(
                name="memo_cell_duration_ms",
                metric_type=MetricType.TIMING,
                description="Time spent recomputing a memo cell in milliseconds",
                labels=("cell",)
            ),
            MetricDefinition(
                name="transform_cache_hits_total",
                metric_type=MetricType.COUNTER,
                description="Transform steps reused from the keyed cache",
                labels=("transform",)
            ),
            MetricDefinition(
                name="transform_cache_misses_total",
                metric_type=MetricType.COUNTER,
                description="Transform steps applied because no entry existed",
                labels=("transform",)
            ),
            MetricDefinition(
                name="transform_cache_entries",
                metric_type=MetricType.GAUGE,
                description="Number of entries held by a keyed transform cache"
            ),
        ]

        for definition in defaults:
            self.register_metric(definition)

    def register_metric(self, definition: MetricDefinition):
        """Register a new metric definition."""
        self._definitions[definition.name] = definition
        if definition.name not in self._metrics:
            self._metrics[definition.name] = deque(maxlen=self._max_points)

    def record(
        self,
        metric_name: str,
        value: float,
        labels: Optional[Dict[str, str]] = None
    ):
        """Record a metric data point."""
        if metric_name not in self._metrics:
            self._metrics[metric_name] = deque(maxlen=self._max_points)

        label_tuple = tuple(sorted(labels.items())) if labels else ()

        point = MetricPoint(
            metric_name=metric_name,
            value=value,
            timestamp=datetime.now(timezone.utc),
            labels=label_tuple
        )
        self._metrics[metric_name].append(point)

        definition = self._definitions.get(metric_name)
        key = (metric_name, label_tuple)
        if definition is not None and definition.metric_type == MetricType.GAUGE:
            self._totals[key] = value
        else:
            self._totals[key] = self._totals.get(key, 0.0) + value

    def get_metric(self, metric_name: str) -> List[MetricPoint]:
        """Get the retained data points of a metric."""
        return list(self._metrics.get(metric_name, ()))

    def get_total(
        self,
        metric_name: str,
        labels: Optional[Dict[str, str]] = None
    ) -> float:
        """
        Running total of a counter (or last value of a gauge).

        Without labels, sums over every label set.
        """
        if labels is not None:
            return self._totals.get((metric_name, tuple(sorted(labels.items()))), 0.0)
        return sum(
            value for (name, _), value in self._totals.items()
            if name == metric_name
        )

    def get_latest(self, metric_name: str) -> Optional[MetricPoint]:
        """Get the latest value for a metric."""
        points = self._metrics.get(metric_name)
        return points[-1] if points else None

    def compute_aggregates(self, metric_name: str) -> Dict[str, float]:
        """Compute aggregate statistics for a metric."""
        points = self.get_metric(metric_name)

        if not points:
            return {}

        values = [p.value for p in points]

        return {
            'count': len(values),
            'sum': sum(values),
            'min': min(values),
            'max': max(values),
            'avg': sum(values) / len(values),
        }


# =============================================================================
# OBSERVABILITY ENGINE (Orchestrates all observability)
# =============================================================================

@dataclass
class ObservabilityConfig:
    """Configuration for observability engine."""
    enable_metrics: bool = True
    enable_evaluation_log: bool = True
    log_cell_hits: bool = False
    max_log_entries: int = 10_000
    max_points_per_metric: int = 10_000


class ObservabilityEngine:
    """
    Central observability facade.

    Memo cells and keyed transform caches hold an optional reference to
    this engine and notify it; nothing here feeds back into evaluation.
    """

    LAYERS = ('memo', 'transform_cache', 'engine')

    def __init__(self, config: Optional[ObservabilityConfig] = None):
        self._config = config or ObservabilityConfig()
        self._sequence = itertools.count()

        self._collectors: Dict[str, LogCollector] = {
            name: LogCollector(name, self._config.max_log_entries)
            for name in self.LAYERS
        }

        self._metrics = (
            MetricsCollector(self._config.max_points_per_metric)
            if self._config.enable_metrics else None
        )

    def log_event(
        self,
        layer: str,
        event_type: EvaluationEventType,
        action: str,
        entity_id: Optional[str] = None,
        duration_ms: Optional[float] = None,
        details: Optional[Dict[str, str]] = None
    ):
        """Append an evaluation entry to the layer's collector."""
        if not self._config.enable_evaluation_log:
            return
        collector = self._collectors.get(layer)
        if collector is None:
            return
        collector.collect(EvaluationLogEntry(
            sequence=next(self._sequence),
            event_type=event_type,
            timestamp=datetime.now(timezone.utc),
            layer=layer,
            action=action,
            entity_id=entity_id,
            duration_ms=duration_ms,
            metadata=tuple(sorted(details.items())) if details else ()
        ))

    def collect_metric(
        self,
        metric_name: str,
        value: float,
        labels: Optional[Dict[str, str]] = None
    ):
        """Collect a metric data point."""
        if self._metrics:
            self._metrics.record(metric_name, value, labels)

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    def cell_hit(self, cell_name: str):
        self.collect_metric("memo_cell_hits_total", 1, {"cell": cell_name})
        if self._config.log_cell_hits:
            self.log_event('memo', EvaluationEventType.CELL_HIT, "hit", cell_name)

    def cell_recomputed(self, cell_name: str, duration_ms: float):
        self.collect_metric("memo_cell_recomputations_total", 1, {"cell": cell_name})
        self.collect_metric("memo_cell_duration_ms", duration_ms, {"cell": cell_name})
        self.log_event(
            'memo', EvaluationEventType.CELL_RECOMPUTED, "recompute",
            cell_name, duration_ms=duration_ms
        )

    def cell_failed(self, cell_name: str, error: Exception):
        self.log_event(
            'memo', EvaluationEventType.ERROR, "compute_failed", cell_name,
            details={"error": type(error).__name__, "message": str(error)}
        )

    def transform_reused(self, transform_name: str):
        self.collect_metric("transform_cache_hits_total", 1, {"transform": transform_name})
        self.log_event(
            'transform_cache', EvaluationEventType.TRANSFORM_REUSED, "reuse",
            transform_name
        )

    def transform_applied(self, transform_name: str, duration_ms: float, entry_count: int):
        self.collect_metric("transform_cache_misses_total", 1, {"transform": transform_name})
        self.collect_metric("transform_cache_entries", entry_count)
        self.log_event(
            'transform_cache', EvaluationEventType.TRANSFORM_APPLIED, "apply",
            transform_name, duration_ms=duration_ms
        )

    # -------------------------------------------------------------------------
    # Read access
    # -------------------------------------------------------------------------

    def get_unified_log(self, layers: Optional[List[str]] = None) -> List[EvaluationLogEntry]:
        """Get unified log from all or specified layers, in sequence order."""
        target_layers = layers or list(self._collectors.keys())

        all_entries = []
        for layer_name in target_layers:
            collector = self._collectors.get(layer_name)
            if collector:
                all_entries.extend(collector.get_entries())

        all_entries.sort(key=lambda e: e.sequence)
        return all_entries

    def get_layer_log(self, layer_name: str) -> List[EvaluationLogEntry]:
        """Get log for a specific layer."""
        collector = self._collectors.get(layer_name)
        if not collector:
            return []
        return collector.get_entries()

    def get_metrics(self) -> Optional[MetricsCollector]:
        """Get metrics collector (read-only access)."""
        return self._metrics

    def generate_report(self) -> Dict:
        """Summarize collected evaluation activity."""
        entries = self.get_unified_log()

        by_layer: Dict[str, int] = {}
        by_type: Dict[str, int] = {}
        for entry in entries:
            by_layer[entry.layer] = by_layer.get(entry.layer, 0) + 1
            by_type[entry.event_type.value] = by_type.get(entry.event_type.value, 0) + 1

        report = {
            'total_entries': len(entries),
            'by_layer': by_layer,
            'by_event_type': by_type,
            'generated_at': datetime.now(timezone.utc).isoformat(),
        }
        if self._metrics:
            report['memo_cell_hits'] = self._metrics.get_total("memo_cell_hits_total")
            report['memo_cell_recomputations'] = self._metrics.get_total(
                "memo_cell_recomputations_total"
            )
            report['transform_cache_hits'] = self._metrics.get_total("transform_cache_hits_total")
            report['transform_cache_misses'] = self._metrics.get_total(
                "transform_cache_misses_total"
            )
        return report
