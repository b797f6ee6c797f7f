"""
Prometheus metrics for the ingestion-to-alert pipeline.

Every ``PipelineMetrics`` instance owns its own ``CollectorRegistry`` so
several pipelines (or tests) can coexist in one process.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest
from matchpulse.core.logging import get_logger

logger = get_logger(__name__)

# Numeric encoding of connector states for the state gauge
CONNECTOR_STATE_VALUES = {
    "disconnected": 0,
    "connecting": 1,
    "connected": 2,
    "closing": 3,
    "failed": -1,
}


class MetricType(Enum):
    """Types of metrics that can be collected."""
    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"


@dataclass
class MetricDefinition:
    """Definition of a metric to be collected."""
    name: str
    metric_type: MetricType
    description: str
    labels: List[str] = field(default_factory=list)
    buckets: Optional[List[float]] = None
    namespace: str = "matchpulse"


PIPELINE_METRICS = [
    MetricDefinition(
        name="events_received_total",
        metric_type=MetricType.COUNTER,
        description="Events handed to the pipeline by connectors",
        labels=["source"],
    ),
    MetricDefinition(
        name="events_rejected_total",
        metric_type=MetricType.COUNTER,
        description="Events failing validation",
        labels=["source"],
    ),
    MetricDefinition(
        name="events_dropped_total",
        metric_type=MetricType.COUNTER,
        description="Events dropped by the fan-in queue",
        labels=["source"],
    ),
    MetricDefinition(
        name="duplicates_suppressed_total",
        metric_type=MetricType.COUNTER,
        description="Events suppressed by the dedup gate",
        labels=["source"],
    ),
    MetricDefinition(
        name="events_processed_total",
        metric_type=MetricType.COUNTER,
        description="Events evaluated by the rule engine",
        labels=["source", "event_type"],
    ),
    MetricDefinition(
        name="alerts_emitted_total",
        metric_type=MetricType.COUNTER,
        description="Alerts handed to the dispatcher",
        labels=["type", "severity"],
    ),
    MetricDefinition(
        name="rule_errors_total",
        metric_type=MetricType.COUNTER,
        description="Rule evaluations that raised",
        labels=["rule"],
    ),
    MetricDefinition(
        name="connector_state",
        metric_type=MetricType.GAUGE,
        description="Connector state (-1 failed, 0 disconnected, 1 connecting, 2 connected, 3 closing)",
        labels=["connector"],
    ),
    MetricDefinition(
        name="queue_depth",
        metric_type=MetricType.GAUGE,
        description="Events waiting in the fan-in queue",
    ),
    MetricDefinition(
        name="processing_seconds",
        metric_type=MetricType.HISTOGRAM,
        description="Time from dequeue to dispatch handoff",
        buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 1.0],
    ),
]


class PipelineMetrics:
    """Pipeline counters, gauges and latency histogram."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()
        self.metrics: Dict[str, object] = {}
        for metric_def in PIPELINE_METRICS:
            self.register_metric(metric_def)

    def register_metric(self, metric_def: MetricDefinition) -> None:
        """Register a new metric."""
        metric_name = f"{metric_def.namespace}_{metric_def.name}"

        if metric_def.metric_type == MetricType.COUNTER:
            # prometheus_client appends _total itself
            metric = Counter(
                metric_name[: -len("_total")] if metric_name.endswith("_total") else metric_name,
                metric_def.description,
                labelnames=metric_def.labels,
                registry=self.registry,
            )
        elif metric_def.metric_type == MetricType.GAUGE:
            metric = Gauge(
                metric_name,
                metric_def.description,
                labelnames=metric_def.labels,
                registry=self.registry,
            )
        elif metric_def.metric_type == MetricType.HISTOGRAM:
            metric = Histogram(
                metric_name,
                metric_def.description,
                labelnames=metric_def.labels,
                buckets=metric_def.buckets or Histogram.DEFAULT_BUCKETS,
                registry=self.registry,
            )
        else:
            raise ValueError(f"Unsupported metric type: {metric_def.metric_type}")

        self.metrics[metric_def.name] = metric
        logger.debug("Registered metric", metric=metric_name)

    def _counter(self, name: str, **labels: str) -> None:
        metric = self.metrics[name]
        if labels:
            metric = metric.labels(**labels)
        metric.inc()

    def event_received(self, source: str) -> None:
        self._counter("events_received_total", source=source or "unknown")

    def event_rejected(self, source: str) -> None:
        self._counter("events_rejected_total", source=source or "unknown")

    def event_dropped(self, source: str) -> None:
        self._counter("events_dropped_total", source=source or "unknown")

    def duplicate_suppressed(self, source: str) -> None:
        self._counter("duplicates_suppressed_total", source=source or "unknown")

    def event_processed(self, source: str, event_type: str) -> None:
        self._counter("events_processed_total", source=source or "unknown", event_type=event_type)

    def alert_emitted(self, alert_type: str, severity: str) -> None:
        self._counter("alerts_emitted_total", type=alert_type, severity=severity)

    def rule_error(self, rule: str) -> None:
        self._counter("rule_errors_total", rule=rule)

    def set_connector_state(self, connector: str, state: str) -> None:
        value = CONNECTOR_STATE_VALUES.get(state, 0)
        self.metrics["connector_state"].labels(connector=connector).set(value)

    def set_queue_depth(self, depth: int) -> None:
        self.metrics["queue_depth"].set(depth)

    def observe_processing(self, seconds: float) -> None:
        self.metrics["processing_seconds"].observe(seconds)

    def get_prometheus_metrics(self) -> str:
        """Render the registry in the Prometheus text format."""
        return generate_latest(self.registry).decode("utf-8")
