import pytest
from matchpulse.monitoring.metrics import MetricDefinition, MetricType, PipelineMetrics


class TestPipelineMetrics:
    def test_instances_do_not_share_registries(self):
        first, second = PipelineMetrics(), PipelineMetrics()
        first.event_received("bwin")
        assert first.registry.get_sample_value("matchpulse_events_received_total", {"source": "bwin"}) == 1
        assert second.registry.get_sample_value("matchpulse_events_received_total", {"source": "bwin"}) is None

    def test_connector_state_gauge(self):
        metrics = PipelineMetrics()
        metrics.set_connector_state("sofascore", "connected")
        assert metrics.registry.get_sample_value("matchpulse_connector_state", {"connector": "sofascore"}) == 2
        metrics.set_connector_state("sofascore", "failed")
        assert metrics.registry.get_sample_value("matchpulse_connector_state", {"connector": "sofascore"}) == -1

    def test_exposition_text(self):
        metrics = PipelineMetrics()
        metrics.alert_emitted("goal", "high")
        metrics.observe_processing(0.002)
        text = metrics.get_prometheus_metrics()
        assert "matchpulse_alerts_emitted_total" in text
        assert metrics.registry.get_sample_value(
            "matchpulse_alerts_emitted_total", {"type": "goal", "severity": "high"}
        ) == 1
        assert "matchpulse_processing_seconds_count 1.0" in text

    def test_unknown_source_label(self):
        metrics = PipelineMetrics()
        metrics.event_rejected(None)
        assert metrics.registry.get_sample_value("matchpulse_events_rejected_total", {"source": "unknown"}) == 1

    def test_register_rejects_unknown_type(self):
        metrics = PipelineMetrics()
        with pytest.raises(ValueError):
            metrics.register_metric(MetricDefinition(name="x", metric_type="summary", description="x"))

    def test_register_custom_metric(self):
        metrics = PipelineMetrics()
        metrics.register_metric(MetricDefinition(
            name="webhook_failures_total",
            metric_type=MetricType.COUNTER,
            description="Webhook delivery failures",
        ))
        metrics.metrics["webhook_failures_total"].inc()
        assert metrics.registry.get_sample_value("matchpulse_webhook_failures_total") == 1
