"""
Monitoring for the MatchPulse pipeline.
"""

from matchpulse.monitoring.metrics import PipelineMetrics, MetricDefinition, MetricType

__all__ = ["PipelineMetrics", "MetricDefinition", "MetricType"]
