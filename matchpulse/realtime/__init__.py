"""
Real-time processing: dedup gate, dispatcher, enrichment and the pipeline.
"""

from matchpulse.realtime.dedup import DedupGate
from matchpulse.realtime.dispatch import AlertDispatcher, log_sink
from matchpulse.realtime.enrichment import MatchEnricher, SofaScoreDetailsClient
from matchpulse.realtime.pipeline import BackpressurePolicy, Pipeline
from matchpulse.realtime.builder import build_pipeline

__all__ = [
    "DedupGate",
    "AlertDispatcher",
    "log_sink",
    "MatchEnricher",
    "SofaScoreDetailsClient",
    "BackpressurePolicy",
    "Pipeline",
    "build_pipeline",
]
