"""
Build a pipeline from settings.
"""

from typing import Optional
from matchpulse.core.config import Settings, get_settings
from matchpulse.core.logging import get_logger
from matchpulse.ingestion import Bet365Connector, BwinConnector, SofaScoreConnector
from matchpulse.monitoring.metrics import PipelineMetrics
from matchpulse.realtime.dedup import DedupGate
from matchpulse.realtime.dispatch import AlertDispatcher, AlertSink
from matchpulse.realtime.enrichment import MatchEnricher, SofaScoreDetailsClient
from matchpulse.realtime.pipeline import BackpressurePolicy, Pipeline
from matchpulse.rules import RuleEngine, default_rules

logger = get_logger(__name__)


def build_pipeline(
    settings: Optional[Settings] = None,
    sink: Optional[AlertSink] = None,
    metrics: Optional[PipelineMetrics] = None,
) -> Pipeline:
    """
    Wire connectors for every configured source, the default rules and,
    when an enrichment URL is set, the match details lookup.

    Args:
        settings: Application settings; the global instance by default
        sink: Alert sink; alerts are logged when omitted
        metrics: Metrics to record into

    Returns:
        A pipeline ready to ``start()``
    """
    settings = settings or get_settings()

    enricher = None
    if settings.enrichment_base_url:
        client = SofaScoreDetailsClient(settings.enrichment_base_url, timeout=settings.enrichment_timeout)
        enricher = MatchEnricher(client, timeout=settings.enrichment_timeout)

    pipeline = Pipeline(
        rule_engine=RuleEngine(default_rules(settings)),
        dedup_gate=DedupGate(ttl=settings.dedup_ttl),
        dispatcher=AlertDispatcher(
            sink,
            maxsize=settings.dispatch_queue_maxsize,
            drain_timeout=settings.dispatch_drain_timeout,
        ),
        enricher=enricher,
        metrics=metrics,
        queue_maxsize=settings.queue_maxsize,
        backpressure=BackpressurePolicy(settings.backpressure),
        stats_interval=settings.stats_interval,
    )

    options = settings.connector_options()
    common = {"options": options, "handshake_timeout": settings.handshake_timeout}
    urls = settings.sources_config

    if urls["sofascore"]:
        pipeline.add_connector(
            SofaScoreConnector.from_url(urls["sofascore"], match_ids=settings.match_id_list, **common)
        )
    if urls["bwin"]:
        pipeline.add_connector(
            BwinConnector.from_url(urls["bwin"], subscriptions=settings.subscription_list, **common)
        )
    if urls["bet365"]:
        pipeline.add_connector(Bet365Connector.from_url(urls["bet365"], **common))

    if not pipeline.connectors:
        logger.warning("No source URLs configured; the pipeline has no connectors")
    return pipeline
