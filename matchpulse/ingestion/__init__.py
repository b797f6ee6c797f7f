"""
Ingestion layer: stream sessions, supervised connectors and normalizers.
"""

from matchpulse.ingestion.session import (
    StreamSession,
    WebSocketSession,
    PreAuthenticatedSession,
    ReplaySession,
)
from matchpulse.ingestion.normalizer import Normalizer, MatchMemory, derive_minute
from matchpulse.ingestion.connector import Connector, ConnectorOptions, ConnectorState
from matchpulse.ingestion.sofascore import SofaScoreConnector, SofaScoreNormalizer
from matchpulse.ingestion.bwin import BwinConnector, BwinNormalizer
from matchpulse.ingestion.bet365 import Bet365Connector, Bet365Normalizer
from matchpulse.ingestion.zap import ZapMessage, ZapParser

CONNECTORS = {
    "sofascore": SofaScoreConnector,
    "bwin": BwinConnector,
    "bet365": Bet365Connector,
}

__all__ = [
    "StreamSession",
    "WebSocketSession",
    "PreAuthenticatedSession",
    "ReplaySession",
    "Normalizer",
    "MatchMemory",
    "derive_minute",
    "Connector",
    "ConnectorOptions",
    "ConnectorState",
    "SofaScoreConnector",
    "SofaScoreNormalizer",
    "BwinConnector",
    "BwinNormalizer",
    "Bet365Connector",
    "Bet365Normalizer",
    "ZapMessage",
    "ZapParser",
    "CONNECTORS",
]
