"""
MatchPulse: live sports match events to alerts.

Streams events from several live feeds, normalizes them, filters duplicates
and runs them through alerting rules.
"""

__version__ = "1.0.0"
__license__ = "MIT"

from matchpulse.core.config import settings
from matchpulse.core.logging import get_logger

__all__ = [
    "settings",
    "get_logger",
    "__version__",
]
