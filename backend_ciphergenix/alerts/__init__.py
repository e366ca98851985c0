"""
Alerting: threat thresholds, AlertEvent construction, sink delivery with cooldown dedup.
"""

from backend_ciphergenix.alerts.engine import (
    AlertConfig,
    AlertEngine,
    AlertEvent,
    AlertSink,
    HttpAlertSink,
    InMemoryAlertSink,
    LoggingAlertSink,
    default_sinks,
)

__all__ = [
    "AlertConfig",
    "AlertEngine",
    "AlertEvent",
    "AlertSink",
    "HttpAlertSink",
    "InMemoryAlertSink",
    "LoggingAlertSink",
    "default_sinks",
]
