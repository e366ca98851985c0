"""
Continuous monitoring: per-model sessions, registry, snapshot providers and result stores.
"""

from backend_ciphergenix.monitoring.session import (
    FileSnapshotProvider,
    InMemoryResultStore,
    MonitoringService,
    MonitoringSession,
    ResultStore,
    SessionRegistry,
    SessionState,
    SnapshotProvider,
)

__all__ = [
    "FileSnapshotProvider",
    "InMemoryResultStore",
    "MonitoringService",
    "MonitoringSession",
    "ResultStore",
    "SessionRegistry",
    "SessionState",
    "SnapshotProvider",
]
