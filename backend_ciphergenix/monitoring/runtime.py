"""
Monitoring runtime: start one session per configured model and block until shutdown.

Runs as a separate process (CLI entrypoint). Model ids come from
CIPHERGENIX_MODELS (comma-separated), snapshots from JSON files in
CIPHERGENIX_SNAPSHOT_DIR. Safe shutdown on KeyboardInterrupt/SIGTERM.

Usage: python -m backend_ciphergenix.monitoring.runtime
"""

from __future__ import annotations

import os
import signal
import sys
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from backend_ciphergenix.alerts.engine import AlertConfig, AlertEngine, default_sinks
from backend_ciphergenix.ciphergenix_logging import get_logger
from backend_ciphergenix.config import Settings, get_settings
from backend_ciphergenix.core.exceptions import AlreadyMonitoring
from backend_ciphergenix.monitoring.session import FileSnapshotProvider, MonitoringService

logger = get_logger(__name__)

DEFAULT_SNAPSHOT_DIR = Path("snapshots")


@dataclass
class RuntimeConfig:
    """
    Config for the monitoring runtime.

    model_ids: Models to monitor; duplicates are dropped.
    snapshot_dir: Directory holding <model_id>.json snapshots.
    """

    model_ids: list[str] = field(default_factory=list)
    snapshot_dir: Path = DEFAULT_SNAPSHOT_DIR

    def __post_init__(self) -> None:
        seen: list[str] = []
        for m in self.model_ids:
            m = (m or "").strip()
            if m and m not in seen:
                seen.append(m)
        self.model_ids = seen
        self.snapshot_dir = Path(self.snapshot_dir)


def _load_config_from_env(settings: Settings) -> RuntimeConfig:
    raw = os.getenv("CIPHERGENIX_MODELS", "")
    return RuntimeConfig(
        model_ids=raw.split(","),
        snapshot_dir=settings.snapshot_dir or DEFAULT_SNAPSHOT_DIR,
    )


def build_service(config: RuntimeConfig, settings: Settings) -> MonitoringService:
    alerts = AlertEngine(default_sinks(settings), AlertConfig.from_settings(settings))
    return MonitoringService(FileSnapshotProvider(config.snapshot_dir), settings=settings, alerts=alerts)


def run(config: RuntimeConfig, settings: Settings, shutdown: threading.Event | None = None) -> int:
    """
    Start sessions and wait for shutdown. Returns the number of sessions started.

    A model that is already monitored is skipped and logged.
    """
    shutdown = shutdown or threading.Event()

    def request_shutdown(*args: Any, **kwargs: Any) -> None:
        shutdown.set()

    previous_handler = None
    try:
        previous_handler = signal.signal(signal.SIGTERM, request_shutdown)
    except (AttributeError, ValueError):
        # not the main thread, or unsupported platform
        pass

    service = build_service(config, settings)
    started = 0
    for model_id in config.model_ids:
        try:
            service.start(model_id)
            started += 1
        except AlreadyMonitoring as e:
            logger.warning("runtime_model_already_monitored", model_id=model_id, error=e.message)
    logger.info(
        "runtime_started",
        models=config.model_ids,
        sessions=started,
        snapshot_dir=str(config.snapshot_dir),
        interval_sec=settings.poll_interval_seconds,
    )
    try:
        while not shutdown.wait(1.0):
            pass
    finally:
        service.shutdown()
        if previous_handler is not None:
            signal.signal(signal.SIGTERM, previous_handler)
        logger.info("runtime_stopped", sessions=started)
    return started


def main() -> int:
    """CLI entrypoint: load config from env and run until shutdown."""
    try:
        settings = get_settings()
        config = _load_config_from_env(settings)
        if not config.model_ids:
            logger.error("runtime_no_models", hint="set CIPHERGENIX_MODELS=model-a,model-b")
            return 1
        run(config, settings)
        return 0
    except KeyboardInterrupt:
        logger.info("runtime_shutdown_signal")
        return 0
    except Exception as e:
        logger.exception("runtime_fatal", error=str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
