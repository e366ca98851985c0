"""
Continuous per-model monitoring sessions.

MonitoringService owns a SessionRegistry (one active session per model_id) and
a bounded thread pool. Each session's poll loop pulls a snapshot, runs the
integrity monitor against the session baseline, stores the result and hands it
to the alert engine, then waits on its stop event for the poll interval so
stop() cancels mid-wait. Loop iterations never crash the session.
"""

from __future__ import annotations

import json
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from backend_ciphergenix.alerts.engine import AlertEngine
from backend_ciphergenix.ciphergenix_logging import bind_model, get_logger, model_context
from backend_ciphergenix.config import Settings, get_settings
from backend_ciphergenix.core.exceptions import AlreadyMonitoring
from backend_ciphergenix.integrity.fingerprint import FingerprintLedger
from backend_ciphergenix.integrity.models import IntegrityResult, ModelSnapshot
from backend_ciphergenix.integrity.monitor import ModelIntegrityMonitor

logger = get_logger(__name__)

SHUTDOWN_JOIN_TIMEOUT_SEC = 5.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionState(str, Enum):
    CREATED = "created"
    RUNNING = "running"
    STOPPED = "stopped"


@runtime_checkable
class SnapshotProvider(Protocol):
    def get_snapshot(self, model_id: str) -> ModelSnapshot | None:
        ...


@runtime_checkable
class ResultStore(Protocol):
    def save(self, kind: str, payload: dict[str, Any]) -> None:
        ...


class FileSnapshotProvider:
    """Reads <directory>/<model_id>.json on every call; None when the file is absent or unreadable."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def get_snapshot(self, model_id: str) -> ModelSnapshot | None:
        path = self.directory / f"{model_id}.json"
        if not path.is_file():
            logger.debug("snapshot_file_missing", model_id=model_id, path=str(path))
            return None
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("snapshot_file_unreadable", model_id=model_id, path=str(path), error=str(e))
            return None
        if not isinstance(data, dict):
            logger.warning("snapshot_file_invalid", model_id=model_id, path=str(path), error="not a JSON object")
            return None
        data.setdefault("model_id", model_id)
        try:
            return ModelSnapshot.from_dict(data)
        except (TypeError, ValueError) as e:
            logger.warning("snapshot_file_invalid", model_id=model_id, path=str(path), error=str(e))
            return None


class InMemoryResultStore:
    def __init__(self) -> None:
        self.records: list[tuple[str, dict[str, Any]]] = []
        self._lock = threading.Lock()

    def save(self, kind: str, payload: dict[str, Any]) -> None:
        with self._lock:
            self.records.append((kind, payload))

    def of_kind(self, kind: str) -> list[dict[str, Any]]:
        with self._lock:
            return [p for k, p in self.records if k == kind]


@dataclass(eq=False)
class MonitoringSession:
    """Mutable per-model monitoring state."""

    model_id: str
    state: SessionState = SessionState.CREATED
    started_at: datetime | None = None
    stopped_at: datetime | None = None
    baseline: ModelSnapshot | None = None
    iterations: int = 0
    failures: int = 0
    last_result: IntegrityResult | None = None
    _stop: threading.Event = field(default_factory=threading.Event, repr=False)
    _thread: threading.Thread | None = field(default=None, repr=False)

    @property
    def active(self) -> bool:
        return self.state is not SessionState.STOPPED

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to timeout; returns True as soon as stop is requested."""
        return self._stop.wait(timeout)

    def request_stop(self) -> None:
        self._stop.set()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the poll loop to exit; True once it has."""
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def to_dict(self) -> dict[str, Any]:
        return {
            "model_id": self.model_id,
            "state": self.state.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "stopped_at": self.stopped_at.isoformat() if self.stopped_at else None,
            "iterations": self.iterations,
            "failures": self.failures,
        }


class SessionRegistry:
    """model_id -> active session, with atomic check-then-register."""

    def __init__(self) -> None:
        self._sessions: dict[str, MonitoringSession] = {}
        self._lock = threading.Lock()

    def register(self, session: MonitoringSession) -> None:
        with self._lock:
            existing = self._sessions.get(session.model_id)
            if existing is not None and existing.active:
                raise AlreadyMonitoring(session.model_id)
            self._sessions[session.model_id] = session

    def remove(self, model_id: str) -> MonitoringSession | None:
        with self._lock:
            return self._sessions.pop(model_id, None)

    def get(self, model_id: str) -> MonitoringSession | None:
        with self._lock:
            return self._sessions.get(model_id)

    def active_ids(self) -> list[str]:
        with self._lock:
            return sorted(m for m, s in self._sessions.items() if s.active)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


def _notification(event_type: str, model_id: str, severity: str = "info") -> dict[str, Any]:
    return {
        "event": event_type,
        "modelId": model_id,
        "severity": severity,
        "timestamp": _utcnow().isoformat(),
    }


class MonitoringService:
    """
    Composition root for monitoring: registry, pool, integrity monitor, alerts, store.

    Each session has a daemon loop thread that only waits and submits; the poll
    itself runs on the pool, so settings.monitor_workers bounds concurrent
    polls, not the number of sessions.
    """

    def __init__(
        self,
        provider: SnapshotProvider,
        settings: Settings | None = None,
        registry: SessionRegistry | None = None,
        monitor: ModelIntegrityMonitor | None = None,
        alerts: AlertEngine | None = None,
        store: ResultStore | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.provider = provider
        self.registry = registry or SessionRegistry()
        self.monitor = monitor or ModelIntegrityMonitor(self.settings, ledger=FingerprintLedger())
        self.alerts = alerts or AlertEngine()
        self.store: ResultStore = store or InMemoryResultStore()
        self._executor = ThreadPoolExecutor(
            max_workers=self.settings.monitor_workers,
            thread_name_prefix="ciphergenix-monitor",
        )

    @property
    def ledger(self) -> FingerprintLedger:
        return self.monitor.ledger

    def start(self, model_id: str, baseline: ModelSnapshot | None = None) -> MonitoringSession:
        """
        Start monitoring model_id. Raises AlreadyMonitoring if a session is active.

        Without a baseline, the first snapshot pulled becomes the baseline.
        """
        session = MonitoringSession(model_id=model_id)
        self.registry.register(session)
        try:
            if baseline is not None:
                self._set_baseline(session, baseline)
            session.state = SessionState.RUNNING
            session.started_at = _utcnow()
            session._thread = threading.Thread(
                target=self._run,
                args=(session,),
                name=f"ciphergenix-session-{model_id}",
                daemon=True,
            )
            session._thread.start()
        except Exception:
            self.registry.remove(model_id)
            session.state = SessionState.STOPPED
            raise
        self._save("notification", _notification("monitoring_started", model_id))
        bind_model(model_id).info(
            "monitoring_started",
            interval_sec=self.settings.poll_interval_seconds,
            has_baseline=baseline is not None,
        )
        return session

    def stop(self, model_id: str) -> MonitoringSession | None:
        """Stop and deregister. Idempotent: unknown or already stopped returns None."""
        session = self.registry.remove(model_id)
        if session is None:
            return None
        session.request_stop()
        session.state = SessionState.STOPPED
        session.stopped_at = _utcnow()
        self._save("notification", _notification("monitoring_stopped", model_id))
        bind_model(model_id).info("monitoring_stopped", iterations=session.iterations, failures=session.failures)
        return session

    def status(self, model_id: str) -> dict[str, Any] | None:
        session = self.registry.get(model_id)
        return session.to_dict() if session else None

    def _set_baseline(self, session: MonitoringSession, snapshot: ModelSnapshot) -> None:
        session.baseline = snapshot
        self.ledger.register(snapshot)

    def poll_once(self, session: MonitoringSession) -> IntegrityResult | None:
        """One loop iteration. Returns None when no snapshot is available or the baseline was just taken."""
        with model_context(session.model_id):
            return self._poll(session)

    def _poll(self, session: MonitoringSession) -> IntegrityResult | None:
        snapshot = self.provider.get_snapshot(session.model_id)
        if snapshot is None:
            logger.debug("monitoring_snapshot_unavailable")
            return None
        if session.baseline is None:
            self._set_baseline(session, snapshot)
            logger.info("monitoring_baseline_captured")
            return None
        result = self.monitor.check(session.baseline, snapshot)
        session.last_result = result
        self._save("integrity_result", result.to_dict())
        self.alerts.on_integrity(result)
        return result

    def _iterate(self, session: MonitoringSession) -> None:
        try:
            self.poll_once(session)
        except Exception as e:
            session.failures += 1
            logger.exception("monitoring_iteration_failed", model_id=session.model_id, error=str(e))
        finally:
            session.iterations += 1

    def _run(self, session: MonitoringSession) -> None:
        interval = self.settings.poll_interval_seconds
        while not session.stop_requested:
            try:
                self._executor.submit(self._iterate, session).result()
            except RuntimeError:
                # pool already shut down
                break
            if session.wait(interval):
                break
        logger.debug("monitoring_loop_exited", model_id=session.model_id, iterations=session.iterations)

    def _save(self, kind: str, payload: dict[str, Any]) -> None:
        try:
            self.store.save(kind, payload)
        except Exception as e:
            logger.warning("result_store_failed", kind=kind, error=str(e))

    def shutdown(self, wait: bool = True) -> None:
        """Stop every session, release the pool and close alert sinks."""
        stopped = [self.stop(model_id) for model_id in self.registry.active_ids()]
        if wait:
            for session in stopped:
                if session is not None:
                    session.join(SHUTDOWN_JOIN_TIMEOUT_SEC)
        self._executor.shutdown(wait=wait)
        self.alerts.close()
