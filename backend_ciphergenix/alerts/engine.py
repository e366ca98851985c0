"""
Alert engine: threat thresholds, event construction, sink delivery with dedup.

Decides when a detection result becomes an alert (threat level >= HIGH, drift
detected, theft probability above threshold), builds an AlertEvent and hands it
to every configured sink. Identical (model_id, event_type, severity) alerts are
suppressed within a cooldown window. Sink failures are logged, never raised.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Protocol, Sequence, runtime_checkable

import httpx
from pydantic import BaseModel, Field

from backend_ciphergenix.ciphergenix_logging import get_logger
from backend_ciphergenix.config import Settings, get_settings
from backend_ciphergenix.detection.ensemble import threat_level_for
from backend_ciphergenix.detection.models import DetectionReport, ThreatLevel
from backend_ciphergenix.integrity.models import DriftResult, IntegrityResult
from backend_ciphergenix.theft.analyzer import TheftAssessment

logger = get_logger(__name__)

DEFAULT_ALERT_COOLDOWN_SEC = 3600.0
DEFAULT_MIN_SEVERITY = ThreatLevel.HIGH
DEFAULT_WEBHOOK_TIMEOUT_SEC = 10.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AlertEvent(BaseModel):
    """Alert handed to sinks."""

    event_type: str
    model_id: str
    severity: ThreatLevel
    payload: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=_utcnow)

    def to_notification(self) -> dict[str, Any]:
        """Compact notification dict for dashboards."""
        return {
            "event": self.event_type,
            "modelId": self.model_id,
            "severity": self.severity.value,
            "timestamp": self.timestamp.isoformat(),
        }


@runtime_checkable
class AlertSink(Protocol):
    def send(self, event: AlertEvent) -> None:
        ...


class LoggingAlertSink:
    """Writes alerts to the structured log."""

    def send(self, event: AlertEvent) -> None:
        logger.warning(
            "alert_emitted",
            alert_type=event.event_type,
            model_id=event.model_id,
            severity=event.severity.value,
            payload=event.payload,
        )


class InMemoryAlertSink:
    """Keeps alerts in a list; for tests and local runs."""

    def __init__(self) -> None:
        self.events: list[AlertEvent] = []
        self._lock = threading.Lock()

    def send(self, event: AlertEvent) -> None:
        with self._lock:
            self.events.append(event)

    def of_type(self, event_type: str) -> list[AlertEvent]:
        with self._lock:
            return [e for e in self.events if e.event_type == event_type]


class HttpAlertSink:
    """POSTs each alert as JSON to a webhook URL."""

    def __init__(
        self,
        url: str,
        timeout: float = DEFAULT_WEBHOOK_TIMEOUT_SEC,
        client: httpx.Client | None = None,
    ) -> None:
        self.url = url
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)

    def send(self, event: AlertEvent) -> None:
        response = self._client.post(self.url, json=event.model_dump(mode="json"))
        response.raise_for_status()
        logger.debug("alert_webhook_delivered", url=self.url, status_code=response.status_code)

    def close(self) -> None:
        """Close the HTTP client if this sink created it."""
        if self._owns_client:
            self._client.close()


@dataclass
class AlertConfig:
    """Thresholds and dedup window for the alert engine."""

    min_severity: ThreatLevel = DEFAULT_MIN_SEVERITY
    """Threat assessments and integrity results alert at this level or above."""
    theft_alert_threshold: float = 0.7
    """Theft probability strictly above this alerts."""
    cooldown_sec: float = DEFAULT_ALERT_COOLDOWN_SEC
    """Don't re-send the same (model_id, event_type, severity) within this window."""

    @classmethod
    def from_settings(cls, settings: Settings) -> AlertConfig:
        return cls(theft_alert_threshold=settings.theft_alert_threshold)


def default_sinks(settings: Settings | None = None) -> list[AlertSink]:
    """Logging sink, plus a webhook sink when CIPHERGENIX_ALERT_WEBHOOK_URL is set."""
    settings = settings or get_settings()
    sinks: list[AlertSink] = [LoggingAlertSink()]
    if settings.alert_webhook_url:
        sinks.append(HttpAlertSink(settings.alert_webhook_url))
    return sinks


class AlertEngine:
    def __init__(
        self,
        sinks: Sequence[AlertSink] | None = None,
        config: AlertConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.sinks = list(sinks) if sinks is not None else default_sinks()
        self.config = config or AlertConfig.from_settings(get_settings())
        self._clock = clock
        self._last_sent: dict[tuple[str, str, ThreatLevel], float] = {}
        self._lock = threading.Lock()

    def _is_duplicate(self, event: AlertEvent) -> bool:
        key = (event.model_id, event.event_type, event.severity)
        now = self._clock()
        with self._lock:
            last = self._last_sent.get(key)
            if last is not None and now - last < self.config.cooldown_sec:
                return True
            self._last_sent[key] = now
        return False

    def emit(self, event: AlertEvent) -> bool:
        """Deliver to all sinks unless deduplicated. Returns True if delivered."""
        if self._is_duplicate(event):
            logger.debug(
                "alert_suppressed_cooldown",
                model_id=event.model_id,
                alert_type=event.event_type,
                severity=event.severity.value,
            )
            return False
        for sink in self.sinks:
            try:
                sink.send(event)
            except Exception as e:
                logger.warning(
                    "alert_sink_failed",
                    sink=type(sink).__name__,
                    model_id=event.model_id,
                    error=str(e),
                )
        return True

    def on_detection(self, model_id: str, report: DetectionReport) -> AlertEvent | None:
        level = report.assessment.threat_level
        if level < self.config.min_severity:
            return None
        event = AlertEvent(
            event_type=f"{report.detection_type}_detected",
            model_id=model_id,
            severity=level,
            payload=report.to_dict(),
        )
        return event if self.emit(event) else None

    def on_drift(self, model_id: str, drift: DriftResult) -> AlertEvent | None:
        if not drift.has_drift:
            return None
        peak = max(drift.per_layer_drift.values(), default=drift.overall_drift_score)
        event = AlertEvent(
            event_type="drift_detected",
            model_id=model_id,
            severity=max(threat_level_for(peak), ThreatLevel.MEDIUM),
            payload=drift.to_dict(),
        )
        return event if self.emit(event) else None

    def on_integrity(self, result: IntegrityResult) -> AlertEvent | None:
        """Integrity alert at min_severity or above; otherwise a drift alert if drift was found."""
        if result.threat_level < self.config.min_severity:
            if result.drift is not None:
                return self.on_drift(result.model_id, result.drift)
            return None
        event = AlertEvent(
            event_type="integrity_violation",
            model_id=result.model_id,
            severity=result.threat_level,
            payload=result.to_dict(),
        )
        return event if self.emit(event) else None

    def on_theft(self, assessment: TheftAssessment) -> AlertEvent | None:
        if assessment.theft_probability <= self.config.theft_alert_threshold:
            return None
        event = AlertEvent(
            event_type="theft_pattern_detected",
            model_id=assessment.model_id or "unknown",
            severity=assessment.risk_level,
            payload=assessment.to_dict(),
        )
        return event if self.emit(event) else None

    def close(self) -> None:
        """Release sink resources; sinks without close() are skipped."""
        for sink in self.sinks:
            close = getattr(sink, "close", None)
            if close is None:
                continue
            try:
                close()
            except Exception as e:
                logger.warning("alert_sink_close_failed", sink=type(sink).__name__, error=str(e))
