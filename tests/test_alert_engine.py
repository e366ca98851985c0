"""
Tests for the alert engine: thresholds, cooldown dedup, sink isolation, webhook sink.
"""

from __future__ import annotations

import json

import httpx
import pytest

from backend_ciphergenix.alerts.engine import (
    AlertConfig,
    AlertEngine,
    AlertEvent,
    HttpAlertSink,
    InMemoryAlertSink,
)
from backend_ciphergenix.detection.models import (
    DetectionReport,
    ThreatAssessment,
    ThreatLevel,
)
from backend_ciphergenix.integrity.models import DriftResult, IntegrityResult
from backend_ciphergenix.theft.analyzer import TheftAssessment


class _Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def sink() -> InMemoryAlertSink:
    return InMemoryAlertSink()


@pytest.fixture
def clock() -> _Clock:
    return _Clock()


@pytest.fixture
def engine(sink, clock) -> AlertEngine:
    return AlertEngine([sink], AlertConfig(cooldown_sec=60.0), clock=clock)


def _report(level: ThreatLevel, score: float) -> DetectionReport:
    return DetectionReport("data_poisoning", ThreatAssessment(score, level), "review")


def test_detection_below_high_is_not_alerted(engine, sink):
    assert engine.on_detection("fraud-v3", _report(ThreatLevel.MEDIUM, 0.5)) is None
    assert sink.events == []


def test_detection_high_is_alerted(engine, sink):
    event = engine.on_detection("fraud-v3", _report(ThreatLevel.HIGH, 0.7))
    assert event is not None
    assert event.event_type == "data_poisoning_detected"
    assert sink.events == [event]
    assert event.payload["threat_level"] == "high"


def test_cooldown_suppresses_duplicates(engine, sink, clock):
    engine.on_detection("fraud-v3", _report(ThreatLevel.CRITICAL, 0.9))
    assert engine.on_detection("fraud-v3", _report(ThreatLevel.CRITICAL, 0.95)) is None
    # different severity is a different key
    assert engine.on_detection("fraud-v3", _report(ThreatLevel.HIGH, 0.7)) is not None
    clock.now += 61
    assert engine.on_detection("fraud-v3", _report(ThreatLevel.CRITICAL, 0.9)) is not None
    assert len(sink.events) == 3


def test_drift_alert(engine, sink):
    drift = DriftResult(True, 0.4, {"dense_1": 0.9, "dense_2": 0.0})
    event = engine.on_drift("fraud-v3", drift)
    assert event.severity is ThreatLevel.CRITICAL
    assert engine.on_drift("fraud-v3", DriftResult(False, 0.01, {"dense_1": 0.01})) is None


def test_integrity_low_with_drift_falls_back_to_drift_alert(engine, sink):
    drift = DriftResult(True, 0.2, {"dense_1": 0.2})
    result = IntegrityResult("fraud-v3", 0.2, ThreatLevel.LOW, drift=drift)
    event = engine.on_integrity(result)
    assert event.event_type == "drift_detected"
    assert event.severity is ThreatLevel.MEDIUM


def test_theft_alert_threshold(engine, sink):
    below = TheftAssessment(100, 2.0, 0.1, 0.0, 0.69, ThreatLevel.HIGH, "c", "fraud-v3")
    above = TheftAssessment(100, 2.0, 0.1, 1.0, 0.9, ThreatLevel.CRITICAL, "c", "fraud-v3")
    assert engine.on_theft(below) is None
    assert engine.on_theft(above).event_type == "theft_pattern_detected"


def test_failing_sink_does_not_block_others(clock):
    class _Broken:
        def send(self, event):
            raise RuntimeError("sink down")

    good = InMemoryAlertSink()
    engine = AlertEngine([_Broken(), good], AlertConfig(), clock=clock)
    assert engine.emit(AlertEvent(event_type="x", model_id="m", severity=ThreatLevel.HIGH)) is True
    assert len(good.events) == 1


def test_notification_shape():
    event = AlertEvent(event_type="drift_detected", model_id="m", severity=ThreatLevel.HIGH)
    note = event.to_notification()
    assert set(note) == {"event", "modelId", "severity", "timestamp"}
    assert note["severity"] == "high"


def test_http_sink_posts_json():
    received = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(json.loads(request.content))
        return httpx.Response(202)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    sink = HttpAlertSink("https://alerts.example.test/hook", client=client)
    sink.send(AlertEvent(event_type="integrity_violation", model_id="m", severity=ThreatLevel.CRITICAL))
    assert received[0]["event_type"] == "integrity_violation"
    assert received[0]["severity"] == "critical"


def test_http_sink_error_is_logged_not_raised(clock):
    client = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(500)))
    engine = AlertEngine([HttpAlertSink("https://alerts.example.test/hook", client=client)], clock=clock)
    assert engine.emit(AlertEvent(event_type="x", model_id="m", severity=ThreatLevel.HIGH)) is True


def test_close_releases_owned_http_client_only(clock):
    injected = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    owned_sink = HttpAlertSink("https://alerts.example.test/hook")
    injected_sink = HttpAlertSink("https://alerts.example.test/hook", client=injected)
    engine = AlertEngine([InMemoryAlertSink(), owned_sink, injected_sink], clock=clock)
    engine.close()
    assert owned_sink._client.is_closed
    assert not injected.is_closed
    injected.close()
