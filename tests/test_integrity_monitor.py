"""
Tests for ModelBehaviorAnalyzer, performance degradation and ModelIntegrityMonitor.
"""

from __future__ import annotations

import pytest

from backend_ciphergenix.detection.models import ThreatLevel
from backend_ciphergenix.integrity.behavior import ModelBehaviorAnalyzer, label_entropy
from backend_ciphergenix.integrity.fingerprint import FingerprintLedger
from backend_ciphergenix.integrity.models import PredictionRecord
from backend_ciphergenix.integrity.monitor import (
    ModelIntegrityMonitor,
    integrity_level,
    performance_degradation,
)


@pytest.fixture
def monitor(settings) -> ModelIntegrityMonitor:
    return ModelIntegrityMonitor(settings, ledger=FingerprintLedger())


def test_label_entropy():
    assert label_entropy(["a"] * 8) == 0.0
    assert label_entropy(["a", "b", "c", "d"]) == pytest.approx(2.0)


def test_prediction_consistency_high_error_rate():
    preds = [PredictionRecord("fraud", 0.9, "legit")] * 4 + [PredictionRecord("legit", 0.9, "legit")] * 6
    kinds = [v.kind for v in ModelBehaviorAnalyzer().prediction_consistency(preds)]
    assert kinds == ["prediction_error_rate"]


def test_prediction_consistency_high_entropy():
    preds = [PredictionRecord(f"class_{i % 8}", 0.8) for i in range(64)]
    violations = ModelBehaviorAnalyzer().prediction_consistency(preds)
    assert [v.kind for v in violations] == ["prediction_entropy"]
    assert violations[0].score == pytest.approx(1.0)


def test_relative_weight_change(make_snapshot):
    base = make_snapshot()
    weights = {k: [w * 2 for w in v] for k, v in base.layer_weights.items()}
    change = ModelBehaviorAnalyzer.relative_weight_change(base, make_snapshot(layer_weights=weights))
    assert change == pytest.approx(1.0)


def test_performance_degradation(make_snapshot):
    base = make_snapshot(accuracy=0.9, loss=0.2, f1_score=0.8)
    worse = make_snapshot(accuracy=0.7, loss=0.3, f1_score=0.78)
    kinds = [v.kind for v in performance_degradation(base, worse, 0.1)]
    assert kinds == ["accuracy_degradation", "loss_increase"]


@pytest.mark.parametrize(
    "score,count,level",
    [
        (0.0, 0, ThreatLevel.LOW),
        (0.3, 1, ThreatLevel.LOW),
        (0.3, 2, ThreatLevel.MEDIUM),
        (0.5, 1, ThreatLevel.MEDIUM),
        (0.3, 3, ThreatLevel.HIGH),
        (0.9, 1, ThreatLevel.CRITICAL),
        (0.1, 4, ThreatLevel.CRITICAL),
    ],
)
def test_integrity_level(score, count, level):
    assert integrity_level(score, count) is level


def test_clean_snapshot_is_low(monitor, make_snapshot):
    baseline = make_snapshot()
    monitor.ledger.register(baseline)
    result = monitor.check(baseline, make_snapshot())
    assert result.violations == ()
    assert result.threat_level is ThreatLevel.LOW
    assert result.fingerprint_valid is True
    assert result.drift is not None and result.drift.has_drift is False


def test_tampered_snapshot_is_critical(monitor, make_snapshot):
    baseline = make_snapshot()
    monitor.ledger.register(baseline)
    weights = dict(baseline.layer_weights)
    weights["dense_1"] = [w * 2 for w in weights["dense_1"]]
    result = monitor.check(baseline, make_snapshot(layer_weights=weights))
    kinds = {v.kind for v in result.violations}
    assert {"fingerprint_mismatch", "drift", "weight_change"} <= kinds
    assert result.fingerprint_valid is False
    assert result.threat_level is ThreatLevel.CRITICAL
    assert result.to_dict()["threat_level"] == "critical"


def test_failing_check_is_isolated(monitor, make_snapshot):
    """A crashing behavior check is logged and skipped; the result is still produced."""

    class _Boom(ModelBehaviorAnalyzer):
        def decision_boundary(self, baseline, current):
            raise RuntimeError("boom")

    monitor.behavior = _Boom()
    result = monitor.check(make_snapshot(), make_snapshot())
    assert result.threat_level is ThreatLevel.LOW
