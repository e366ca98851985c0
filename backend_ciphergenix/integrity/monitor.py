"""
Model integrity check: one IntegrityResult per (baseline, current) snapshot pair.

Violations come from the fingerprint ledger (tampering), drift, decision-boundary
and prediction-consistency checks, and performance degradation. The threat
score is the strongest violation; the level also escalates with the number
of violations.
"""

from __future__ import annotations

from typing import Callable, Sequence

from backend_ciphergenix.ciphergenix_logging import get_logger
from backend_ciphergenix.config import Settings, get_settings
from backend_ciphergenix.detection.models import ThreatLevel
from backend_ciphergenix.integrity.behavior import ModelBehaviorAnalyzer
from backend_ciphergenix.integrity.drift import DriftDetector
from backend_ciphergenix.integrity.fingerprint import FingerprintLedger
from backend_ciphergenix.integrity.models import (
    DriftResult,
    IntegrityResult,
    IntegrityViolation,
    ModelSnapshot,
    PredictionRecord,
)

logger = get_logger(__name__)

TAMPER_SCORE = 0.9
LOSS_FLOOR = 1e-10

# (min score, min violation count, level), checked in order
_LEVEL_RULES = (
    (0.8, 4, ThreatLevel.CRITICAL),
    (0.6, 3, ThreatLevel.HIGH),
    (0.4, 2, ThreatLevel.MEDIUM),
)


def integrity_level(score: float, violation_count: int) -> ThreatLevel:
    if violation_count == 0:
        return ThreatLevel.LOW
    for min_score, min_count, level in _LEVEL_RULES:
        if score >= min_score or violation_count >= min_count:
            return level
    return ThreatLevel.LOW


def performance_degradation(
    baseline: ModelSnapshot,
    current: ModelSnapshot,
    threshold: float,
) -> list[IntegrityViolation]:
    """Relative accuracy / F1 drop and loss increase beyond threshold."""
    out: list[IntegrityViolation] = []
    if baseline.accuracy and current.accuracy is not None:
        drop = (baseline.accuracy - current.accuracy) / baseline.accuracy
        if drop > threshold:
            out.append(IntegrityViolation("accuracy_degradation", drop, f"Accuracy dropped {drop:.1%}"))
    if baseline.loss is not None and current.loss is not None:
        rise = (current.loss - baseline.loss) / (baseline.loss + LOSS_FLOOR)
        if rise > threshold:
            out.append(IntegrityViolation("loss_increase", rise, f"Loss increased {rise:.1%}"))
    if baseline.f1_score and current.f1_score is not None:
        drop = (baseline.f1_score - current.f1_score) / baseline.f1_score
        if drop > threshold:
            out.append(IntegrityViolation("f1_degradation", drop, f"F1 dropped {drop:.1%}"))
    return out


class ModelIntegrityMonitor:
    def __init__(
        self,
        settings: Settings | None = None,
        ledger: FingerprintLedger | None = None,
        drift: DriftDetector | None = None,
        behavior: ModelBehaviorAnalyzer | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.ledger = ledger or FingerprintLedger()
        self.drift = drift or DriftDetector(self.settings.drift_threshold)
        self.behavior = behavior or ModelBehaviorAnalyzer()

    def _run(
        self,
        name: str,
        model_id: str,
        fn: Callable[[], list[IntegrityViolation]],
    ) -> list[IntegrityViolation]:
        try:
            return fn()
        except Exception as e:
            logger.warning("integrity_check_failed", check=name, model_id=model_id, error=str(e))
            return []

    def check(
        self,
        baseline: ModelSnapshot,
        current: ModelSnapshot,
        predictions: Sequence[PredictionRecord] | None = None,
    ) -> IntegrityResult:
        model_id = current.model_id
        violations: list[IntegrityViolation] = []

        verification = self.ledger.verify(current)
        if verification.tampered:
            layers = ", ".join(verification.changed_layers) or "metadata"
            violations.append(
                IntegrityViolation("fingerprint_mismatch", TAMPER_SCORE, f"Fingerprint changed ({layers})")
            )

        drift: DriftResult | None = None
        try:
            drift = self.drift.detect(baseline, current)
        except Exception as e:
            logger.warning("integrity_check_failed", check="drift", model_id=model_id, error=str(e))
        if drift is not None and drift.has_drift:
            violations.append(
                IntegrityViolation(
                    "drift",
                    max(drift.per_layer_drift.values()),
                    f"Drift in {', '.join(drift.drifted_components)}",
                )
            )

        violations += self._run("decision_boundary", model_id, lambda: self.behavior.decision_boundary(baseline, current))
        if predictions:
            violations += self._run(
                "prediction_consistency", model_id, lambda: self.behavior.prediction_consistency(predictions)
            )
        violations += self._run(
            "performance",
            model_id,
            lambda: performance_degradation(baseline, current, self.settings.performance_degradation_threshold),
        )

        score = max((v.score for v in violations), default=0.0)
        level = integrity_level(score, len(violations))
        result = IntegrityResult(
            model_id=model_id,
            threat_score=score,
            threat_level=level,
            violations=tuple(violations),
            drift=drift,
            fingerprint_valid=verification.valid,
            details={"fingerprint": verification.actual.hex if verification.actual else None},
        )
        log = logger.warning if violations else logger.debug
        log(
            "integrity_check_complete",
            model_id=model_id,
            threat_level=level.value,
            threat_score=round(result.threat_score, 4),
            violations=[v.kind for v in violations],
        )
        return result
