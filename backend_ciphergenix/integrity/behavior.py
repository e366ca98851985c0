"""
Behavioral checks on served predictions and model snapshots.

Prediction consistency: unusually many low-confidence predictions, high label
entropy, high error rate on labelled traffic.
Decision boundary: output distribution shift (KL), relative weight change,
accuracy change between a baseline and a current snapshot.
"""

from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from backend_ciphergenix.ciphergenix_logging import get_logger
from backend_ciphergenix.integrity.models import IntegrityViolation, ModelSnapshot, PredictionRecord

logger = get_logger(__name__)


@dataclass(frozen=True)
class BehaviorThresholds:
    low_confidence_rate: float = 0.15
    entropy_bits: float = 2.0
    error_rate: float = 0.3
    output_kl: float = 0.2
    weight_change: float = 0.2
    accuracy_change: float = 0.1


def label_entropy(labels: Sequence[str]) -> float:
    """Shannon entropy of the label histogram, in bits."""
    if not labels:
        return 0.0
    counts = Counter(labels)
    total = len(labels)
    return -sum((c / total) * math.log2(c / total) for c in counts.values())


def kl_divergence(p: dict[str, float], q: dict[str, float], eps: float = 1e-10) -> float:
    labels = sorted(set(p) | set(q))
    if not labels:
        return 0.0
    pv = np.array([p.get(k, 0.0) for k in labels], dtype=np.float64) + eps
    qv = np.array([q.get(k, 0.0) for k in labels], dtype=np.float64) + eps
    pv, qv = pv / pv.sum(), qv / qv.sum()
    return float(np.sum(pv * np.log(pv / qv)))


class ModelBehaviorAnalyzer:
    def __init__(self, thresholds: BehaviorThresholds | None = None) -> None:
        self.thresholds = thresholds or BehaviorThresholds()

    def prediction_consistency(self, predictions: Sequence[PredictionRecord]) -> list[IntegrityViolation]:
        t = self.thresholds
        if not predictions:
            return []
        violations: list[IntegrityViolation] = []
        conf = np.array([p.confidence for p in predictions], dtype=np.float64)
        cutoff = float(conf.mean() - 2 * conf.std())
        low_rate = float(np.count_nonzero(conf < cutoff)) / conf.size
        if low_rate > t.low_confidence_rate:
            violations.append(
                IntegrityViolation(
                    "low_confidence_predictions",
                    low_rate / t.low_confidence_rate,
                    f"{low_rate:.1%} of predictions fall below mean - 2*std confidence",
                )
            )
        entropy = label_entropy([p.predicted_label for p in predictions])
        if entropy > t.entropy_bits:
            violations.append(
                IntegrityViolation(
                    "prediction_entropy",
                    entropy / 3.0,
                    f"Predicted-label entropy {entropy:.2f} bits exceeds {t.entropy_bits}",
                )
            )
        labelled = [p for p in predictions if p.actual_label is not None]
        if labelled:
            errors = sum(1 for p in labelled if p.predicted_label != p.actual_label)
            error_rate = errors / len(labelled)
            if error_rate > t.error_rate:
                violations.append(
                    IntegrityViolation(
                        "prediction_error_rate",
                        error_rate,
                        f"Error rate {error_rate:.1%} on {len(labelled)} labelled predictions",
                    )
                )
        return violations

    def decision_boundary(self, baseline: ModelSnapshot, current: ModelSnapshot) -> list[IntegrityViolation]:
        t = self.thresholds
        violations: list[IntegrityViolation] = []
        if baseline.output_distribution and current.output_distribution:
            kl = kl_divergence(dict(current.output_distribution), dict(baseline.output_distribution))
            if kl > t.output_kl:
                violations.append(
                    IntegrityViolation("output_distribution_shift", kl, f"Output KL divergence {kl:.3f}")
                )
        change = self.relative_weight_change(baseline, current)
        if change is not None and change > t.weight_change:
            violations.append(
                IntegrityViolation("weight_change", change, f"Relative weight change {change:.1%}")
            )
        if baseline.accuracy is not None and current.accuracy is not None:
            delta = abs(current.accuracy - baseline.accuracy)
            if delta > t.accuracy_change:
                violations.append(
                    IntegrityViolation("accuracy_change", 2 * delta, f"Accuracy changed by {delta:.3f}")
                )
        return violations

    @staticmethod
    def relative_weight_change(baseline: ModelSnapshot, current: ModelSnapshot) -> float | None:
        """sum|c - b| / sum|b| over shared same-length layers; None if nothing comparable."""
        diff = 0.0
        base = 0.0
        compared = False
        for name, b_vals in baseline.layer_weights.items():
            c_vals = current.layer_weights.get(name)
            if c_vals is None or len(c_vals) != len(b_vals):
                continue
            b = np.asarray(b_vals, dtype=np.float64)
            c = np.asarray(c_vals, dtype=np.float64)
            diff += float(np.abs(c - b).sum())
            base += float(np.abs(b).sum())
            compared = True
        if not compared:
            return None
        if base <= 0:
            return 0.0 if diff == 0 else 1.0
        return diff / base
