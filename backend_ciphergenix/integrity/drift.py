"""
Drift between a baseline snapshot and a current snapshot of the same model.

Per shared layer: min(1, 0.4 * PSI + 0.3 * Wasserstein proxy + 0.3 * KS proxy).
Output distribution: Jensen-Shannon distance. Overall score is a weighted
average where the output distribution and layers named output* count double.
"""

from __future__ import annotations

import math
from typing import Mapping, Sequence

import numpy as np

from backend_ciphergenix.ciphergenix_logging import get_logger
from backend_ciphergenix.detection.models import clamp01
from backend_ciphergenix.detection.vector_stats import histogram, quantile
from backend_ciphergenix.integrity.models import DriftResult, ModelSnapshot

logger = get_logger(__name__)

DRIFT_THRESHOLD = 0.15
OUTPUT_KEY = "output_distribution"
# A layer that shares its name with OUTPUT_KEY is reported under this prefix
LAYER_PREFIX = "layer:"
OUTPUT_WEIGHT = 2.0

PSI_WEIGHT = 0.4
WASSERSTEIN_WEIGHT = 0.3
KS_WEIGHT = 0.3
MAX_PSI_BINS = 10
SMOOTHING = 1e-10
QUANTILES = tuple(q / 10 for q in range(1, 10))


def psi(baseline: np.ndarray, current: np.ndarray) -> float:
    """Population stability index over equal-width bins of the combined range."""
    n = min(baseline.size, current.size)
    bins = max(1, min(MAX_PSI_BINS, n // 10))
    lo = float(min(baseline.min(), current.min()))
    hi = float(max(baseline.max(), current.max()))
    b = histogram(baseline, bins, lo, hi) + SMOOTHING
    c = histogram(current, bins, lo, hi) + SMOOTHING
    return float(np.sum((c - b) * np.log(c / b)))


def wasserstein_proxy(baseline: np.ndarray, current: np.ndarray) -> float:
    """Mean absolute decile difference scaled by the wider of the two ranges."""
    scale = max(float(np.ptp(baseline)), float(np.ptp(current)))
    if scale <= 0:
        return 0.0 if math.isclose(float(baseline[0]), float(current[0])) else 1.0
    total = sum(abs(quantile(current, q) - quantile(baseline, q)) for q in QUANTILES)
    return total / (len(QUANTILES) * scale)


def ks_proxy(baseline: np.ndarray, current: np.ndarray) -> float:
    """(|d mean| / pooled std + |d std| / baseline std) / 2, with zero-std guards."""
    b_mean, c_mean = float(baseline.mean()), float(current.mean())
    b_std, c_std = float(baseline.std()), float(current.std())
    d_mean, d_std = abs(c_mean - b_mean), abs(c_std - b_std)
    pooled = math.sqrt((b_std ** 2 + c_std ** 2) / 2)
    if pooled <= 0:
        return d_mean + d_std
    std_term = d_std / b_std if b_std > 0 else d_std / pooled
    return (d_mean / pooled + std_term) / 2


def layer_drift(baseline: Sequence[float], current: Sequence[float]) -> float:
    """Drift of one layer in [0, 1]; length mismatch is maximal drift."""
    b = np.asarray(baseline, dtype=np.float64)
    c = np.asarray(current, dtype=np.float64)
    if b.size != c.size:
        return 1.0
    if b.size == 0:
        return 0.0
    score = (
        PSI_WEIGHT * psi(b, c)
        + WASSERSTEIN_WEIGHT * wasserstein_proxy(b, c)
        + KS_WEIGHT * ks_proxy(b, c)
    )
    return clamp01(score) if math.isfinite(score) else 1.0


def _kl(p: np.ndarray, q: np.ndarray) -> float:
    mask = p > 0
    return float(np.sum(p[mask] * np.log2(p[mask] / q[mask])))


def js_distance(baseline: Mapping[str, float], current: Mapping[str, float]) -> float:
    """Jensen-Shannon distance (base 2, so in [0, 1]) between two label distributions."""
    labels = sorted(set(baseline) | set(current))
    if not labels:
        return 0.0
    p = np.array([max(0.0, baseline.get(k, 0.0)) for k in labels], dtype=np.float64)
    q = np.array([max(0.0, current.get(k, 0.0)) for k in labels], dtype=np.float64)
    if p.sum() <= 0 or q.sum() <= 0:
        return 0.0 if p.sum() == q.sum() else 1.0
    p, q = p / p.sum(), q / q.sum()
    m = (p + q) / 2
    return clamp01(math.sqrt(max(0.0, (_kl(p, m) + _kl(q, m)) / 2)))


class DriftDetector:
    """Compares two snapshots; pure."""

    def __init__(self, threshold: float = DRIFT_THRESHOLD) -> None:
        self.threshold = threshold

    def detect(self, baseline: ModelSnapshot, current: ModelSnapshot) -> DriftResult:
        per_layer: dict[str, float] = {}
        weights: dict[str, float] = {}
        shared = sorted(set(baseline.layer_weights) & set(current.layer_weights))
        for name in shared:
            key = LAYER_PREFIX + name if name == OUTPUT_KEY else name
            per_layer[key] = layer_drift(baseline.layer_weights[name], current.layer_weights[name])
            weights[key] = OUTPUT_WEIGHT if name.startswith("output") else 1.0
        if baseline.output_distribution and current.output_distribution:
            per_layer[OUTPUT_KEY] = js_distance(baseline.output_distribution, current.output_distribution)
            weights[OUTPUT_KEY] = OUTPUT_WEIGHT

        if per_layer:
            overall = sum(per_layer[k] * weights[k] for k in per_layer) / sum(weights.values())
        else:
            overall = 0.0
        has_drift = any(v > self.threshold for v in per_layer.values())
        missing = sorted(set(baseline.layer_weights) ^ set(current.layer_weights))
        if missing:
            logger.debug("drift_unshared_layers_skipped", model_id=current.model_id, layers=missing)
        result = DriftResult(
            has_drift=has_drift,
            overall_drift_score=overall,
            per_layer_drift=per_layer,
            threshold=self.threshold,
        )
        if has_drift:
            logger.info(
                "drift_detected",
                model_id=current.model_id,
                overall_drift_score=round(result.overall_drift_score, 4),
                drifted=result.drifted_components,
            )
        return result
