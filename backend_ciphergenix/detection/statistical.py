"""
Statistical anomaly scoring against a clean baseline.

Two per-sample signals:
- distance: Mahalanobis distance to the baseline mean, mapped to [0, 1] by
  1 - exp(-lambda * d). Falls back to Euclidean distance when the regularized
  covariance still cannot be inverted.
- divergence: KS-like per-feature shift of the batch (observed mean/std vs
  baseline), attributed to samples by their standardized deviation and
  normalized by the batch maximum.

Without a baseline the scorer delegates to IsolationScorer. Pure; no state
beyond configuration.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from backend_ciphergenix.ciphergenix_logging import get_logger
from backend_ciphergenix.detection.isolation import IsolationScorer
from backend_ciphergenix.detection.models import (
    AnomalyScore,
    BaselineStatistics,
    Sample,
    ScoreMethod,
    clamp01,
)
from backend_ciphergenix.detection.vector_stats import (
    REGULARIZATION_EPSILON,
    euclidean,
    invert_regularized,
    mahalanobis,
    to_matrix,
)

logger = get_logger(__name__)

# d = 3 maps to 1 - e^-1.5 ~= 0.777
DEFAULT_LAMBDA = 0.5
# Guards division by a zero baseline std
STD_FLOOR = 1e-10


def distance_to_score(distance: float, lambda_: float = DEFAULT_LAMBDA) -> float:
    """Map a non-negative distance into [0, 1): 1 - exp(-lambda * d)."""
    if not math.isfinite(distance):
        return 1.0
    return clamp01(1.0 - math.exp(-lambda_ * max(0.0, distance)))


def ks_feature_statistic(values: np.ndarray, mean: float, std: float) -> float:
    """|observed_mean - mean| / std + |observed_std - std| / std."""
    denom = std + STD_FLOOR
    obs_mean = float(np.mean(values)) if values.size else mean
    obs_std = float(np.std(values, ddof=1)) if values.size > 1 else 0.0
    return abs(obs_mean - mean) / denom + abs(obs_std - std) / denom


@dataclass(frozen=True)
class StatisticalScores:
    """
    Per-sample statistical scores for one batch.

    distance holds Mahalanobis (or fallback) scores; divergence is empty when
    no baseline was available and distance came from the isolation forest.
    """

    distance: dict[int, float] = field(default_factory=dict)
    divergence: dict[int, float] = field(default_factory=dict)
    method: ScoreMethod = ScoreMethod.MAHALANOBIS
    feature_shift: tuple[float, ...] = ()

    def distance_scores(self) -> list[AnomalyScore]:
        return [AnomalyScore(i, s, self.method) for i, s in sorted(self.distance.items())]

    def divergence_scores(self) -> list[AnomalyScore]:
        return [
            AnomalyScore(i, s, ScoreMethod.DISTRIBUTION_SHIFT)
            for i, s in sorted(self.divergence.items())
        ]


class StatisticalAnomalyScorer:
    """Mahalanobis + distribution-shift scoring; isolation forest without a baseline."""

    def __init__(
        self,
        lambda_: float = DEFAULT_LAMBDA,
        epsilon: float = REGULARIZATION_EPSILON,
        isolation: IsolationScorer | None = None,
    ) -> None:
        self.lambda_ = lambda_
        self.epsilon = epsilon
        self.isolation = isolation or IsolationScorer()

    def distance_scores(
        self,
        samples: Sequence[Sample],
        baseline: BaselineStatistics,
    ) -> tuple[dict[int, float], ScoreMethod]:
        """
        Score each sample by its distance to the baseline mean.

        Returns (scores, method); method is EUCLIDEAN_FALLBACK when the
        covariance could not be inverted.
        """
        baseline.check_dim(samples)
        if not samples:
            return {}, ScoreMethod.MAHALANOBIS
        X = to_matrix(samples)
        mu = baseline.mean_array()
        inversion = invert_regularized(baseline.covariance_matrix(), self.epsilon)
        if inversion.fallback:
            logger.warning(
                "statistical_covariance_fallback",
                reason=inversion.reason,
                dim=baseline.dim,
            )
            scores = {
                i: distance_to_score(euclidean(X[i], mu), self.lambda_) for i in range(X.shape[0])
            }
            return scores, ScoreMethod.EUCLIDEAN_FALLBACK
        scores = {
            i: distance_to_score(mahalanobis(X[i], mu, inversion.inverse), self.lambda_)
            for i in range(X.shape[0])
        }
        return scores, ScoreMethod.MAHALANOBIS

    def divergence_scores(
        self,
        samples: Sequence[Sample],
        baseline: BaselineStatistics,
    ) -> tuple[dict[int, float], tuple[float, ...]]:
        """
        Batch distribution shift attributed to individual samples.

        Returns (per-sample scores normalized by the batch max, per-feature KS statistics).
        """
        baseline.check_dim(samples)
        if not samples:
            return {}, ()
        X = to_matrix(samples)
        mu = baseline.mean_array()
        sigma = baseline.std_array()
        feature_shift = np.array(
            [ks_feature_statistic(X[:, j], mu[j], sigma[j]) for j in range(X.shape[1])]
        )
        z = np.abs(X - mu) / (sigma + STD_FLOOR)
        raw = z @ feature_shift
        peak = float(raw.max()) if raw.size else 0.0
        if peak <= 0 or not math.isfinite(peak):
            scores = {i: 0.0 for i in range(X.shape[0])}
        else:
            scores = {i: clamp01(float(raw[i]) / peak) for i in range(X.shape[0])}
        return scores, tuple(float(v) for v in feature_shift)

    def score(
        self,
        samples: Sequence[Sample],
        baseline: BaselineStatistics | None = None,
    ) -> StatisticalScores:
        """
        Score a batch. DimensionMismatch propagates to the caller.

        No baseline: isolation-forest scores only, divergence empty.
        """
        if baseline is None:
            logger.debug("statistical_no_baseline_isolation", samples=len(samples))
            return StatisticalScores(
                distance=self.isolation.score(samples),
                method=ScoreMethod.ISOLATION_FOREST,
            )
        distance, method = self.distance_scores(samples, baseline)
        divergence, feature_shift = self.divergence_scores(samples, baseline)
        return StatisticalScores(
            distance=distance,
            divergence=divergence,
            method=method,
            feature_shift=feature_shift,
        )

    def score_one(self, sample: Sample, baseline: BaselineStatistics) -> tuple[float, ScoreMethod]:
        """Distance score for a single input (adversarial pipeline)."""
        scores, method = self.distance_scores([sample], baseline)
        return scores[0], method
