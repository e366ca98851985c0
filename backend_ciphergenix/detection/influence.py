"""
Leave-one-out influence scoring.

For each sample, the distance between it and the batch mean computed without
it, measured in the batch's regularized covariance and scaled by n/(n-1).
Scores are normalized by the batch maximum and only high-influence samples
(>= threshold) are reported.
"""

from __future__ import annotations

from typing import Sequence

from backend_ciphergenix.ciphergenix_logging import get_logger
from backend_ciphergenix.core.exceptions import InsufficientSamples
from backend_ciphergenix.detection.models import AnomalyScore, Sample, ScoreMethod, clamp01
from backend_ciphergenix.detection.vector_stats import (
    REGULARIZATION_EPSILON,
    column_mean,
    covariance,
    euclidean,
    invert_regularized,
    mahalanobis,
    normalize_by_max,
    to_matrix,
)

logger = get_logger(__name__)

DEFAULT_INFLUENCE_THRESHOLD = 0.7
MIN_SAMPLES = 2


class InfluenceScorer:
    """Flags samples whose removal would move the batch statistics the most."""

    def __init__(
        self,
        threshold: float = DEFAULT_INFLUENCE_THRESHOLD,
        epsilon: float = REGULARIZATION_EPSILON,
    ) -> None:
        self.threshold = threshold
        self.epsilon = epsilon

    def raw_influence(self, samples: Sequence[Sample]) -> dict[int, float]:
        """Unnormalized leave-one-out influence for every sample."""
        n = len(samples)
        if n < MIN_SAMPLES:
            return {}
        X = to_matrix(samples)
        mu = column_mean(X)
        inversion = invert_regularized(covariance(X, mu), self.epsilon)
        if inversion.fallback:
            logger.warning("influence_covariance_fallback", reason=inversion.reason, samples=n)
        scale = n / (n - 1)
        total = mu * n
        out: dict[int, float] = {}
        for i in range(n):
            loo_mean = (total - X[i]) / (n - 1)
            if inversion.fallback:
                d = euclidean(X[i], loo_mean)
            else:
                d = mahalanobis(X[i], loo_mean, inversion.inverse)
            out[i] = d * scale
        return out

    def score(self, samples: Sequence[Sample]) -> dict[int, float]:
        """
        High-influence samples only: index -> normalized score in [0, 1].

        Empty when fewer than two samples are given.
        """
        raw = self.raw_influence(samples)
        if not raw:
            if samples:
                logger.debug("influence_skipped", reason=InsufficientSamples.code, samples=len(samples))
            return {}
        normalized = normalize_by_max(raw)
        flagged = {i: clamp01(s) for i, s in normalized.items() if s >= self.threshold}
        logger.debug("influence_scored", samples=len(samples), flagged=len(flagged))
        return flagged

    def score_samples(self, samples: Sequence[Sample]) -> list[AnomalyScore]:
        return [
            AnomalyScore(i, s, ScoreMethod.INFLUENCE) for i, s in sorted(self.score(samples).items())
        ]
