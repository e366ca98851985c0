"""
Weighted ensemble of per-method anomaly scores into one ThreatAssessment.

Per sample: combined = sum(weight[m] * score_m[i]); a sample is anomalous when
combined > voting_threshold. The threat score blends the mean and the maximum
of the anomalous samples (0.7 * mean + 0.3 * max) so one severe outlier is not
diluted. Levels: < 0.4 LOW, < 0.6 MEDIUM, < 0.8 HIGH, else CRITICAL.
"""

from __future__ import annotations

from typing import Mapping

from backend_ciphergenix.ciphergenix_logging import get_logger
from backend_ciphergenix.detection.models import (
    AnomalyScore,
    EnsembleWeights,
    ScoreMethod,
    ThreatAssessment,
    ThreatLevel,
    clamp01,
)

logger = get_logger(__name__)

DEFAULT_VOTING_THRESHOLD = 0.5
MEAN_WEIGHT = 0.7
MAX_WEIGHT = 0.3

_LEVEL_BOUNDS = (
    (0.8, ThreatLevel.CRITICAL),
    (0.6, ThreatLevel.HIGH),
    (0.4, ThreatLevel.MEDIUM),
)


def threat_level_for(score: float) -> ThreatLevel:
    """Map a threat score to its level; monotonic in score."""
    for bound, level in _LEVEL_BOUNDS:
        if score >= bound:
            return level
    return ThreatLevel.LOW


class EnsembleAggregator:
    """Combines named score maps with EnsembleWeights."""

    def __init__(self, voting_threshold: float = DEFAULT_VOTING_THRESHOLD) -> None:
        self.voting_threshold = voting_threshold

    def combine(
        self,
        score_maps: Mapping[str, Mapping[int, float]],
        weights: EnsembleWeights,
    ) -> dict[int, float]:
        """Weighted per-sample scores. Methods without a weight are ignored."""
        ignored = [name for name in score_maps if name not in weights.weights]
        if ignored:
            logger.debug("ensemble_unweighted_methods_ignored", methods=ignored)
        indices: set[int] = set()
        for name, scores in score_maps.items():
            if name in weights.weights:
                indices.update(scores)
        combined: dict[int, float] = {}
        for i in sorted(indices):
            total = 0.0
            for name, w in weights.weights.items():
                total += w * clamp01(score_maps.get(name, {}).get(i, 0.0))
            combined[i] = clamp01(total)
        return combined

    def aggregate(
        self,
        score_maps: Mapping[str, Mapping[int, float]],
        weights: EnsembleWeights,
        methods: Mapping[str, ScoreMethod] | None = None,
    ) -> ThreatAssessment:
        """
        Batch assessment. methods maps score-map names to the ScoreMethod
        reported in contributing_methods; unmapped names report ENSEMBLE.
        """
        combined = self.combine(score_maps, weights)
        anomalous = [
            AnomalyScore(i, s, ScoreMethod.ENSEMBLE)
            for i, s in combined.items()
            if s > self.voting_threshold
        ]
        if anomalous:
            values = [a.score for a in anomalous]
            threat_score = MEAN_WEIGHT * (sum(values) / len(values)) + MAX_WEIGHT * max(values)
        else:
            threat_score = 0.0
        methods = methods or {}
        contributing: list[ScoreMethod] = []
        for name, scores in score_maps.items():
            if weights.get(name) <= 0 or not any(v > 0 for v in scores.values()):
                continue
            method = methods.get(name, ScoreMethod.ENSEMBLE)
            if method not in contributing:
                contributing.append(method)
        return ThreatAssessment(
            threat_score=threat_score,
            threat_level=threat_level_for(clamp01(threat_score)),
            anomalous_samples=tuple(sorted(anomalous, key=lambda a: a.sample_index)),
            contributing_methods=tuple(contributing),
        )

    def aggregate_scalar(
        self,
        scores: Mapping[str, float],
        weights: EnsembleWeights,
        methods: Mapping[str, ScoreMethod] | None = None,
        threshold: float | None = None,
    ) -> ThreatAssessment:
        """Single-input assessment: the weighted sum is the threat score."""
        score_maps = {name: {0: value} for name, value in scores.items()}
        combined = self.combine(score_maps, weights).get(0, 0.0)
        cutoff = self.voting_threshold if threshold is None else threshold
        anomalous = (AnomalyScore(0, combined, ScoreMethod.ENSEMBLE),) if combined > cutoff else ()
        methods = methods or {}
        contributing = tuple(
            methods.get(name, ScoreMethod.ENSEMBLE)
            for name, value in scores.items()
            if weights.get(name) > 0 and value > 0
        )
        return ThreatAssessment(
            threat_score=combined,
            threat_level=threat_level_for(combined),
            anomalous_samples=anomalous,
            contributing_methods=contributing,
        )
