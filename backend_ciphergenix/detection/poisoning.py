"""
Data poisoning detection for training datasets.

Runs statistical distance, distribution shift and leave-one-out influence over
a batch, combines them with the poisoning ensemble weights, and explains the
result: contamination rate, per-feature contributions of flagged samples and a
recommendation text per threat level.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, Sequence

import numpy as np

from backend_ciphergenix.ciphergenix_logging import get_logger
from backend_ciphergenix.config import Settings, get_settings
from backend_ciphergenix.core.exceptions import DimensionMismatch
from backend_ciphergenix.detection.ensemble import EnsembleAggregator
from backend_ciphergenix.detection.influence import InfluenceScorer
from backend_ciphergenix.detection.isolation import IsolationScorer
from backend_ciphergenix.detection.models import (
    BaselineStatistics,
    DetectionReport,
    EnsembleWeights,
    Sample,
    ScoreMethod,
    ThreatAssessment,
    ThreatLevel,
)
from backend_ciphergenix.detection.statistical import STD_FLOOR, StatisticalAnomalyScorer
from backend_ciphergenix.detection.vector_stats import to_matrix

logger = get_logger(__name__)

DETECTION_TYPE = "data_poisoning"

_RECOMMENDATIONS = {
    ThreatLevel.CRITICAL: (
        "CRITICAL: quarantine the dataset and retrain from a verified clean source. "
        "Estimated contamination: {rate:.1%}."
    ),
    ThreatLevel.HIGH: (
        "HIGH: remove the flagged samples and re-validate the dataset before training. "
        "Estimated contamination: {rate:.1%}."
    ),
    ThreatLevel.MEDIUM: (
        "MEDIUM: manually review the flagged samples and their provenance. "
        "Estimated contamination: {rate:.1%}."
    ),
    ThreatLevel.LOW: "LOW: no significant poisoning detected; continue monitoring.",
}


def recommendation_for(level: ThreatLevel, contamination_rate: float) -> str:
    return _RECOMMENDATIONS[level].format(rate=contamination_rate)


class DataPoisoningDetector:
    """
    Ensemble poisoning detector over one dataset batch.

    With a baseline: Mahalanobis distance + KS-like divergence + influence.
    Without: isolation-forest scores stand in for distance; divergence is empty.
    """

    SCORE_METHODS = {
        "statistical": ScoreMethod.MAHALANOBIS,
        "distribution": ScoreMethod.DISTRIBUTION_SHIFT,
        "influence": ScoreMethod.INFLUENCE,
    }

    def __init__(
        self,
        settings: Settings | None = None,
        statistical: StatisticalAnomalyScorer | None = None,
        influence: InfluenceScorer | None = None,
        aggregator: EnsembleAggregator | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.statistical = statistical or StatisticalAnomalyScorer(
            lambda_=self.settings.mahalanobis_lambda,
            isolation=IsolationScorer(random_state=self.settings.isolation_seed),
        )
        self.influence = influence or InfluenceScorer(threshold=self.settings.influence_threshold)
        self.aggregator = aggregator or EnsembleAggregator(self.settings.voting_threshold)
        self.weights = EnsembleWeights(self.settings.poisoning_weights)

    def _run(self, name: str, fn: Callable[[], Mapping[int, float]]) -> dict[int, float]:
        try:
            return dict(fn())
        except DimensionMismatch:
            raise
        except Exception as e:
            logger.warning("poisoning_scorer_failed", scorer=name, error=str(e))
            return {}

    def score_maps(
        self,
        samples: Sequence[Sample],
        baseline: BaselineStatistics | None = None,
    ) -> tuple[dict[str, dict[int, float]], ScoreMethod]:
        """Per-method score maps keyed by ensemble weight name."""
        if baseline is not None:
            baseline.check_dim(samples)
        stats = None

        def _statistical() -> dict[int, float]:
            nonlocal stats
            stats = self.statistical.score(samples, baseline)
            return stats.distance

        maps = {"statistical": self._run("statistical", _statistical)}
        maps["distribution"] = dict(stats.divergence) if stats is not None else {}
        maps["influence"] = self._run("influence", lambda: self.influence.score(samples))
        method = stats.method if stats is not None else ScoreMethod.MAHALANOBIS
        return maps, method

    def detect(
        self,
        samples: Sequence[Sample],
        baseline: BaselineStatistics | None = None,
        feature_names: Sequence[str] | None = None,
    ) -> DetectionReport:
        """
        Full poisoning report for a dataset.

        Raises DimensionMismatch when samples disagree with the baseline or
        with each other. An empty dataset is a LOW report with no findings.
        """
        if not samples:
            assessment = ThreatAssessment(0.0, ThreatLevel.LOW)
            return DetectionReport(
                DETECTION_TYPE,
                assessment,
                recommendation_for(ThreatLevel.LOW, 0.0),
                details={"samples": 0, "contamination_rate": 0.0},
            )
        X = to_matrix(samples)
        maps, method = self.score_maps(samples, baseline)
        methods = dict(self.SCORE_METHODS, statistical=method)
        assessment = self.aggregator.aggregate(maps, self.weights, methods)
        rate = len(assessment.anomalous_samples) / len(samples)
        names = list(feature_names) if feature_names else [f"feature_{j}" for j in range(X.shape[1])]
        contributions = self._feature_contributions(X, assessment.anomalous_indices, baseline, names)
        details: dict[str, Any] = {
            "samples": len(samples),
            "contamination_rate": round(rate, 6),
            "contamination_exceeded": rate > self.settings.contamination_threshold,
            "statistical_method": method.value,
            "high_influence_samples": sorted(maps["influence"]),
        }
        report = DetectionReport(
            DETECTION_TYPE,
            assessment,
            recommendation_for(assessment.threat_level, rate),
            details=details,
            feature_contributions=contributions,
        )
        logger.info(
            "poisoning_detection_complete",
            samples=len(samples),
            anomalous=len(assessment.anomalous_samples),
            threat_score=round(assessment.threat_score, 4),
            threat_level=assessment.threat_level.value,
        )
        return report

    def _feature_contributions(
        self,
        X: np.ndarray,
        indices: Sequence[int],
        baseline: BaselineStatistics | None,
        names: Sequence[str],
    ) -> dict[int, dict[str, float]]:
        """Share of each feature in a flagged sample's standardized deviation."""
        if not indices:
            return {}
        if baseline is not None:
            mu, sigma = baseline.mean_array(), baseline.std_array()
        else:
            mu, sigma = X.mean(axis=0), X.std(axis=0)
        out: dict[int, dict[str, float]] = {}
        for i in indices:
            z = np.abs(X[i] - mu) / (sigma + STD_FLOOR)
            total = float(z.sum())
            if total <= 0:
                out[i] = {name: 0.0 for name in names}
                continue
            out[i] = {name: round(float(v) / total, 6) for name, v in zip(names, z)}
        return out
