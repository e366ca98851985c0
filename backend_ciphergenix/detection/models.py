"""
Data contracts for poisoning and adversarial detection.

Samples, baselines and assessments are immutable once built; detectors borrow
baselines read-only and create a fresh ThreatAssessment per call.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence

import numpy as np

from backend_ciphergenix.core.exceptions import DimensionMismatch

WEIGHT_SUM_TOLERANCE = 1e-6


class ScoreMethod(str, Enum):
    MAHALANOBIS = "mahalanobis"
    EUCLIDEAN_FALLBACK = "euclidean_fallback"
    DISTRIBUTION_SHIFT = "distribution_shift"
    ISOLATION_FOREST = "isolation_forest"
    RECONSTRUCTION = "reconstruction"
    INFLUENCE = "influence"
    GRADIENT_SIGNATURE = "gradient_signature"
    ENSEMBLE = "ensemble"


class ThreatLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _THREAT_ORDER.index(self)

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, ThreatLevel):
            return NotImplemented
        return self.rank >= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, ThreatLevel):
            return NotImplemented
        return self.rank > other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, ThreatLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, ThreatLevel):
            return NotImplemented
        return self.rank < other.rank


_THREAT_ORDER = (ThreatLevel.LOW, ThreatLevel.MEDIUM, ThreatLevel.HIGH, ThreatLevel.CRITICAL)


def clamp01(value: float) -> float:
    """Clamp to [0, 1]; NaN maps to 0."""
    if value is None or math.isnan(value):
        return 0.0
    return max(0.0, min(1.0, float(value)))


@dataclass(frozen=True)
class Sample:
    """Fixed-length numeric feature vector with an optional label."""

    features: tuple[float, ...]
    label: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "features", tuple(float(v) for v in self.features))

    @classmethod
    def of(cls, values: Iterable[float], label: str | None = None) -> Sample:
        return cls(features=tuple(values), label=label)

    @property
    def dim(self) -> int:
        return len(self.features)

    def as_array(self) -> np.ndarray:
        return np.asarray(self.features, dtype=np.float64)


@dataclass(frozen=True)
class BaselineStatistics:
    """
    Per-feature reference statistics from clean data.

    covariance is optional; scorers fall back to diag(std^2) without it.
    """

    mean: tuple[float, ...]
    std: tuple[float, ...]
    covariance: tuple[tuple[float, ...], ...] | None = None

    def __post_init__(self) -> None:
        mean = tuple(float(v) for v in self.mean)
        std = tuple(float(v) for v in self.std)
        if len(mean) != len(std):
            raise DimensionMismatch(len(mean), len(std))
        cov = None
        if self.covariance is not None:
            cov = tuple(tuple(float(v) for v in row) for row in self.covariance)
            if len(cov) != len(mean) or any(len(row) != len(mean) for row in cov):
                raise DimensionMismatch(len(mean), len(cov))
        object.__setattr__(self, "mean", mean)
        object.__setattr__(self, "std", std)
        object.__setattr__(self, "covariance", cov)

    @property
    def dim(self) -> int:
        return len(self.mean)

    @classmethod
    def from_samples(cls, samples: Sequence[Sample], *, with_covariance: bool = True) -> BaselineStatistics:
        """Fit mean/std (and covariance) from clean reference samples."""
        from backend_ciphergenix.detection.vector_stats import (
            column_mean,
            column_std,
            covariance,
            to_matrix,
        )

        X = to_matrix(samples)
        mu = column_mean(X)
        cov = covariance(X, mu) if with_covariance and X.shape[0] > 1 else None
        return cls(
            mean=tuple(mu.tolist()),
            std=tuple(column_std(X).tolist()),
            covariance=tuple(tuple(r) for r in cov.tolist()) if cov is not None else None,
        )

    def mean_array(self) -> np.ndarray:
        return np.asarray(self.mean, dtype=np.float64)

    def std_array(self) -> np.ndarray:
        return np.asarray(self.std, dtype=np.float64)

    def covariance_matrix(self) -> np.ndarray:
        """Full covariance, or diag(std^2) when none was supplied."""
        if self.covariance is not None:
            return np.asarray(self.covariance, dtype=np.float64)
        return np.diag(self.std_array() ** 2)

    def check_dim(self, samples: Sequence[Sample]) -> None:
        """Raise DimensionMismatch if any sample dimension differs from the baseline."""
        for i, s in enumerate(samples):
            if s.dim != self.dim:
                raise DimensionMismatch(self.dim, s.dim, sample_index=i)


@dataclass(frozen=True)
class AnomalyScore:
    sample_index: int
    score: float
    method: ScoreMethod

    def __post_init__(self) -> None:
        object.__setattr__(self, "score", clamp01(self.score))

    def to_dict(self) -> dict[str, Any]:
        return {
            "sample_index": self.sample_index,
            "score": round(self.score, 6),
            "method": self.method.value,
        }


@dataclass(frozen=True)
class EnsembleWeights:
    """
    Method name -> weight. Normalized to sum 1.0 on construction.

    Negative weights are rejected; all-zero weights cannot be normalized.
    """

    weights: Mapping[str, float]

    def __post_init__(self) -> None:
        raw = {str(k): float(v) for k, v in dict(self.weights).items()}
        if any(v < 0 for v in raw.values()):
            raise ValueError(f"Ensemble weights must be non-negative: {raw}")
        total = sum(raw.values())
        if total <= 0:
            raise ValueError("Ensemble weights must have a positive sum")
        if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
            raw = {k: v / total for k, v in raw.items()}
        object.__setattr__(self, "weights", raw)

    def __getitem__(self, name: str) -> float:
        return self.weights[name]

    def get(self, name: str, default: float = 0.0) -> float:
        return self.weights.get(name, default)

    def names(self) -> list[str]:
        return list(self.weights)


@dataclass(frozen=True)
class ThreatAssessment:
    threat_score: float
    threat_level: ThreatLevel
    anomalous_samples: tuple[AnomalyScore, ...] = ()
    contributing_methods: tuple[ScoreMethod, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "threat_score", clamp01(self.threat_score))
        object.__setattr__(self, "anomalous_samples", tuple(self.anomalous_samples))
        object.__setattr__(self, "contributing_methods", tuple(self.contributing_methods))

    @property
    def anomalous_indices(self) -> list[int]:
        return [a.sample_index for a in self.anomalous_samples]

    def to_dict(self) -> dict[str, Any]:
        return {
            "threat_score": round(self.threat_score, 6),
            "threat_level": self.threat_level.value,
            "anomalous_samples": [a.to_dict() for a in self.anomalous_samples],
            "contributing_methods": [m.value for m in self.contributing_methods],
        }


@dataclass(frozen=True)
class DetectionReport:
    """
    ThreatAssessment plus explainability for one pipeline run.

    details holds per-method raw scores, contamination rate and similar context.
    """

    detection_type: str
    assessment: ThreatAssessment
    recommendation: str
    details: dict[str, Any] = field(default_factory=dict)
    feature_contributions: dict[int, dict[str, float]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "detection_type": self.detection_type,
            **self.assessment.to_dict(),
            "recommendation": self.recommendation,
            "details": self.details,
            "feature_contributions": {
                str(k): v for k, v in self.feature_contributions.items()
            },
        }
