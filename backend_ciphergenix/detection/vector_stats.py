"""
Vector statistics shared by every detector.

Column mean/std/covariance, quantiles, histograms, and regularized covariance
inversion. Inversion returns an explicit InversionResult instead of raising, so
callers choose the Euclidean fallback by branching on result.fallback.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from backend_ciphergenix.core.exceptions import DimensionMismatch, SingularCovariance

REGULARIZATION_EPSILON = 1e-6
# Condition number above which the regularized inverse is not trusted
MAX_CONDITION_NUMBER = 1e12


@dataclass(frozen=True)
class InversionResult:
    """
    Outcome of invert_regularized.

    inverse is None when fallback is True; reason says why.
    """

    inverse: np.ndarray | None
    fallback: bool
    reason: str | None = None


def to_matrix(samples: Sequence) -> np.ndarray:
    """
    Stack samples (Sample objects or raw sequences) into an (n, d) float matrix.

    Raises DimensionMismatch if rows differ in length.
    """
    rows = [getattr(s, "features", s) for s in samples]
    if not rows:
        return np.empty((0, 0), dtype=np.float64)
    dim = len(rows[0])
    for i, row in enumerate(rows):
        if len(row) != dim:
            raise DimensionMismatch(dim, len(row), sample_index=i)
    return np.asarray(rows, dtype=np.float64).reshape(len(rows), dim)


def column_mean(X: np.ndarray) -> np.ndarray:
    if X.shape[0] == 0:
        return np.zeros(X.shape[1] if X.ndim == 2 else 0)
    return X.mean(axis=0)


def column_std(X: np.ndarray, ddof: int = 1) -> np.ndarray:
    """Per-column standard deviation; zeros for a single row."""
    if X.shape[0] <= ddof:
        return np.zeros(X.shape[1])
    return X.std(axis=0, ddof=ddof)


def covariance(X: np.ndarray, mean: np.ndarray | None = None) -> np.ndarray:
    """Sample covariance with n-1 denominator (n-1 floored at 1)."""
    n, d = X.shape
    mu = column_mean(X) if mean is None else mean
    centered = X - mu
    return centered.T @ centered / max(1, n - 1)


def invert_regularized(
    cov: np.ndarray,
    epsilon: float = REGULARIZATION_EPSILON,
) -> InversionResult:
    """
    Invert cov + epsilon*I.

    Returns fallback=True (no exception) when the matrix is non-finite, still
    singular, or too ill-conditioned to produce a usable inverse.
    """
    cov = np.atleast_2d(np.asarray(cov, dtype=np.float64))
    if cov.shape[0] != cov.shape[1]:
        return InversionResult(None, True, "not_square")
    if not np.all(np.isfinite(cov)):
        return InversionResult(None, True, "non_finite")
    regularized = cov + epsilon * np.eye(cov.shape[0])
    try:
        cond = np.linalg.cond(regularized)
        if not np.isfinite(cond) or cond > MAX_CONDITION_NUMBER:
            return InversionResult(None, True, "ill_conditioned")
        inverse = np.linalg.inv(regularized)
    except np.linalg.LinAlgError:
        return InversionResult(None, True, SingularCovariance.code)
    if not np.all(np.isfinite(inverse)):
        return InversionResult(None, True, "non_finite_inverse")
    return InversionResult(inverse, False)


def mahalanobis(x: np.ndarray, mean: np.ndarray, inverse: np.ndarray) -> float:
    """sqrt((x-mu)^T inv (x-mu)), floored at 0 against round-off."""
    diff = x - mean
    return float(np.sqrt(max(0.0, float(diff @ inverse @ diff))))


def euclidean(x: np.ndarray, mean: np.ndarray) -> float:
    return float(np.linalg.norm(x - mean))


def quantile(values: Sequence[float] | np.ndarray, q: float) -> float:
    """Linear-interpolated quantile, q in [0, 1]."""
    arr = np.asarray(values, dtype=np.float64)
    if arr.size == 0:
        return 0.0
    return float(np.quantile(arr, q))


def histogram(
    values: np.ndarray,
    bins: int,
    lo: float,
    hi: float,
) -> np.ndarray:
    """Equal-width histogram over [lo, hi] normalized to fractions."""
    arr = np.asarray(values, dtype=np.float64)
    bins = max(1, int(bins))
    if arr.size == 0:
        return np.zeros(bins)
    if hi <= lo:
        counts = np.zeros(bins)
        counts[0] = 1.0
        return counts
    counts, _ = np.histogram(arr, bins=bins, range=(lo, hi))
    return counts.astype(np.float64) / arr.size


def normalize_by_max(scores: dict[int, float]) -> dict[int, float]:
    """Divide every score by the batch maximum; unchanged when max <= 0."""
    if not scores:
        return {}
    peak = max(scores.values())
    if peak <= 0:
        return dict(scores)
    return {k: v / peak for k, v in scores.items()}
