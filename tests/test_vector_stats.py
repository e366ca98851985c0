"""
Tests for shared vector statistics: covariance, regularized inversion, histograms.
"""

from __future__ import annotations

import numpy as np
import pytest

from backend_ciphergenix.core.exceptions import DimensionMismatch
from backend_ciphergenix.detection.models import Sample
from backend_ciphergenix.detection.vector_stats import (
    covariance,
    histogram,
    invert_regularized,
    mahalanobis,
    normalize_by_max,
    quantile,
    to_matrix,
)


def test_to_matrix_rejects_ragged_rows():
    """Rows of different length raise DimensionMismatch with the offending index."""
    with pytest.raises(DimensionMismatch) as exc:
        to_matrix([Sample.of([1, 2]), Sample.of([1, 2, 3])])
    assert exc.value.sample_index == 1
    assert exc.value.code == "dimension_mismatch"


def test_covariance_uses_n_minus_one(rng):
    """Matches numpy's unbiased covariance."""
    X = rng.normal(size=(50, 3))
    np.testing.assert_allclose(covariance(X), np.cov(X, rowvar=False), atol=1e-12)


def test_invert_regularized_identity():
    """Identity inverts to (approximately) identity, no fallback."""
    result = invert_regularized(np.eye(3))
    assert result.fallback is False
    np.testing.assert_allclose(result.inverse, np.eye(3), atol=1e-5)


def test_invert_regularized_zero_matrix_is_regularized():
    """A zero covariance becomes eps*I and still inverts."""
    result = invert_regularized(np.zeros((2, 2)))
    assert result.fallback is False
    assert result.inverse[0, 0] == pytest.approx(1e6)


def test_invert_regularized_non_finite_falls_back():
    """Non-finite input yields a tagged fallback instead of raising."""
    result = invert_regularized(np.array([[np.inf, 0.0], [0.0, 1.0]]))
    assert result.fallback is True
    assert result.inverse is None
    assert result.reason == "non_finite"


def test_mahalanobis_with_identity_is_euclidean():
    x = np.array([3.0, 4.0])
    assert mahalanobis(x, np.zeros(2), np.eye(2)) == pytest.approx(5.0)


def test_histogram_fractions_sum_to_one(rng):
    values = rng.normal(size=500)
    h = histogram(values, 10, float(values.min()), float(values.max()))
    assert h.shape == (10,)
    assert h.sum() == pytest.approx(1.0)


def test_quantile_interpolates():
    assert quantile([0.0, 10.0], 0.5) == pytest.approx(5.0)
    assert quantile([], 0.5) == 0.0


def test_normalize_by_max():
    assert normalize_by_max({0: 2.0, 1: 4.0}) == {0: 0.5, 1: 1.0}
    assert normalize_by_max({}) == {}
