"""
Tests for InfluenceScorer and GradientSignatureAnalyzer.
"""

from __future__ import annotations

import numpy as np
import pytest

from backend_ciphergenix.detection.gradient import GradientSignatureAnalyzer, cw_score, fgsm_score
from backend_ciphergenix.detection.influence import InfluenceScorer
from backend_ciphergenix.detection.models import Sample


def test_influence_fewer_than_two_samples_is_empty():
    scorer = InfluenceScorer()
    assert scorer.score([]) == {}
    assert scorer.score([Sample.of([1.0, 2.0])]) == {}


def test_influence_flags_injected_outlier(rng):
    rows = rng.normal(size=(60, 3)).tolist() + [[30.0, 30.0, 30.0]]
    scores = InfluenceScorer().score([Sample.of(r) for r in rows])
    assert scores[60] == pytest.approx(1.0)
    assert all(0.7 <= s <= 1.0 for s in scores.values())


def test_influence_two_samples_both_reported():
    """Two samples are symmetric: equal influence, both normalized to 1."""
    scores = InfluenceScorer().score([Sample.of([0.0, 0.0]), Sample.of([1.0, 1.0])])
    assert scores == {0: pytest.approx(1.0), 1: pytest.approx(1.0)}


def test_fgsm_alternating_signs_detected():
    """Uniform magnitude with a sign flip at every step is an FGSM signature."""
    sig = GradientSignatureAnalyzer().analyze([1, -1, 1, -1, 1, -1, 1, -1])
    assert sig.fgsm > 0.7
    assert "fgsm" in sig.detected


def test_cw_sparse_concentrated_detected():
    """A single large coordinate in an otherwise zero vector is a C&W signature."""
    sig = GradientSignatureAnalyzer().analyze([0, 0, 0, 5, 0, 0, 0, 0])
    assert sig.cw > 0.8
    assert sig.cw == pytest.approx(0.6 * 0.875 + 0.4)
    assert sig.fgsm == 0.0


def test_gradient_scores_gated_to_zero_for_noise(rng):
    x = np.abs(rng.normal(size=64)) * np.linspace(0.1, 3.0, 64)
    sig = GradientSignatureAnalyzer().analyze(x)
    assert sig.fgsm == 0.0
    assert sig.cw == 0.0


def test_gradient_degenerate_inputs():
    analyzer = GradientSignatureAnalyzer()
    assert analyzer.analyze([]).score == 0.0
    assert analyzer.analyze([0.0, 0.0, 0.0]).score == 0.0
    assert fgsm_score(np.array([1.0])) == 0.0
    assert cw_score(np.array([])) == 0.0


def test_family_score_at_threshold_is_kept():
    from backend_ciphergenix.detection.gradient import CW_GATE, FGSM_GATE, PGD_GATE, _gate

    for gate in (FGSM_GATE, PGD_GATE, CW_GATE):
        assert _gate(gate, gate) == gate
        assert _gate(gate - 1e-9, gate) == 0.0
