"""
Tests for DriftDetector: identical snapshots, scaled layers, output distribution.
"""

from __future__ import annotations

import pytest

from backend_ciphergenix.integrity.drift import (
    LAYER_PREFIX,
    OUTPUT_KEY,
    DriftDetector,
    js_distance,
    layer_drift,
)
from backend_ciphergenix.integrity.models import ModelSnapshot


def test_identical_snapshots_have_no_drift(make_snapshot):
    result = DriftDetector().detect(make_snapshot(), make_snapshot())
    assert result.has_drift is False
    assert result.overall_drift_score == pytest.approx(0.0, abs=1e-9)
    assert all(v == pytest.approx(0.0, abs=1e-9) for v in result.per_layer_drift.values())


def test_scaled_layer_drifts_while_others_do_not(make_snapshot):
    """Doubling one layer exceeds the threshold; untouched layers stay near zero."""
    base = make_snapshot()
    weights = dict(base.layer_weights)
    weights["dense_1"] = [w * 2 for w in weights["dense_1"]]
    result = DriftDetector().detect(base, make_snapshot(layer_weights=weights))
    assert result.has_drift is True
    assert result.per_layer_drift["dense_1"] > 0.15
    assert result.per_layer_drift["dense_2"] == pytest.approx(0.0, abs=1e-9)
    assert result.per_layer_drift[OUTPUT_KEY] == pytest.approx(0.0, abs=1e-9)
    assert result.drifted_components == ["dense_1"]


def test_layer_length_mismatch_is_maximal():
    assert layer_drift([1.0, 2.0, 3.0], [1.0, 2.0]) == 1.0


def test_output_distribution_shift(make_snapshot):
    current = make_snapshot(output_distribution={"fraud": 0.6, "legit": 0.3, "review": 0.1})
    result = DriftDetector().detect(make_snapshot(), current)
    assert result.per_layer_drift[OUTPUT_KEY] > 0.15
    assert result.has_drift is True


def test_output_weighted_double_in_overall():
    base = ModelSnapshot("m", layer_weights={"a": [1.0, 2.0, 3.0]}, output_distribution={"x": 1.0})
    cur = ModelSnapshot("m", layer_weights={"a": [1.0, 2.0, 3.0]}, output_distribution={"y": 1.0})
    result = DriftDetector().detect(base, cur)
    # layer a = 0.0 (unchanged), output = 1.0 (disjoint support) counted twice
    assert result.overall_drift_score == pytest.approx(2.0 / 3.0)


def test_js_distance_bounds():
    assert js_distance({"a": 0.5, "b": 0.5}, {"a": 0.5, "b": 0.5}) == pytest.approx(0.0)
    assert js_distance({"a": 1.0}, {"b": 1.0}) == pytest.approx(1.0)
    assert js_distance({}, {}) == 0.0


def test_unshared_layers_are_skipped():
    base = ModelSnapshot("m", layer_weights={"a": [1.0, 2.0], "old": [5.0]})
    cur = ModelSnapshot("m", layer_weights={"a": [1.0, 2.0], "new": [7.0]})
    result = DriftDetector().detect(base, cur)
    assert set(result.per_layer_drift) == {"a"}
    assert result.has_drift is False


def test_only_layers_named_output_are_weighted_double():
    base = ModelSnapshot(
        "m",
        layer_weights={"a": [1.0, 2.0], "output_head": [1.0, 2.0], "layer_output_proj": [1.0, 2.0]},
    )
    cur = ModelSnapshot(
        "m",
        layer_weights={"a": [1.0, 2.0], "output_head": [1.0], "layer_output_proj": [1.0]},
    )
    result = DriftDetector().detect(base, cur)
    # output_head = 1.0 twice, layer_output_proj = 1.0 once, a = 0.0 once
    assert result.overall_drift_score == pytest.approx(3.0 / 4.0)


def test_layer_named_like_output_key_is_kept_separately():
    base = ModelSnapshot("m", layer_weights={OUTPUT_KEY: [1.0, 2.0, 3.0]}, output_distribution={"x": 1.0})
    cur = ModelSnapshot("m", layer_weights={OUTPUT_KEY: [1.0, 2.0]}, output_distribution={"x": 1.0})
    result = DriftDetector().detect(base, cur)
    assert result.per_layer_drift[LAYER_PREFIX + OUTPUT_KEY] == 1.0
    assert result.per_layer_drift[OUTPUT_KEY] == pytest.approx(0.0, abs=1e-9)
