"""
End-to-end tests for the poisoning and adversarial detection pipelines.
"""

from __future__ import annotations

import json
from dataclasses import replace

import pytest

from backend_ciphergenix.core.exceptions import DimensionMismatch
from backend_ciphergenix.detection.adversarial import AdversarialDetector
from backend_ciphergenix.detection.models import BaselineStatistics, Sample, ThreatLevel
from backend_ciphergenix.detection.poisoning import DataPoisoningDetector


@pytest.fixture
def unit_baseline() -> BaselineStatistics:
    return BaselineStatistics(mean=(0.0,) * 4, std=(1.0,) * 4)


@pytest.fixture
def poisoned_dataset(rng) -> list[Sample]:
    """100 N(0, I) samples plus one injected [50, 50, 50, 50] at index 100."""
    rows = rng.normal(size=(100, 4)).tolist()
    rows.append([50.0, 50.0, 50.0, 50.0])
    return [Sample.of(r) for r in rows]


def test_injected_outlier_flagged_high_or_above(settings, poisoned_dataset, unit_baseline):
    report = DataPoisoningDetector(settings).detect(poisoned_dataset, unit_baseline)
    assessment = report.assessment
    assert 100 in assessment.anomalous_indices
    assert assessment.threat_level >= ThreatLevel.HIGH
    assert report.details["contamination_rate"] < 0.05
    assert 100 in report.feature_contributions
    assert sum(report.feature_contributions[100].values()) == pytest.approx(1.0, abs=1e-5)


def test_only_the_outlier_is_flagged(settings, poisoned_dataset, unit_baseline):
    report = DataPoisoningDetector(settings).detect(poisoned_dataset, unit_baseline)
    assert report.assessment.anomalous_indices == [100]
    assert report.details["high_influence_samples"] == [100]
    assert report.recommendation.startswith(("CRITICAL", "HIGH"))


def test_empty_dataset_low_report(settings, unit_baseline):
    report = DataPoisoningDetector(settings).detect([], unit_baseline)
    assert report.assessment.threat_level is ThreatLevel.LOW
    assert report.details["samples"] == 0


def test_dimension_mismatch_is_batch_fatal(settings, unit_baseline):
    with pytest.raises(DimensionMismatch):
        DataPoisoningDetector(settings).detect([Sample.of([1.0, 2.0])], unit_baseline)


def test_detection_without_baseline_uses_isolation(settings, poisoned_dataset):
    report = DataPoisoningDetector(settings).detect(poisoned_dataset)
    assert report.details["statistical_method"] == "isolation_forest"
    assert 0.0 <= report.assessment.threat_score <= 1.0


def test_report_to_dict_is_serializable(settings, poisoned_dataset, unit_baseline):
    report = DataPoisoningDetector(settings).detect(poisoned_dataset, unit_baseline)
    payload = json.loads(json.dumps(report.to_dict()))
    assert payload["detection_type"] == "data_poisoning"
    assert payload["threat_level"] in {"high", "critical"}


def test_adversarial_fgsm_input_without_collaborators(settings):
    """No reference and no reconstruction model: gradient plus neutral reconstruction."""
    report = AdversarialDetector(settings).detect([1, -1, 1, -1, 1, -1, 1, -1])
    assert report.details["method_scores"]["reconstruction"] == 0.5
    assert "mahalanobis" not in report.details["method_scores"]
    assert "fgsm" in report.details["attack_types"]
    assert report.details["is_adversarial"] is True


def test_adversarial_benign_input_with_reference(settings, rng):
    detector = AdversarialDetector(settings)
    detector.update_reference([Sample.of(r) for r in rng.normal(size=(200, 6)).tolist()])

    class _Identity:
        def reconstruct(self, sample):
            return sample

    detector.reconstruction.model = _Identity()
    report = detector.detect([0.1, 0.3, -0.2, 0.05, 0.2, -0.4])
    assert report.details["is_adversarial"] is False
    assert report.assessment.threat_level is ThreatLevel.LOW


def test_adversarial_dimension_mismatch_with_reference(settings, rng):
    detector = AdversarialDetector(settings)
    detector.update_reference([Sample.of(r) for r in rng.normal(size=(20, 3)).tolist()])
    with pytest.raises(DimensionMismatch):
        detector.detect([1.0, 2.0])


def test_adversarial_weights_for_unavailable_method_fall_back_to_equal(settings):
    """Only mahalanobis is weighted but there is no reference: remaining methods share weight equally."""
    detector = AdversarialDetector(replace(settings, adversarial_weights={"mahalanobis": 1.0}))
    report = detector.detect([0.1, 0.2, 0.3])
    scores = report.details["method_scores"]
    assert set(scores) == {"gradient", "reconstruction"}
    expected = (scores["gradient"] + scores["reconstruction"]) / 2
    assert report.assessment.threat_score == pytest.approx(expected, abs=1e-5)
