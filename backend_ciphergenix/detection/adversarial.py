"""
Adversarial input detection for single inference inputs.

Combines gradient-signature analysis, Mahalanobis distance to a reference
distribution of clean embeddings and reconstruction error. Methods that cannot
run (no reference yet) are left out and the remaining weights renormalized.
"""

from __future__ import annotations

from typing import Any, Sequence

from backend_ciphergenix.ciphergenix_logging import get_logger
from backend_ciphergenix.config import Settings, get_settings
from backend_ciphergenix.detection.ensemble import EnsembleAggregator
from backend_ciphergenix.detection.gradient import GradientSignatureAnalyzer
from backend_ciphergenix.detection.models import (
    BaselineStatistics,
    DetectionReport,
    EnsembleWeights,
    Sample,
    ScoreMethod,
)
from backend_ciphergenix.detection.reconstruction import ReconstructionModel, ReconstructionScorer
from backend_ciphergenix.detection.statistical import StatisticalAnomalyScorer

logger = get_logger(__name__)

DETECTION_TYPE = "adversarial_input"

_METHODS = {
    "gradient": ScoreMethod.GRADIENT_SIGNATURE,
    "mahalanobis": ScoreMethod.MAHALANOBIS,
    "reconstruction": ScoreMethod.RECONSTRUCTION,
}


class AdversarialDetector:
    """Scores one input; is_adversarial when the ensemble score exceeds the confidence threshold."""

    def __init__(
        self,
        settings: Settings | None = None,
        reference: BaselineStatistics | None = None,
        reconstruction_model: ReconstructionModel | None = None,
        gradient: GradientSignatureAnalyzer | None = None,
        statistical: StatisticalAnomalyScorer | None = None,
        aggregator: EnsembleAggregator | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.reference = reference
        self.gradient = gradient or GradientSignatureAnalyzer()
        self.statistical = statistical or StatisticalAnomalyScorer(lambda_=self.settings.mahalanobis_lambda)
        self.reconstruction = ReconstructionScorer(
            reconstruction_model, threshold=self.settings.reconstruction_threshold
        )
        self.aggregator = aggregator or EnsembleAggregator(self.settings.voting_threshold)

    def update_reference(self, clean_samples: Sequence[Sample]) -> BaselineStatistics:
        """Refit the reference distribution from clean embeddings."""
        self.reference = BaselineStatistics.from_samples(clean_samples)
        logger.info("adversarial_reference_updated", samples=len(clean_samples), dim=self.reference.dim)
        return self.reference

    def _weights(self, available: Sequence[str]) -> EnsembleWeights:
        """Configured weights of the methods that ran; equal weights if none of them is configured."""
        configured = self.settings.adversarial_weights
        usable = {k: v for k, v in configured.items() if k in available and v > 0}
        if not usable:
            logger.warning(
                "adversarial_weights_unusable",
                configured=sorted(configured),
                available=list(available),
            )
            usable = {k: 1.0 for k in available}
        return EnsembleWeights(usable)

    def detect(self, value: Sample | Sequence[float]) -> DetectionReport:
        """
        Assess a single input. Raises DimensionMismatch when a reference is
        set and the input dimension differs.
        """
        sample = value if isinstance(value, Sample) else Sample.of(value)
        signatures = self.gradient.analyze(sample.features)
        scores: dict[str, float] = {"gradient": signatures.score}
        details: dict[str, Any] = {"gradient_signatures": signatures.to_dict()}
        methods = dict(_METHODS)

        if self.reference is not None:
            distance, method = self.statistical.score_one(sample, self.reference)
            scores["mahalanobis"] = distance
            methods["mahalanobis"] = method
        else:
            logger.debug("adversarial_no_reference")

        scores["reconstruction"] = self.reconstruction.score(sample)

        threshold = self.settings.adversarial_confidence_threshold
        assessment = self.aggregator.aggregate_scalar(
            scores, self._weights(list(scores)), methods, threshold=threshold
        )
        is_adversarial = assessment.threat_score > threshold
        details.update(
            {
                "method_scores": {k: round(v, 6) for k, v in scores.items()},
                "is_adversarial": is_adversarial,
                "attack_types": signatures.detected,
            }
        )
        if is_adversarial:
            recommendation = (
                "Reject or quarantine this input; suspected "
                + (", ".join(signatures.detected) or "adversarial")
                + " perturbation."
            )
            logger.warning(
                "adversarial_input_detected",
                threat_score=round(assessment.threat_score, 4),
                threat_level=assessment.threat_level.value,
                attack_types=signatures.detected,
            )
        else:
            recommendation = "Input appears benign."
        return DetectionReport(DETECTION_TYPE, assessment, recommendation, details=details)
