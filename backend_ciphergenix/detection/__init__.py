"""
Detection: statistical, isolation, reconstruction, influence and gradient-signature
scorers, the ensemble aggregator, and the poisoning / adversarial pipelines built on them.
"""

from backend_ciphergenix.detection.adversarial import AdversarialDetector
from backend_ciphergenix.detection.ensemble import EnsembleAggregator, threat_level_for
from backend_ciphergenix.detection.gradient import GradientSignatureAnalyzer, GradientSignatures
from backend_ciphergenix.detection.influence import InfluenceScorer
from backend_ciphergenix.detection.isolation import IsolationScorer
from backend_ciphergenix.detection.models import (
    AnomalyScore,
    BaselineStatistics,
    DetectionReport,
    EnsembleWeights,
    Sample,
    ScoreMethod,
    ThreatAssessment,
    ThreatLevel,
)
from backend_ciphergenix.detection.poisoning import DataPoisoningDetector
from backend_ciphergenix.detection.reconstruction import (
    JoblibReconstructionModel,
    ReconstructionModel,
    ReconstructionScorer,
)
from backend_ciphergenix.detection.statistical import StatisticalAnomalyScorer

__all__ = [
    "AdversarialDetector",
    "AnomalyScore",
    "BaselineStatistics",
    "DataPoisoningDetector",
    "DetectionReport",
    "EnsembleAggregator",
    "EnsembleWeights",
    "GradientSignatureAnalyzer",
    "GradientSignatures",
    "InfluenceScorer",
    "IsolationScorer",
    "JoblibReconstructionModel",
    "ReconstructionModel",
    "ReconstructionScorer",
    "Sample",
    "ScoreMethod",
    "StatisticalAnomalyScorer",
    "ThreatAssessment",
    "ThreatLevel",
    "threat_level_for",
]
