"""
Model integrity: fingerprints, drift, behavioral checks and the combined integrity monitor.
"""

from backend_ciphergenix.integrity.behavior import ModelBehaviorAnalyzer
from backend_ciphergenix.integrity.drift import DriftDetector
from backend_ciphergenix.integrity.fingerprint import FingerprintLedger, ModelFingerprinter
from backend_ciphergenix.integrity.models import (
    DriftResult,
    IntegrityResult,
    IntegrityViolation,
    ModelFingerprint,
    ModelSnapshot,
    PredictionRecord,
)
from backend_ciphergenix.integrity.monitor import ModelIntegrityMonitor

__all__ = [
    "DriftDetector",
    "DriftResult",
    "FingerprintLedger",
    "IntegrityResult",
    "IntegrityViolation",
    "ModelBehaviorAnalyzer",
    "ModelFingerprint",
    "ModelFingerprinter",
    "ModelIntegrityMonitor",
    "ModelSnapshot",
    "PredictionRecord",
]
