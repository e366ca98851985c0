"""
Signature checks for common gradient-based adversarial perturbations.

Each family score is in [0, 1] and reported only when it clears its own gate:
- FGSM: uniform magnitude plus frequent sign flips (sign-of-gradient steps).
- PGD: values pinned near the L-infinity bound with autocorrelated structure.
- C&W: sparse perturbation concentrated on a few coordinates.

Operates on the perturbation (or raw input) vector alone; no model required.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np

from backend_ciphergenix.ciphergenix_logging import get_logger
from backend_ciphergenix.detection.models import clamp01

logger = get_logger(__name__)

FGSM_GATE = 0.7
PGD_GATE = 0.75
CW_GATE = 0.8

SIGN_CHANGE_SATURATION = 0.3
BOUND_FRACTION = 0.9
MAX_AUTOCORR_LAG = 10
ZERO_TOLERANCE = 1e-6
CONCENTRATION_FRACTION = 0.8


@dataclass(frozen=True)
class GradientSignatures:
    fgsm: float = 0.0
    pgd: float = 0.0
    cw: float = 0.0

    @property
    def score(self) -> float:
        """Mean of the three family scores."""
        return (self.fgsm + self.pgd + self.cw) / 3.0

    @property
    def detected(self) -> list[str]:
        return [name for name, s in (("fgsm", self.fgsm), ("pgd", self.pgd), ("cw", self.cw)) if s > 0]

    def to_dict(self) -> dict[str, Any]:
        return {
            "fgsm": round(self.fgsm, 6),
            "pgd": round(self.pgd, 6),
            "cw": round(self.cw, 6),
            "score": round(self.score, 6),
        }


def _gate(score: float, gate: float) -> float:
    """Scores below the family threshold are zeroed; the threshold itself passes."""
    return clamp01(score) if score >= gate else 0.0


def fgsm_score(x: np.ndarray) -> float:
    """0.6 * magnitude uniformity + 0.4 * saturated sign-change rate."""
    n = x.size
    if n < 2:
        return 0.0
    mag = np.abs(x)
    mean_abs = float(mag.mean())
    uniformity = 1.0 - min(1.0, float(mag.var()) / (mean_abs ** 2 + 1e-10))
    changes = int(np.count_nonzero(np.sign(x[1:]) != np.sign(x[:-1])))
    rate = changes / (n - 1)
    sign_term = 1.0 if rate > SIGN_CHANGE_SATURATION else rate / SIGN_CHANGE_SATURATION
    return _gate(0.6 * uniformity + 0.4 * sign_term, FGSM_GATE)


def _autocorr_structure(x: np.ndarray) -> float:
    n = x.size
    max_lag = min(MAX_AUTOCORR_LAG, n)
    if max_lag < 2:
        return 0.0
    centered = x - x.mean()
    var = float(np.mean(centered ** 2))
    if var <= 0:
        return 0.0
    total = 0.0
    for lag in range(1, max_lag):
        total += abs(float(np.sum(centered[:-lag] * centered[lag:])) / ((n - lag) * var))
    return min(1.0, 2.0 * total / min(MAX_AUTOCORR_LAG - 1, n - 1))


def pgd_score(x: np.ndarray) -> float:
    """0.5 * fraction near the L-inf bound + 0.5 * autocorrelation structure."""
    if x.size == 0:
        return 0.0
    mag = np.abs(x)
    linf = float(mag.max())
    if linf <= 0:
        return 0.0
    boundedness = float(np.count_nonzero(mag > BOUND_FRACTION * linf)) / x.size
    return _gate(0.5 * boundedness + 0.5 * _autocorr_structure(x), PGD_GATE)


def cw_score(x: np.ndarray) -> float:
    """0.6 * sparsity + 0.4 * concentration of the non-zero entries."""
    if x.size == 0:
        return 0.0
    mag = np.abs(x)
    nonzero = mag[mag > ZERO_TOLERANCE]
    sparsity = 1.0 - nonzero.size / x.size
    if nonzero.size == 0:
        # all-zero input carries no perturbation
        return 0.0
    concentration = float(np.count_nonzero(nonzero > CONCENTRATION_FRACTION * nonzero.mean())) / nonzero.size
    return _gate(0.6 * sparsity + 0.4 * concentration, CW_GATE)


class GradientSignatureAnalyzer:
    """Scores an input vector for FGSM, PGD and C&W perturbation signatures."""

    def analyze(self, values: Sequence[float] | np.ndarray) -> GradientSignatures:
        x = np.asarray(values, dtype=np.float64).ravel()
        if not np.all(np.isfinite(x)):
            logger.warning("gradient_non_finite_input", size=int(x.size))
            x = np.nan_to_num(x, nan=0.0, posinf=0.0, neginf=0.0)
        sig = GradientSignatures(fgsm=fgsm_score(x), pgd=pgd_score(x), cw=cw_score(x))
        if sig.detected:
            logger.debug("gradient_signature_detected", families=sig.detected, **sig.to_dict())
        return sig

    def score(self, values: Sequence[float] | np.ndarray) -> float:
        return self.analyze(values).score
