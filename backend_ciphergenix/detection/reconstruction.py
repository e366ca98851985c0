"""
Reconstruction-error scoring through an injected autoencoder-style model.

score = min(1, mse / threshold). A missing or failing model yields the neutral
score 0.5 so the ensemble neither flags nor clears the input on its account.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import joblib
import numpy as np

from backend_ciphergenix.ciphergenix_logging import get_logger
from backend_ciphergenix.core.exceptions import DimensionMismatch, MissingCollaborator
from backend_ciphergenix.detection.models import Sample, clamp01

logger = get_logger(__name__)

DEFAULT_THRESHOLD = 0.15
NEUTRAL_SCORE = 0.5


@runtime_checkable
class ReconstructionModel(Protocol):
    """Anything that maps a sample to its reconstruction of the same dimension."""

    def reconstruct(self, sample: Sample) -> Sample:
        ...


class JoblibReconstructionModel:
    """
    ReconstructionModel over a joblib-serialized sklearn estimator.

    Accepts estimators trained to map X -> X (predict) or decomposition models
    such as PCA (transform + inverse_transform). The file is loaded lazily on
    first use; path defaults to CIPHERGENIX_RECONSTRUCTION_MODEL_PATH.
    """

    def __init__(self, path: str | Path | None = None, estimator: Any = None) -> None:
        self.path = Path(path or os.getenv("CIPHERGENIX_RECONSTRUCTION_MODEL_PATH") or "")
        self._estimator = estimator

    def _load(self) -> Any:
        if self._estimator is not None:
            return self._estimator
        if not self.path.name or not self.path.is_file():
            raise MissingCollaborator("reconstruction_model", path=str(self.path))
        self._estimator = joblib.load(self.path)
        logger.info("reconstruction_model_loaded", path=str(self.path))
        return self._estimator

    def reconstruct(self, sample: Sample) -> Sample:
        est = self._load()
        X = sample.as_array().reshape(1, -1)
        if hasattr(est, "inverse_transform") and hasattr(est, "transform"):
            out = est.inverse_transform(est.transform(X))
        else:
            out = est.predict(X)
        return Sample.of(np.asarray(out, dtype=np.float64).ravel().tolist())


class ReconstructionScorer:
    """Mean squared reconstruction error normalized by a threshold."""

    def __init__(
        self,
        model: ReconstructionModel | None = None,
        threshold: float = DEFAULT_THRESHOLD,
    ) -> None:
        self.model = model
        self.threshold = threshold if threshold > 0 else DEFAULT_THRESHOLD

    def score(self, sample: Sample) -> float:
        """Score one input in [0, 1]; neutral 0.5 when the model is unavailable."""
        if self.model is None:
            logger.warning("reconstruction_model_missing", neutral=NEUTRAL_SCORE)
            return NEUTRAL_SCORE
        try:
            rebuilt = self.model.reconstruct(sample)
            if rebuilt.dim != sample.dim:
                raise DimensionMismatch(sample.dim, rebuilt.dim)
        except Exception as e:
            logger.warning(
                "reconstruction_failed",
                error=str(e),
                error_type=type(e).__name__,
                neutral=NEUTRAL_SCORE,
            )
            return NEUTRAL_SCORE
        diff = sample.as_array() - rebuilt.as_array()
        mse = float(np.mean(diff ** 2)) if diff.size else 0.0
        return clamp01(mse / self.threshold)
