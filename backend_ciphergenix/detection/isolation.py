"""
Isolation-forest anomaly scoring for batches without a clean baseline.

Score per sample is 2^(-E[h(x)] / c(n)) in (0, 1]; higher means easier to
isolate. sklearn's IsolationForest.score_samples returns the negated value.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np
from sklearn.ensemble import IsolationForest

from backend_ciphergenix.ciphergenix_logging import get_logger
from backend_ciphergenix.config import get_settings
from backend_ciphergenix.detection.models import AnomalyScore, Sample, ScoreMethod, clamp01
from backend_ciphergenix.detection.vector_stats import to_matrix

logger = get_logger(__name__)

N_ESTIMATORS = 100
MAX_SAMPLES = 256

_FROM_SETTINGS = object()


class IsolationScorer:
    """
    Unsupervised scorer backed by sklearn IsolationForest.

    random_state defaults to Settings.isolation_seed: fixed in test mode,
    None (non-deterministic) otherwise. Pass an int to pin it explicitly.
    """

    def __init__(
        self,
        n_estimators: int = N_ESTIMATORS,
        max_samples: int = MAX_SAMPLES,
        random_state: int | None | object = _FROM_SETTINGS,
    ) -> None:
        self.n_estimators = n_estimators
        self.max_samples = max_samples
        self._random_state = random_state

    @property
    def random_state(self) -> int | None:
        if self._random_state is _FROM_SETTINGS:
            return get_settings().isolation_seed
        return self._random_state  # type: ignore[return-value]

    def _fit(self, X: np.ndarray) -> IsolationForest:
        forest = IsolationForest(
            n_estimators=self.n_estimators,
            max_samples=min(self.max_samples, X.shape[0]),
            random_state=self.random_state,
        )
        forest.fit(X)
        return forest

    def score(self, samples: Sequence[Sample]) -> dict[int, float]:
        """
        Fit a forest on the batch and score every sample in it.

        Fewer than 2 samples cannot be isolated from anything; they score 0.
        """
        if len(samples) < 2:
            return {i: 0.0 for i in range(len(samples))}
        X = to_matrix(samples)
        forest = self._fit(X)
        raw = -forest.score_samples(X)
        logger.debug(
            "isolation_scored",
            samples=X.shape[0],
            max_score=float(raw.max()),
            seeded=self.random_state is not None,
        )
        return {i: clamp01(float(v)) for i, v in enumerate(raw)}

    def score_samples(self, samples: Sequence[Sample]) -> list[AnomalyScore]:
        return [
            AnomalyScore(i, s, ScoreMethod.ISOLATION_FOREST)
            for i, s in sorted(self.score(samples).items())
        ]
