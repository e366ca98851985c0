"""
Pytest fixtures for CipherGenix tests. Runs every test in test mode (seeded
isolation forest) with a fresh settings cache.
"""

from __future__ import annotations

from typing import Callable

import numpy as np
import pytest

from backend_ciphergenix.config import Settings, reset_settings_cache
from backend_ciphergenix.integrity.models import ModelSnapshot


@pytest.fixture(autouse=True)
def test_mode_env(monkeypatch):
    """Force test mode and drop cached settings before and after each test."""
    monkeypatch.setenv("CIPHERGENIX_TEST_MODE", "1")
    monkeypatch.delenv("CIPHERGENIX_ALERT_WEBHOOK_URL", raising=False)
    reset_settings_cache()
    yield
    reset_settings_cache()


@pytest.fixture
def settings() -> Settings:
    """Test settings: seeded, fast polling."""
    return Settings(test_mode=True, poll_interval_seconds=0.01)


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(7)


@pytest.fixture
def make_snapshot() -> Callable[..., ModelSnapshot]:
    """
    Factory for snapshots with two deterministic dense layers and a 3-class output.

    Keyword overrides replace the defaults (layer_weights, output_distribution, accuracy, ...).
    """

    def _make(model_id: str = "fraud-v3", **overrides) -> ModelSnapshot:
        gen = np.random.default_rng(11)
        data = {
            "layer_weights": {
                "dense_1": gen.normal(0.0, 1.0, 200).tolist(),
                "dense_2": gen.normal(0.5, 0.2, 120).tolist(),
            },
            "output_distribution": {"fraud": 0.1, "legit": 0.8, "review": 0.1},
            "accuracy": 0.93,
            "loss": 0.21,
            "f1_score": 0.88,
        }
        data.update(overrides)
        return ModelSnapshot(model_id=model_id, **data)

    return _make
