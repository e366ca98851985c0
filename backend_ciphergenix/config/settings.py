"""
Application settings and environment configuration.

- Loads .env from project root when available, then reads CIPHERGENIX_* variables.
- Every detector threshold and ensemble weight can be overridden without code changes.
- Invalid values fall back to defaults with a warning; settings are cached until
  reset_settings_cache() is called (tests).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

from backend_ciphergenix.ciphergenix_logging import get_logger

logger = get_logger(__name__)

# Project root: config is backend_ciphergenix/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_BACKEND_DIR = _CONFIG_DIR.parent
_ROOT = _BACKEND_DIR.parent
_ENV_PATH = _ROOT / ".env"

DEFAULT_POISONING_WEIGHTS = {"statistical": 0.4, "distribution": 0.3, "influence": 0.3}
DEFAULT_ADVERSARIAL_WEIGHTS = {"gradient": 0.35, "mahalanobis": 0.35, "reconstruction": 0.30}

_TRUTHY = ("1", "true", "yes", "on")


def load_ciphergenix_env() -> None:
    """Load .env from project root. Safe to call multiple times."""
    load_dotenv(_ENV_PATH)


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("settings_invalid_float", variable=name, value=raw, default=default)
        return default


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("settings_invalid_int", variable=name, value=raw, default=default)
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in _TRUTHY


def parse_weights(raw: str | None, default: dict[str, float]) -> dict[str, float]:
    """
    Parse "name=0.4,other=0.6" into a weight mapping.

    Returns default on empty input or any malformed entry.
    """
    raw = (raw or "").strip()
    if not raw:
        return dict(default)
    weights: dict[str, float] = {}
    for part in raw.split(","):
        if not part.strip():
            continue
        name, sep, value = part.partition("=")
        if not sep or not name.strip():
            logger.warning("settings_invalid_weights", value=raw)
            return dict(default)
        try:
            weights[name.strip()] = float(value)
        except ValueError:
            logger.warning("settings_invalid_weights", value=raw)
            return dict(default)
    return weights or dict(default)


@dataclass(frozen=True)
class Settings:
    """Typed detector and monitoring settings."""

    contamination_threshold: float = 0.1
    voting_threshold: float = 0.5
    poisoning_weights: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_POISONING_WEIGHTS))
    adversarial_weights: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_ADVERSARIAL_WEIGHTS))
    adversarial_confidence_threshold: float = 0.5
    drift_threshold: float = 0.15
    influence_threshold: float = 0.7
    reconstruction_threshold: float = 0.15
    mahalanobis_lambda: float = 0.5
    theft_window_seconds: float = 3600.0
    theft_max_frequency: float = 1.0
    theft_alert_threshold: float = 0.7
    performance_degradation_threshold: float = 0.1
    poll_interval_seconds: float = 60.0
    monitor_workers: int = 8
    alert_webhook_url: str | None = None
    snapshot_dir: Path | None = None
    test_mode: bool = False
    random_seed: int = 42

    @property
    def isolation_seed(self) -> int | None:
        """Fixed seed in test mode; None (non-deterministic) in production."""
        return self.random_seed if self.test_mode else None


def load_settings() -> Settings:
    """Build Settings from the environment (after loading .env)."""
    load_ciphergenix_env()
    snapshot_dir = (os.getenv("CIPHERGENIX_SNAPSHOT_DIR") or "").strip()
    webhook = (os.getenv("CIPHERGENIX_ALERT_WEBHOOK_URL") or "").strip()
    return Settings(
        contamination_threshold=_env_float("CIPHERGENIX_CONTAMINATION_THRESHOLD", 0.1),
        voting_threshold=_env_float("CIPHERGENIX_VOTING_THRESHOLD", 0.5),
        poisoning_weights=parse_weights(
            os.getenv("CIPHERGENIX_POISONING_WEIGHTS"), DEFAULT_POISONING_WEIGHTS
        ),
        adversarial_weights=parse_weights(
            os.getenv("CIPHERGENIX_ADVERSARIAL_WEIGHTS"), DEFAULT_ADVERSARIAL_WEIGHTS
        ),
        adversarial_confidence_threshold=_env_float(
            "CIPHERGENIX_ADVERSARIAL_CONFIDENCE_THRESHOLD", 0.5
        ),
        drift_threshold=_env_float("CIPHERGENIX_DRIFT_THRESHOLD", 0.15),
        influence_threshold=_env_float("CIPHERGENIX_INFLUENCE_THRESHOLD", 0.7),
        reconstruction_threshold=_env_float("CIPHERGENIX_RECONSTRUCTION_THRESHOLD", 0.15),
        mahalanobis_lambda=_env_float("CIPHERGENIX_MAHALANOBIS_LAMBDA", 0.5),
        theft_window_seconds=max(1.0, _env_float("CIPHERGENIX_THEFT_WINDOW_SECONDS", 3600.0)),
        theft_max_frequency=max(1e-9, _env_float("CIPHERGENIX_THEFT_MAX_FREQUENCY", 1.0)),
        theft_alert_threshold=_env_float("CIPHERGENIX_THEFT_ALERT_THRESHOLD", 0.7),
        performance_degradation_threshold=_env_float(
            "CIPHERGENIX_PERFORMANCE_DEGRADATION_THRESHOLD", 0.1
        ),
        poll_interval_seconds=max(0.01, _env_float("CIPHERGENIX_POLL_INTERVAL_SECONDS", 60.0)),
        monitor_workers=max(1, _env_int("CIPHERGENIX_MONITOR_WORKERS", 8)),
        alert_webhook_url=webhook or None,
        snapshot_dir=Path(snapshot_dir) if snapshot_dir else None,
        test_mode=_env_bool("CIPHERGENIX_TEST_MODE"),
        random_seed=_env_int("CIPHERGENIX_RANDOM_SEED", 42),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the current application settings (cached)."""
    return load_settings()


def reset_settings_cache() -> None:
    """Drop cached settings so the next get_settings() re-reads the environment."""
    get_settings.cache_clear()
