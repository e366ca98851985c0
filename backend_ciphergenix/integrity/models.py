"""
Data contracts for model integrity: snapshots, fingerprints, drift and integrity results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

from backend_ciphergenix.detection.models import ThreatLevel, clamp01


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ModelSnapshot:
    """
    Point-in-time view of a deployed model.

    layer_weights: layer name -> flattened weights.
    output_distribution: class/label -> probability mass.
    """

    model_id: str
    layer_weights: Mapping[str, tuple[float, ...]] = field(default_factory=dict)
    output_distribution: Mapping[str, float] = field(default_factory=dict)
    accuracy: float | None = None
    loss: float | None = None
    f1_score: float | None = None
    captured_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "layer_weights",
            {str(k): tuple(float(v) for v in vals) for k, vals in dict(self.layer_weights).items()},
        )
        object.__setattr__(
            self,
            "output_distribution",
            {str(k): float(v) for k, v in dict(self.output_distribution).items()},
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ModelSnapshot:
        """Build from a JSON-style dict (camelCase or snake_case keys)."""
        captured = data.get("captured_at") or data.get("capturedAt")
        return cls(
            model_id=str(data.get("model_id") or data.get("modelId") or ""),
            layer_weights=data.get("layer_weights") or data.get("layerWeights") or {},
            output_distribution=data.get("output_distribution") or data.get("outputDistribution") or {},
            accuracy=_opt_float(data.get("accuracy")),
            loss=_opt_float(data.get("loss")),
            f1_score=_opt_float(data.get("f1_score", data.get("f1Score"))),
            captured_at=_parse_timestamp(captured) if captured else _utcnow(),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "model_id": self.model_id,
            "layer_weights": {k: list(v) for k, v in self.layer_weights.items()},
            "output_distribution": dict(self.output_distribution),
            "accuracy": self.accuracy,
            "loss": self.loss,
            "f1_score": self.f1_score,
            "captured_at": self.captured_at.isoformat(),
        }


def _parse_timestamp(value: str) -> datetime:
    """ISO-8601 to an aware datetime. Accepts a trailing Z; naive values are taken as UTC."""
    text = str(value).strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _opt_float(value: Any) -> float | None:
    if value is None:
        return None
    return float(value)


@dataclass(frozen=True)
class ModelFingerprint:
    """SHA-256 identity of a snapshot. Superseded fingerprints stay in history with active=False."""

    model_id: str
    overall_hash: bytes
    per_layer_hash: Mapping[str, bytes] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_utcnow)
    active: bool = True

    @property
    def hex(self) -> str:
        return self.overall_hash.hex()

    def matches(self, other: ModelFingerprint) -> bool:
        return self.overall_hash == other.overall_hash

    def to_dict(self) -> dict[str, Any]:
        return {
            "model_id": self.model_id,
            "overall_hash": self.hex,
            "per_layer_hash": {k: v.hex() for k, v in self.per_layer_hash.items()},
            "created_at": self.created_at.isoformat(),
            "active": self.active,
        }


@dataclass(frozen=True)
class DriftResult:
    has_drift: bool
    overall_drift_score: float
    per_layer_drift: Mapping[str, float] = field(default_factory=dict)
    threshold: float = 0.15

    def __post_init__(self) -> None:
        object.__setattr__(self, "overall_drift_score", clamp01(self.overall_drift_score))
        object.__setattr__(
            self, "per_layer_drift", {k: clamp01(v) for k, v in dict(self.per_layer_drift).items()}
        )

    @property
    def drifted_components(self) -> list[str]:
        return sorted(k for k, v in self.per_layer_drift.items() if v > self.threshold)

    def to_dict(self) -> dict[str, Any]:
        return {
            "has_drift": self.has_drift,
            "overall_drift_score": round(self.overall_drift_score, 6),
            "per_layer_drift": {k: round(v, 6) for k, v in self.per_layer_drift.items()},
            "drifted_components": self.drifted_components,
        }


@dataclass(frozen=True)
class PredictionRecord:
    """One served prediction; actual_label is known only for labelled traffic."""

    predicted_label: str
    confidence: float
    actual_label: str | None = None


@dataclass(frozen=True)
class IntegrityViolation:
    kind: str
    score: float
    description: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "score", clamp01(self.score))

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "score": round(self.score, 6), "description": self.description}


@dataclass(frozen=True)
class IntegrityResult:
    model_id: str
    threat_score: float
    threat_level: ThreatLevel
    violations: tuple[IntegrityViolation, ...] = ()
    drift: DriftResult | None = None
    fingerprint_valid: bool | None = None
    details: dict[str, Any] = field(default_factory=dict)
    checked_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        object.__setattr__(self, "threat_score", clamp01(self.threat_score))
        object.__setattr__(self, "violations", tuple(self.violations))

    def to_dict(self) -> dict[str, Any]:
        return {
            "model_id": self.model_id,
            "threat_score": round(self.threat_score, 6),
            "threat_level": self.threat_level.value,
            "violations": [v.to_dict() for v in self.violations],
            "drift": self.drift.to_dict() if self.drift else None,
            "fingerprint_valid": self.fingerprint_valid,
            "details": self.details,
            "checked_at": self.checked_at.isoformat(),
        }
