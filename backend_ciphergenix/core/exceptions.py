"""
Application-level exceptions.

Domain errors carry a stable code so monitoring, API and worker layers can
report them consistently. Only DimensionMismatch and AlreadyMonitoring reach
callers; the others name conditions that detectors recover from locally.
"""

from __future__ import annotations

from typing import Any


class CipherGenixError(Exception):
    """Base class for all detection-engine errors."""

    code = "ciphergenix_error"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class DimensionMismatch(CipherGenixError):
    """Sample and baseline feature counts differ. Fatal for the whole batch."""

    code = "dimension_mismatch"

    def __init__(self, expected: int, actual: int, *, sample_index: int | None = None) -> None:
        where = f" at sample {sample_index}" if sample_index is not None else ""
        super().__init__(
            f"Feature dimension mismatch{where}: expected {expected}, got {actual}",
            expected=expected,
            actual=actual,
            sample_index=sample_index,
        )
        self.expected = expected
        self.actual = actual
        self.sample_index = sample_index


class SingularCovariance(CipherGenixError):
    """Covariance could not be inverted even after regularization."""

    code = "singular_covariance"


class MissingCollaborator(CipherGenixError):
    """An external collaborator (reconstruction model, snapshot source) is unavailable."""

    code = "missing_collaborator"


class InsufficientSamples(CipherGenixError):
    """Too few samples for a computation; scorers return empty results instead."""

    code = "insufficient_samples"


class AlreadyMonitoring(CipherGenixError):
    """A monitoring session is already active for this model_id."""

    code = "already_monitoring"

    def __init__(self, model_id: str) -> None:
        super().__init__(f"Model {model_id} is already being monitored", model_id=model_id)
        self.model_id = model_id
