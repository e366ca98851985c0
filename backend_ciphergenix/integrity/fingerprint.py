"""
Deterministic SHA-256 fingerprints of model snapshots.

Weights are rounded to 6 decimals and packed as big-endian float64 so the
digest does not depend on float formatting. Layers and output-distribution
entries are hashed in sorted order, making the fingerprint independent of
mapping insertion order.
"""

from __future__ import annotations

import hashlib
import struct
import threading
from dataclasses import dataclass, field, replace
from typing import Iterable, Mapping

from backend_ciphergenix.ciphergenix_logging import get_logger
from backend_ciphergenix.integrity.models import ModelFingerprint, ModelSnapshot

logger = get_logger(__name__)

ROUND_DECIMALS = 6
_MISSING = b"\x00"
_PRESENT = b"\x01"


def _pack(value: float) -> bytes:
    return struct.pack(">d", round(float(value), ROUND_DECIMALS) + 0.0)


def _pack_optional(value: float | None) -> bytes:
    if value is None:
        return _MISSING
    return _PRESENT + _pack(value)


def layer_digest(weights: Iterable[float]) -> bytes:
    h = hashlib.sha256()
    for w in weights:
        h.update(_pack(w))
    return h.digest()


class ModelFingerprinter:
    """Computes ModelFingerprint values; stateless."""

    def fingerprint(self, snapshot: ModelSnapshot) -> ModelFingerprint:
        per_layer = {name: layer_digest(snapshot.layer_weights[name]) for name in sorted(snapshot.layer_weights)}
        h = hashlib.sha256()
        for name, digest in per_layer.items():
            h.update(name.encode("utf-8"))
            h.update(digest)
        h.update(_pack_optional(snapshot.accuracy))
        h.update(_pack_optional(snapshot.loss))
        for label in sorted(snapshot.output_distribution):
            h.update(label.encode("utf-8"))
            h.update(_pack(snapshot.output_distribution[label]))
        return ModelFingerprint(
            model_id=snapshot.model_id,
            overall_hash=h.digest(),
            per_layer_hash=per_layer,
        )


@dataclass(frozen=True)
class FingerprintVerification:
    """Outcome of comparing a snapshot to the model's active fingerprint."""

    model_id: str
    valid: bool | None
    expected: ModelFingerprint | None = None
    actual: ModelFingerprint | None = None
    changed_layers: tuple[str, ...] = field(default_factory=tuple)

    @property
    def tampered(self) -> bool:
        return self.valid is False


def changed_layers(expected: Mapping[str, bytes], actual: Mapping[str, bytes]) -> list[str]:
    """Layers added, removed or with a different digest."""
    names = set(expected) | set(actual)
    return sorted(n for n in names if expected.get(n) != actual.get(n))


class FingerprintLedger:
    """
    In-process fingerprint history per model.

    register() supersedes the previous active fingerprint (active=False) and
    keeps it in history; nothing is ever removed.
    """

    def __init__(self, fingerprinter: ModelFingerprinter | None = None) -> None:
        self.fingerprinter = fingerprinter or ModelFingerprinter()
        self._history: dict[str, list[ModelFingerprint]] = {}
        self._lock = threading.Lock()

    def register(self, snapshot: ModelSnapshot) -> ModelFingerprint:
        fp = self.fingerprinter.fingerprint(snapshot)
        with self._lock:
            history = self._history.setdefault(snapshot.model_id, [])
            superseded = 0
            for i, old in enumerate(history):
                if old.active:
                    history[i] = replace(old, active=False)
                    superseded += 1
            history.append(fp)
        logger.info(
            "fingerprint_registered",
            model_id=snapshot.model_id,
            fingerprint=fp.hex,
            superseded=superseded,
        )
        return fp

    def active(self, model_id: str) -> ModelFingerprint | None:
        with self._lock:
            for fp in reversed(self._history.get(model_id, [])):
                if fp.active:
                    return fp
        return None

    def history(self, model_id: str) -> list[ModelFingerprint]:
        with self._lock:
            return list(self._history.get(model_id, []))

    def verify(self, snapshot: ModelSnapshot) -> FingerprintVerification:
        """valid is None when the model has no active fingerprint yet."""
        expected = self.active(snapshot.model_id)
        actual = self.fingerprinter.fingerprint(snapshot)
        if expected is None:
            return FingerprintVerification(snapshot.model_id, None, None, actual)
        if expected.matches(actual):
            return FingerprintVerification(snapshot.model_id, True, expected, actual)
        changed = changed_layers(expected.per_layer_hash, actual.per_layer_hash)
        logger.warning(
            "fingerprint_mismatch",
            model_id=snapshot.model_id,
            expected=expected.hex,
            actual=actual.hex,
            changed_layers=changed,
        )
        return FingerprintVerification(snapshot.model_id, False, expected, actual, tuple(changed))
