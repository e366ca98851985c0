from backend_ciphergenix.core.exceptions import (
    AlreadyMonitoring,
    CipherGenixError,
    DimensionMismatch,
    InsufficientSamples,
    MissingCollaborator,
    SingularCovariance,
)

__all__ = [
    "AlreadyMonitoring",
    "CipherGenixError",
    "DimensionMismatch",
    "InsufficientSamples",
    "MissingCollaborator",
    "SingularCovariance",
]
