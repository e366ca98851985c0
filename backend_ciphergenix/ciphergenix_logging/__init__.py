"""
Structured logging for Backend CipherGenix.

JSON logs keyed by event_type; use get_logger(__name__) in every module.
"""

from backend_ciphergenix.ciphergenix_logging.logger import (
    bind_model,
    configure_logging,
    get_logger,
    model_context,
)

__all__ = ["bind_model", "configure_logging", "get_logger", "model_context"]
