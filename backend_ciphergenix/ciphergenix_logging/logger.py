"""
structlog configuration for the detection engine.

Every record is one JSON object keyed by event_type, with an ISO UTC
timestamp, the level and the emitting module. Monitoring code wraps each
poll in model_context() so detector logs inside it carry model_id without
passing it through every call.

Imports nothing from backend_ciphergenix so any module can import it first.
"""

from __future__ import annotations

import logging
import os
import sys
from contextlib import contextmanager
from typing import Any, Iterator, TextIO

import structlog


def _env(name: str, default: str) -> str:
    return (os.getenv(f"CIPHERGENIX_{name}") or os.getenv(name) or default).strip()


def _rename_event(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog's positional 'event' becomes event_type."""
    if "event" in event_dict and "event_type" not in event_dict:
        event_dict["event_type"] = event_dict.pop("event")
    return event_dict


def configure_logging(
    level: str | None = None,
    fmt: str | None = None,
    stream: TextIO | None = None,
) -> None:
    """
    (Re)configure structlog.

    level: CIPHERGENIX_LOG_LEVEL or LOG_LEVEL, default INFO.
    fmt: CIPHERGENIX_LOG_FORMAT or LOG_FORMAT; "json" (default) or "console".
    stream: destination, stdout by default.
    """
    level_name = (level or _env("LOG_LEVEL", "INFO")).upper()
    renderer_name = (fmt or _env("LOG_FORMAT", "json")).lower()
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
        structlog.processors.format_exc_info,
        _rename_event,
    ]
    if renderer_name == "console":
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    else:
        processors.append(structlog.processors.JSONRenderer(sort_keys=True))
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level_name, logging.INFO)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream or sys.stdout),
        cache_logger_on_first_use=True,
    )


if not structlog.is_configured():
    configure_logging()


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Logger for a module. First positional arg is the event_type:

        logger = get_logger(__name__)
        logger.info("drift_detected", overall_drift_score=0.41)
    """
    return structlog.get_logger(name).bind(logger=name)


def bind_model(model_id: str) -> structlog.BoundLogger:
    """Logger with model_id bound, for one-off session lifecycle events."""
    return get_logger("backend_ciphergenix.monitoring").bind(model_id=model_id)


@contextmanager
def model_context(model_id: str, **extra: Any) -> Iterator[None]:
    """Bind model_id (and extra keys) to every log call made in this thread until exit."""
    with structlog.contextvars.bound_contextvars(model_id=model_id, **extra):
        yield
