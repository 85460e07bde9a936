"""
abmeter.tier0_core.logging
───────────────────────────
Structured logs for the SDK. Every module logs through ``get_logger`` so
the host application sees dotted event names with key/value context and
never sees an API key in clear text.

Minimal stack: structlog (stdout JSON or console)
Configure via: ABMETER_LOG_LEVEL, ABMETER_LOG_FORMAT=json|console
"""
from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog


# ── Configuration ─────────────────────────────────────────────────────────────

_handler: logging.Handler | None = None


def _configure_structlog(log_level: str, log_format: str) -> None:
    global _handler

    level = getattr(logging, log_level.upper(), logging.ERROR)

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        _redact_processor,
    ]

    if log_format.lower() == "console":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Loggers stay lazy so level changes and log capture apply to
        # module-level loggers created at import time.
        cache_logger_on_first_use=False,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    sdk_logger = logging.getLogger("abmeter")
    if _handler is not None:
        sdk_logger.removeHandler(_handler)
    _handler = logging.StreamHandler(sys.stdout)
    _handler.setFormatter(formatter)
    sdk_logger.addHandler(_handler)
    sdk_logger.setLevel(level)


# ── Redaction processor ───────────────────────────────────────────────────────

_REDACT_KEYS = frozenset({
    "api_key", "apikey", "authorization", "auth", "token",
    "access_token", "secret", "password", "credential",
})

_REDACTED = "[REDACTED]"


def _redact_processor(
    logger: Any, method: str, event_dict: dict
) -> dict:
    """Strip sensitive fields from log records before output."""
    for key in list(event_dict.keys()):
        if key.lower() in _REDACT_KEYS:
            event_dict[key] = _REDACTED
    return event_dict


# ── Public API ────────────────────────────────────────────────────────────────

_configured = False


def configure_logging(level: str | None = None, fmt: str | None = None) -> None:
    """
    (Re)configure SDK logging. Missing arguments fall back to
    ABMETER_LOG_LEVEL (default ERROR) and ABMETER_LOG_FORMAT (default json).
    """
    global _configured
    _configure_structlog(
        level or os.getenv("ABMETER_LOG_LEVEL", "ERROR"),
        fmt or os.getenv("ABMETER_LOG_FORMAT", "json"),
    )
    _configured = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """
    Return a structured logger bound to the given name.

    Usage:
        log = get_logger(__name__)
        log.error("delivery.submit_failed", kind="exposure", count=12)
    """
    if not _configured:
        configure_logging()
    return structlog.get_logger(name or "abmeter")


__all__ = ["configure_logging", "get_logger"]
