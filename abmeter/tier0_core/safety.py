"""
abmeter.tier0_core.safety
──────────────────────────
``error_safe`` keeps the public surface from ever raising into host code.
A wrapped method logs the failure, hands the exception to the owner's
``error_callback`` (if any) and returns None.

Usage:
    class Client:
        @error_safe
        def track_event(self, event_slug, user_id, data): ...
"""
from __future__ import annotations

import functools
from collections.abc import Callable
from typing import Any

from abmeter.tier0_core.logging import get_logger

log = get_logger(__name__)


def error_safe(fn: Callable) -> Callable:
    """Decorator for methods whose owner may define ``_error_callback``."""

    @functools.wraps(fn)
    def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
        try:
            return fn(self, *args, **kwargs)
        except Exception as exc:
            report_failure(fn.__name__, exc, getattr(self, "_error_callback", None))
            return None

    return wrapper


def report_failure(
    method: str,
    exc: BaseException,
    callback: Callable[[BaseException], Any] | None = None,
) -> None:
    """Log a swallowed public-call failure and hand it to ``callback``."""
    log.error(
        "client.call_failed",
        method=method,
        error_type=type(exc).__name__,
        error=str(exc),
    )
    if callback is None:
        return
    try:
        callback(exc)
    except Exception as cb_exc:
        log.error(
            "client.error_callback_failed",
            error_type=type(cb_exc).__name__,
            error=str(cb_exc),
        )


__all__ = ["error_safe", "report_failure"]
