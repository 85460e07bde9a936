"""
abmeter.tier0_core.errors
──────────────────────────
Error taxonomy for the SDK plus classification of collector rejections.

Every error carries a stable machine-readable ``code`` and a ``detail``
message. ``ApiError`` wraps a non-2xx collector response; the delivery
pipeline uses ``classify_failure`` to decide whether a failed batch is
retried, dropped as a partial failure, or dropped as permanent.
"""
from __future__ import annotations

from enum import Enum
from typing import Any


# ── Base error ────────────────────────────────────────────────────────────────

class AbmeterError(Exception):
    """
    Base class for all SDK errors. Every error has:
    - code: stable machine-readable string (snake_case)
    - detail: human-readable message
    - metadata: extra structured context for logs
    """

    code: str = "abmeter_error"

    def __init__(
        self,
        detail: str = "An unexpected error occurred.",
        *,
        code: str | None = None,
        **metadata: Any,
    ) -> None:
        self.code = code or self.__class__.code
        self.detail = detail
        self.metadata = metadata
        super().__init__(detail)

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.detail,
            }
        }


# ── Typed error classes ───────────────────────────────────────────────────────

class ConfigurationError(AbmeterError):
    """Settings are invalid or the SDK has not been configured."""
    code = "configuration_error"


class ConfigLoadError(AbmeterError):
    """An assignment configuration document could not be loaded."""
    code = "config_load_error"


class ResolutionError(AbmeterError):
    """A parameter could not be resolved for the given user."""
    code = "resolution_error"


class ValueCastError(AbmeterError, ValueError):
    """A raw value could not be cast to its declared parameter type."""
    code = "value_cast_error"


class ApiError(AbmeterError):
    """
    The collector rejected a request. ``body`` is either the decoded error
    document (``error``, ``code``, ``details``) or a plain string.
    """
    code = "api_error"

    def __init__(self, status: int, body: Any = None) -> None:
        self.status = status
        if isinstance(body, dict):
            message = body.get("error")
            if message is None:
                message = "Unknown error"
            error_code = body.get("code")
            details = body.get("details") or {}
        else:
            message = "" if body is None else str(body)
            error_code = None
            details = {}
        self.message = message
        self.details = details
        super().__init__(message, code=error_code, status=status)
        self.api_code = error_code

    @classmethod
    def from_response(cls, response: Any) -> "ApiError":
        """Build from an ``httpx.Response``-like object."""
        try:
            body = response.json()
        except ValueError:
            body = response.text
        return cls(response.status_code, body)

    @property
    def retryable(self) -> bool:
        return self.status >= 500 or self.status in (408, 429)

    @property
    def partial_failure(self) -> bool:
        if self.status != 400 or not isinstance(self.details, dict):
            return False
        return bool(self.details.get("failures"))

    @property
    def failure_count(self) -> int:
        if not isinstance(self.details, dict):
            return 0
        return self.details.get("invalid_count") or 0

    def to_dict(self) -> dict:
        d = {
            "error": self.message,
            "code": self.api_code,
            "details": self.details,
            "status": self.status,
        }
        return {k: v for k, v in d.items() if v is not None}


# ── Failure classification ────────────────────────────────────────────────────

class FailureKind(Enum):
    RETRYABLE = "retryable"
    PARTIAL_FAILURE = "partial_failure"
    PERMANENT = "permanent"
    UNCLASSIFIED = "unclassified"


def classify_failure(exc: BaseException) -> FailureKind:
    """Map a submission failure onto the delivery retry policy."""
    if not isinstance(exc, ApiError):
        return FailureKind.UNCLASSIFIED
    if exc.retryable:
        return FailureKind.RETRYABLE
    if exc.partial_failure:
        return FailureKind.PARTIAL_FAILURE
    return FailureKind.PERMANENT


__all__ = [
    "AbmeterError",
    "ConfigurationError",
    "ConfigLoadError",
    "ResolutionError",
    "ValueCastError",
    "ApiError",
    "FailureKind",
    "classify_failure",
]
