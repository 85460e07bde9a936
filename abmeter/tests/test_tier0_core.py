"""Tests for tier0_core modules."""
from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError
from structlog.testing import capture_logs

from abmeter.tier0_core.clock import Clock, ManualClock, now, set_clock
from abmeter.tier0_core.config import AbmeterSettings, _reset_settings, get_settings
from abmeter.tier0_core.errors import (
    AbmeterError,
    ApiError,
    ConfigLoadError,
    FailureKind,
    ResolutionError,
    ValueCastError,
    classify_failure,
)
from abmeter.tier0_core.safety import error_safe


# ── errors ─────────────────────────────────────────────────────────────────

class TestErrors:
    def test_error_has_code_and_detail(self):
        e = ResolutionError("Parameter 'x' not found", parameter_slug="x")
        assert isinstance(e, AbmeterError)
        assert e.code == "resolution_error"
        assert e.metadata == {"parameter_slug": "x"}
        assert "not found" in str(e)

    def test_to_dict(self):
        e = ConfigLoadError("bad document")
        assert e.to_dict() == {"error": {"code": "config_load_error", "message": "bad document"}}

    def test_value_cast_error_is_value_error(self):
        assert issubclass(ValueCastError, ValueError)


class TestApiError:
    def test_parses_structured_body(self):
        e = ApiError(422, {"error": "Invalid", "code": "invalid_payload", "details": {"field": "x"}})
        assert e.message == "Invalid"
        assert e.code == "invalid_payload"
        assert e.details == {"field": "x"}
        assert e.status == 422

    def test_string_body(self):
        e = ApiError(500, "Server Error")
        assert e.message == "Server Error"
        assert e.details == {}
        assert e.code == "api_error"

    def test_missing_error_message(self):
        assert ApiError(500, {}).message == "Unknown error"
        assert ApiError(500, {"error": None}).message == "Unknown error"

    def test_empty_error_message_is_kept(self):
        assert ApiError(422, {"error": "", "code": "invalid"}).message == ""

    @pytest.mark.parametrize("status", [500, 502, 503, 504, 408, 429])
    def test_retryable_statuses(self, status):
        e = ApiError(status, "x")
        assert e.retryable is True
        assert classify_failure(e) is FailureKind.RETRYABLE

    def test_partial_failure_requires_itemized_failures(self):
        partial = ApiError(400, {"error": "Some invalid", "details": {"failures": [{"index": 0}], "invalid_count": 1}})
        assert partial.partial_failure is True
        assert partial.failure_count == 1
        assert classify_failure(partial) is FailureKind.PARTIAL_FAILURE

        empty = ApiError(400, {"error": "Bad", "details": {"failures": []}})
        assert empty.partial_failure is False
        assert classify_failure(empty) is FailureKind.PERMANENT

    @pytest.mark.parametrize("status", [400, 401, 403, 404])
    def test_permanent_statuses(self, status):
        assert classify_failure(ApiError(status, "nope")) is FailureKind.PERMANENT

    def test_failure_count_defaults_to_zero(self):
        assert ApiError(400, "plain").failure_count == 0

    def test_non_api_errors_are_unclassified(self):
        assert classify_failure(ConnectionError("reset")) is FailureKind.UNCLASSIFIED
        assert classify_failure(RuntimeError("boom")) is FailureKind.UNCLASSIFIED

    def test_to_dict_drops_missing_code(self):
        assert ApiError(503, "down").to_dict() == {"error": "down", "details": {}, "status": 503}


# ── config ─────────────────────────────────────────────────────────────────

class TestSettings:
    def test_api_key_mode(self):
        s = AbmeterSettings(api_key="ak_test_123")
        assert s.is_static is False
        assert s.base_url == "https://api.abmeter.ai"
        assert s.flush_interval == 60
        assert s.fetch_interval == 60
        assert "ak_test_123" not in repr(s)

    def test_static_mode(self):
        s = AbmeterSettings(static_config="{}")
        assert s.is_static is True

    def test_requires_api_key_or_static_config(self):
        with pytest.raises(ValidationError, match="Either api_key or static_config"):
            AbmeterSettings()

    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValidationError):
            AbmeterSettings(api_key="k", flush_interval=0)

    def test_log_level_normalized(self):
        assert AbmeterSettings(api_key="k", log_level="warning").log_level == "WARNING"

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("ABMETER_API_KEY", "env-key")
        monkeypatch.setenv("ABMETER_FETCH_INTERVAL", "300")
        _reset_settings()
        s = get_settings()
        assert s.api_key.get_secret_value() == "env-key"
        assert s.fetch_interval == 300
        assert get_settings() is s


# ── clock ──────────────────────────────────────────────────────────────────

class TestClock:
    def test_now_returns_utc_datetime(self):
        assert now().tzinfo is not None

    def test_frozen_clock(self):
        fixed = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        assert Clock().freeze(fixed).now() == fixed

    def test_manual_clock_advances(self):
        fixed = datetime(2025, 1, 1, tzinfo=timezone.utc)
        clock = ManualClock(fixed)
        clock.advance(90)
        assert (clock.now() - fixed).total_seconds() == 90

    def test_set_global_clock(self):
        fixed = datetime(2025, 6, 15, tzinfo=timezone.utc)
        set_clock(Clock().freeze(fixed))
        assert now() == fixed


# ── safety ─────────────────────────────────────────────────────────────────

class _Surface:
    def __init__(self, callback=None):
        self._error_callback = callback

    @error_safe
    def explode(self):
        raise RuntimeError("Test error")

    @error_safe
    def fine(self):
        return 42


class TestErrorSafe:
    def test_returns_value_when_no_error(self):
        assert _Surface().fine() == 42

    def test_returns_none_and_logs(self):
        with capture_logs() as logs:
            assert _Surface().explode() is None
        failures = [e for e in logs if e["event"] == "client.call_failed"]
        assert failures[0]["method"] == "explode"
        assert failures[0]["error"] == "Test error"

    def test_calls_error_callback(self):
        seen = []
        _Surface(seen.append).explode()
        assert len(seen) == 1
        assert isinstance(seen[0], RuntimeError)

    def test_callback_errors_are_swallowed(self):
        def bad_callback(exc):
            raise ValueError("Callback error")

        with capture_logs() as logs:
            assert _Surface(bad_callback).explode() is None
        assert any(e["event"] == "client.error_callback_failed" for e in logs)
