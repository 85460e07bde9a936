"""
abmeter test configuration.

All tests run offline against in-memory transports and static documents;
no collector required. Override by setting environment variables before
running pytest.
"""
from __future__ import annotations

import os
from datetime import datetime, timezone

import pytest

# ── Force test settings ────────────────────────────────────────────────────
# These must be set before any abmeter modules are imported.

os.environ.setdefault("ABMETER_LOG_LEVEL", "DEBUG")
os.environ.setdefault("ABMETER_LOG_FORMAT", "console")
os.environ.pop("ABMETER_API_KEY", None)
os.environ.pop("ABMETER_STATIC_CONFIG", None)


# ── Fixtures ───────────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
def reset_module_singletons():
    """
    Reset the default client, cached settings and global clock between
    tests so no state bleeds across them.
    """
    import abmeter.client as _client
    import abmeter.tier0_core.clock as _clock
    from abmeter.tier0_core.config import _reset_settings

    orig_clock = _clock.get_clock()

    yield

    _client.reset()
    _reset_settings()
    _clock.set_clock(orig_clock)


@pytest.fixture
def frozen_time() -> datetime:
    return datetime(2026, 6, 28, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(frozen_time):
    from abmeter.tier0_core.clock import ManualClock
    return ManualClock(frozen_time)


@pytest.fixture
def config_document() -> dict:
    """Two spaces, four typed parameters, two experiments, two flags."""
    return {
        "spaces": [
            {"id": 1, "salt": "space-1-salt"},
            {"id": 2, "salt": "space-2-salt"},
        ],
        "parameters": [
            {"id": 1, "slug": "button_color", "parameter_type": "String", "default_value": "blue", "space_id": 1},
            {"id": 2, "slug": "button_size", "parameter_type": "Integer", "default_value": "12", "space_id": 1},
            {"id": 3, "slug": "dark_mode", "parameter_type": "Boolean", "default_value": "false", "space_id": 2},
            {"id": 4, "slug": "font_size", "parameter_type": "Float", "default_value": "14.5", "space_id": 2},
        ],
        "experiments": [
            {
                "id": 100,
                "space_id": 1,
                "range": [1, 50],
                "salt": "exp-100-salt",
                "audience_variants": [
                    {"audience": {"id": 10, "type": "random", "salt": "control-salt", "range": [1, 30]}, "variant": None},
                    {
                        "audience": {"id": 11, "type": "random", "salt": "test-salt", "range": [31, 70]},
                        "variant": {
                            "id": 1,
                            "parameter_values": [
                                {"slug": "button_color", "value": "green"},
                                {"slug": "button_size", "value": "16"},
                            ],
                        },
                    },
                    {
                        "audience": {"id": 12, "type": "random", "salt": "test2-salt", "range": [71, 100]},
                        "variant": {
                            "id": 2,
                            "parameter_values": [
                                {"slug": "button_color", "value": "red"},
                                {"slug": "button_size", "value": "20"},
                            ],
                        },
                    },
                ],
            },
            {
                "id": 101,
                "space_id": 1,
                "range": [51, 100],
                "salt": "exp-101-salt",
                "audience_variants": [
                    {
                        "audience": {"id": 13, "type": "random", "salt": "exp2-salt", "range": [1, 100]},
                        "variant": {"id": 3, "parameter_values": [{"slug": "button_color", "value": "purple"}]},
                    },
                ],
            },
        ],
        "feature_flags": [
            {
                "id": 200,
                "audience": {"id": 20, "type": "predicate", "predicate": "@example\\.com$"},
                "variant": {
                    "id": 4,
                    "parameter_values": [
                        {"slug": "dark_mode", "value": "true"},
                        {"slug": "font_size", "value": "18.0"},
                    ],
                },
            },
            {
                "id": 201,
                "audience": {"id": 21, "type": "user_list", "user_ids": ["user1", "user2", "user3"]},
                "variant": {"id": 5, "parameter_values": [{"slug": "button_color", "value": "yellow"}]},
            },
        ],
    }
