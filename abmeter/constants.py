"""Defaults shared across the SDK."""
from __future__ import annotations

BATCH_SIZE = 100
MAX_SUBMIT_ATTEMPTS = 3
MAX_RETRY_QUEUE_SIZE = 1000

DEFAULT_FLUSH_INTERVAL = 60.0  # seconds
DEFAULT_FETCH_INTERVAL = 60.0  # seconds
DEFAULT_HTTP_TIMEOUT = 10.0  # seconds
DEFAULT_BASE_URL = "https://api.abmeter.ai"
DEFAULT_LOG_LEVEL = "ERROR"
