"""
abmeter.tier2_delivery.transport
─────────────────────────────────
Outbound calls to the collector: fetch the assignment config, submit
exposure batches, submit event batches.

Backed by: httpx (sync HTTP), or an in-memory transport for tests and
offline setups.

A non-2xx response raises ``ApiError`` carrying the status and decoded
body. Connection errors and timeouts propagate as raised by httpx; the
delivery pipeline treats them as unclassified.
"""
from __future__ import annotations

from collections import deque
from typing import Any, Protocol, runtime_checkable

import httpx

from abmeter.constants import DEFAULT_HTTP_TIMEOUT
from abmeter.tier0_core.errors import ApiError

CONFIG_PATH = "/api/v1/assignment-config"
EXPOSURES_PATH = "/api/v1/exposures"
EVENTS_PATH = "/api/v1/events"


# ── Protocol ───────────────────────────────────────────────────────────────

@runtime_checkable
class Transport(Protocol):
    def fetch_configuration(self) -> dict[str, Any]: ...

    def submit_exposures(self, exposures: list[dict[str, Any]]) -> None: ...

    def submit_events(self, events: list[dict[str, Any]]) -> None: ...


# ── HTTP transport ─────────────────────────────────────────────────────────

class HttpTransport:
    """
    Collector client over httpx.

    Usage::

        transport = HttpTransport("https://api.abmeter.ai", api_key="ak_live_...")
        payload = transport.fetch_configuration()   # {"version": ..., "config": {...}}
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._http = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Accept": "application/json",
            },
            transport=transport,
        )

    def fetch_configuration(self) -> dict[str, Any]:
        response = self._http.get(CONFIG_PATH)
        if not response.is_success:
            raise ApiError.from_response(response)
        return response.json()

    def submit_exposures(self, exposures: list[dict[str, Any]]) -> None:
        if not exposures:
            return
        self._post(EXPOSURES_PATH, {"exposures": exposures})

    def submit_events(self, events: list[dict[str, Any]]) -> None:
        if not events:
            return
        self._post(EVENTS_PATH, {"events": events})

    def _post(self, path: str, payload: dict[str, Any]) -> None:
        response = self._http.post(path, json=payload)
        if not response.is_success:
            raise ApiError.from_response(response)

    def close(self) -> None:
        self._http.close()


# ── In-memory transport (tests / offline) ──────────────────────────────────

class InMemoryTransport:
    """
    Records submitted batches and serves a fixed config document. Queue
    failures with ``fail_next`` to script error scenarios; each queued
    exception is raised by exactly one subsequent submit call.
    """

    def __init__(self, config: Any = None, version: str = "1") -> None:
        self.config = config
        self.version = version
        self.exposure_batches: list[list[dict[str, Any]]] = []
        self.event_batches: list[list[dict[str, Any]]] = []
        self.fetch_count = 0
        self._failures: deque[BaseException] = deque()

    def fail_next(self, *errors: BaseException) -> None:
        self._failures.extend(errors)

    def _maybe_fail(self) -> None:
        if self._failures:
            raise self._failures.popleft()

    def fetch_configuration(self) -> dict[str, Any]:
        self.fetch_count += 1
        self._maybe_fail()
        return {"version": self.version, "config": self.config}

    def submit_exposures(self, exposures: list[dict[str, Any]]) -> None:
        self._maybe_fail()
        self.exposure_batches.append(list(exposures))

    def submit_events(self, events: list[dict[str, Any]]) -> None:
        self._maybe_fail()
        self.event_batches.append(list(events))

    @property
    def exposures(self) -> list[dict[str, Any]]:
        return [e for batch in self.exposure_batches for e in batch]

    @property
    def events(self) -> list[dict[str, Any]]:
        return [e for batch in self.event_batches for e in batch]


__all__ = [
    "Transport", "HttpTransport", "InMemoryTransport",
    "CONFIG_PATH", "EXPOSURES_PATH", "EVENTS_PATH",
]
