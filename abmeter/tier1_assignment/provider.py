"""
abmeter.tier1_assignment.provider
──────────────────────────────────
Config cache in front of the resolver.

Two modes:
  - static: a document is parsed once at construction and never refreshed.
  - remote: the document is fetched through an injected callable on first
    use and again once ``fetch_interval`` seconds have elapsed. The check is
    lazy (on access) and runs on the caller's thread. A failed refresh keeps
    the previous resolver and raises to the caller that triggered it.

Attributed exposures from ``resolve_parameter`` are handed to the delivery
pipeline when one is attached.
"""
from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any

from abmeter.constants import DEFAULT_FETCH_INTERVAL
from abmeter.tier0_core.clock import Clock, get_clock
from abmeter.tier0_core.errors import ConfigLoadError, ConfigurationError
from abmeter.tier0_core.logging import get_logger
from abmeter.tier1_assignment.model import Configuration
from abmeter.tier1_assignment.resolver import Exposure, ParameterResolver

if TYPE_CHECKING:
    from abmeter.tier2_delivery.pipeline import DeliveryPipeline

log = get_logger(__name__)

FetchFn = Callable[[], Mapping[str, Any]]


class ResolverProvider:
    def __init__(
        self,
        *,
        document: Mapping[str, Any] | str | bytes | None = None,
        fetch: FetchFn | None = None,
        fetch_interval: float = DEFAULT_FETCH_INTERVAL,
        clock: Clock | None = None,
        pipeline: DeliveryPipeline | None = None,
    ) -> None:
        if document is None and fetch is None:
            raise ConfigurationError("Either a static document or a fetch function must be provided")

        self._fetch = fetch
        self._fetch_interval = fetch_interval
        self._clock = clock
        self._pipeline = pipeline
        self._static = document is not None
        self._resolver: ParameterResolver | None = None
        self.last_fetched_at: datetime | None = None
        self.version: Any = None

        if document is not None:
            self._resolver = ParameterResolver(Configuration.from_document(document), clock)

    @classmethod
    def static(
        cls,
        document: Mapping[str, Any] | str | bytes,
        *,
        clock: Clock | None = None,
        pipeline: DeliveryPipeline | None = None,
    ) -> "ResolverProvider":
        return cls(document=document, clock=clock, pipeline=pipeline)

    @classmethod
    def remote(
        cls,
        fetch: FetchFn,
        *,
        fetch_interval: float = DEFAULT_FETCH_INTERVAL,
        clock: Clock | None = None,
        pipeline: DeliveryPipeline | None = None,
    ) -> "ResolverProvider":
        return cls(fetch=fetch, fetch_interval=fetch_interval, clock=clock, pipeline=pipeline)

    @property
    def is_static(self) -> bool:
        return self._static

    def _now(self) -> datetime:
        return (self._clock or get_clock()).now()

    # ── Cache ──────────────────────────────────────────────────────────────

    def resolver(self) -> ParameterResolver:
        """Return the current resolver, refreshing it first if it is stale."""
        if not self._static and (self._resolver is None or self._is_stale()):
            self._refresh()
        if self._resolver is None:
            raise ConfigurationError("Configuration not loaded")
        return self._resolver

    def _is_stale(self) -> bool:
        if self.last_fetched_at is None:
            return True
        elapsed = (self._now() - self.last_fetched_at).total_seconds()
        return elapsed > self._fetch_interval

    def _refresh(self) -> None:
        if self._fetch is None:
            raise ConfigurationError("No fetch function configured for remote mode")
        response = self._fetch()
        if not isinstance(response, Mapping) or "config" not in response:
            raise ConfigLoadError("Config response has no 'config' document")

        resolver = ParameterResolver(Configuration.from_document(response["config"]), self._clock)
        self._resolver = resolver
        self.version = response.get("version")
        self.last_fetched_at = self._now()
        log.debug("config.refreshed", version=self.version)

    # ── Resolution ─────────────────────────────────────────────────────────

    def resolve_parameter(self, user: Any, parameter_slug: str) -> Any:
        """Resolve a value and queue its exposure when it is attributed."""
        exposure = self.resolver().exposure_for(user, parameter_slug)
        if self._pipeline is not None and exposure.exposable_id is not None:
            self._pipeline.enqueue_exposure(exposure)
        return exposure.resolved_value

    def get_exposure(self, user: Any, parameter_slug: str) -> Exposure:
        """Resolve without queueing, for debugging and introspection."""
        return self.resolver().exposure_for(user, parameter_slug)


__all__ = ["ResolverProvider"]
