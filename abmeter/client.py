"""
abmeter.client
───────────────
Public surface. A ``Client`` owns one config cache and, in remote mode, one
delivery pipeline with its worker. Every public call is error-safe: a
failure is logged, passed to ``error_callback`` and turned into ``None``.
The module-level helpers behave the same way before ``configure()`` has
run; only ``get_client()`` raises.

Usage::

    client = Client(AbmeterSettings(api_key="ak_live_..."))
    client.start()
    color = client.resolve_parameter(User("u_123", "a@example.com"), "button_color")
    client.track_event("checkout", "u_123", {"amount": 42})
    client.shutdown()

Or through the process-wide default client::

    abmeter.configure(api_key="ak_live_...")
    abmeter.resolve_parameter(user, "button_color")
"""
from __future__ import annotations

from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from abmeter.tier0_core.clock import Clock
from abmeter.tier0_core.config import AbmeterSettings, get_settings
from abmeter.tier0_core.errors import ConfigurationError
from abmeter.tier0_core.logging import configure_logging, get_logger
from abmeter.tier0_core.safety import error_safe, report_failure
from abmeter.tier1_assignment.provider import ResolverProvider
from abmeter.tier1_assignment.resolver import Exposure
from abmeter.tier2_delivery.pipeline import DeliveryPipeline
from abmeter.tier2_delivery.transport import HttpTransport, Transport

log = get_logger(__name__)

ErrorCallback = Callable[[BaseException], Any]


class Client:
    def __init__(
        self,
        settings: AbmeterSettings | None = None,
        *,
        transport: Transport | None = None,
        error_callback: ErrorCallback | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._error_callback = error_callback
        configure_logging(self.settings.log_level, self.settings.log_format)

        if transport is None and not self.settings.is_static:
            api_key = self.settings.api_key
            if api_key is None:
                raise ConfigurationError("An api_key is required in remote mode")
            transport = HttpTransport(
                self.settings.base_url,
                api_key.get_secret_value(),
                timeout=self.settings.http_timeout,
            )
        self.transport = transport

        # Without a transport nothing could ever be delivered, so no pipeline.
        self.pipeline: DeliveryPipeline | None = None
        if transport is not None:
            self.pipeline = DeliveryPipeline(
                transport,
                flush_interval=self.settings.flush_interval,
                clock=clock,
            )

        if self.settings.is_static:
            self.provider = ResolverProvider.static(
                self.settings.static_config, clock=clock, pipeline=self.pipeline
            )
        else:
            self.provider = ResolverProvider.remote(
                transport.fetch_configuration,
                fetch_interval=self.settings.fetch_interval,
                clock=clock,
                pipeline=self.pipeline,
            )

    # ── Lifecycle ──────────────────────────────────────────────────────────

    def start(self) -> None:
        if self.pipeline is not None:
            self.pipeline.start()

    def shutdown(self) -> None:
        if self.pipeline is not None:
            self.pipeline.shutdown()
        if isinstance(self.transport, HttpTransport):
            self.transport.close()

    # ── Public API ─────────────────────────────────────────────────────────

    @error_safe
    def resolve_parameter(self, user: Any, parameter_slug: str) -> Any:
        """Resolve a parameter value and report the exposure."""
        return self.provider.resolve_parameter(user, parameter_slug)

    @error_safe
    def get_exposure(self, user: Any, parameter_slug: str) -> Exposure:
        """Full exposure record; nothing is reported. For debugging."""
        return self.provider.get_exposure(user, parameter_slug)

    @error_safe
    def track_event(self, event_slug: str, user_id: Any, data: dict[str, Any] | None = None) -> None:
        """Queue a custom event for delivery."""
        if self.pipeline is None:
            log.warning("client.event_dropped", reason="no_transport", event_slug=event_slug)
            return None
        self.pipeline.enqueue_event(event_slug, user_id, data)
        return None


# ── Process-wide default client ────────────────────────────────────────────

_client: Client | None = None


def configure(
    settings: AbmeterSettings | None = None,
    *,
    transport: Transport | None = None,
    error_callback: ErrorCallback | None = None,
    clock: Clock | None = None,
    **overrides: Any,
) -> Client:
    """
    Build the default client and start its worker. Keyword overrides are
    settings field names (``api_key=``, ``static_config=`` …). Replaces any
    previously configured client after shutting it down.
    """
    global _client
    if settings is None:
        try:
            settings = AbmeterSettings(**overrides) if overrides else get_settings()
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid SDK settings: {exc}") from exc

    client = Client(settings, transport=transport, error_callback=error_callback, clock=clock)
    if _client is not None:
        _client.shutdown()
    _client = client
    client.start()
    return client


def get_client() -> Client:
    if _client is None:
        raise ConfigurationError("abmeter is not configured. Call abmeter.configure(...) first.")
    return _client


def reset() -> None:
    """Shut down and forget the default client."""
    global _client
    if _client is not None:
        _client.shutdown()
    _client = None


def _default_client(method: str) -> Client | None:
    """Like get_client, but an unconfigured SDK is logged and yields None."""
    try:
        return get_client()
    except ConfigurationError as exc:
        report_failure(method, exc)
        return None


def resolve_parameter(user: Any, parameter_slug: str) -> Any:
    client = _default_client("resolve_parameter")
    return None if client is None else client.resolve_parameter(user, parameter_slug)


def get_exposure(user: Any, parameter_slug: str) -> Exposure | None:
    client = _default_client("get_exposure")
    return None if client is None else client.get_exposure(user, parameter_slug)


def track_event(event_slug: str, user_id: Any, data: dict[str, Any] | None = None) -> None:
    client = _default_client("track_event")
    return None if client is None else client.track_event(event_slug, user_id, data)


__all__ = [
    "Client", "configure", "get_client", "reset",
    "resolve_parameter", "get_exposure", "track_event",
]
