"""
abmeter
────────
Stable top-level exports. Import from here, not from sub-modules directly.
Every name exported here is part of the public API and subject to semver.
"""
from abmeter.tier0_core.logging import get_logger, configure_logging
from abmeter.tier0_core.errors import (
    AbmeterError,
    ConfigurationError,
    ConfigLoadError,
    ResolutionError,
    ValueCastError,
    ApiError,
    FailureKind,
    classify_failure,
)
from abmeter.tier0_core.config import AbmeterSettings, get_settings
from abmeter.tier0_core.clock import Clock, ManualClock

from abmeter.tier1_assignment.types import cast, is_valid_for_type, all_types
from abmeter.tier1_assignment.bucketing import (
    PercentRange,
    to_percentage,
    percentages_to_ranges,
)
from abmeter.tier1_assignment.model import Configuration
from abmeter.tier1_assignment.resolver import (
    User,
    Exposure,
    ExposableType,
    ParameterResolver,
)
from abmeter.tier1_assignment.provider import ResolverProvider

from abmeter.tier2_delivery.transport import Transport, HttpTransport, InMemoryTransport
from abmeter.tier2_delivery.pipeline import DeliveryPipeline

from abmeter.client import (
    Client,
    configure,
    get_client,
    reset,
    resolve_parameter,
    get_exposure,
    track_event,
)

__version__ = "0.1.0"
__all__ = [
    # logging
    "get_logger", "configure_logging",
    # errors
    "AbmeterError", "ConfigurationError", "ConfigLoadError", "ResolutionError",
    "ValueCastError", "ApiError", "FailureKind", "classify_failure",
    # config
    "AbmeterSettings", "get_settings",
    # clock
    "Clock", "ManualClock",
    # types
    "cast", "is_valid_for_type", "all_types",
    # bucketing
    "PercentRange", "to_percentage", "percentages_to_ranges",
    # model
    "Configuration",
    # resolution
    "User", "Exposure", "ExposableType", "ParameterResolver", "ResolverProvider",
    # delivery
    "Transport", "HttpTransport", "InMemoryTransport", "DeliveryPipeline",
    # client
    "Client", "configure", "get_client", "reset",
    "resolve_parameter", "get_exposure", "track_event",
]
