"""
abmeter.tier1_assignment.resolver
──────────────────────────────────
Turns (user, parameter slug) into a served value plus an exposure record.

Precedence, first match wins:
  1. feature flags, in configured order: audience matches and the flag's
     variant overrides the slug;
  2. experiments, in configured order: an arm overrides the slug, the
     user's space bucket falls inside the experiment range, and a random
     audience range contains the user's experiment bucket;
  3. the parameter default, unattributed.

For a fixed configuration the decision depends only on the bucketing hash;
only ``resolved_at`` differs between repeated calls.
"""
from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from abmeter.tier0_core.clock import Clock, get_clock
from abmeter.tier0_core.errors import ResolutionError
from abmeter.tier1_assignment.bucketing import to_percentage
from abmeter.tier1_assignment.model import (
    Audience,
    AudienceVariant,
    Configuration,
    Experiment,
    FeatureFlag,
    Parameter,
    PredicateAudience,
    RandomAudience,
    UserListAudience,
)


# ── Data models ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class User:
    user_id: Any
    email: str | None = None


class ExposableType(str, Enum):
    FEATURE_FLAG = "FeatureFlag"
    EXPERIMENT = "Experiment"


@dataclass(frozen=True)
class Exposure:
    """Immutable record of which value a user was served and why."""
    parameter_id: Any
    space_id: Any
    resolved_value: Any
    user_id: Any = None
    exposable_type: ExposableType | None = None
    exposable_id: Any = None
    audience_id: Any = None
    resolved_at: datetime | None = field(default=None, compare=False)

    def to_dict(self) -> dict[str, Any]:
        """Flat wire form submitted to the collector."""
        return {
            "parameter_id": self.parameter_id,
            "space_id": self.space_id,
            "resolved_value": self.resolved_value,
            "user_id": self.user_id,
            "exposable_type": self.exposable_type.value if self.exposable_type else None,
            "exposable_id": self.exposable_id,
            "audience_id": self.audience_id,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
        }


# ── Audience matching ──────────────────────────────────────────────────────

def audience_matches(audience: Audience, user: User, percentage: int | None = None) -> bool:
    """
    Dispatch on audience kind. Random audiences only match against a
    percentage computed by the caller; without one they never match.
    """
    if isinstance(audience, UserListAudience):
        return user.user_id in audience.user_ids
    if isinstance(audience, PredicateAudience):
        if user.email is None:
            return False
        return re.search(audience.predicate, str(user.email)) is not None
    if isinstance(audience, RandomAudience):
        return percentage is not None and audience.range.includes(percentage)
    return False


def coerce_user(user: Any) -> User:
    """Accept a User, a mapping, or any object with user_id/email attributes."""
    if isinstance(user, User):
        return user
    if isinstance(user, Mapping):
        if "user_id" not in user:
            raise ResolutionError("User must have user_id")
        if "email" not in user:
            raise ResolutionError("User must have email")
        return User(user_id=user["user_id"], email=user["email"])
    if not hasattr(user, "user_id"):
        raise ResolutionError("User must have user_id")
    if not hasattr(user, "email"):
        raise ResolutionError("User must have email")
    return User(user_id=user.user_id, email=user.email)


# ── Resolver ───────────────────────────────────────────────────────────────

class ParameterResolver:
    def __init__(self, configuration: Configuration, clock: Clock | None = None) -> None:
        self.configuration = configuration
        self._clock = clock

    def _now(self) -> datetime:
        return (self._clock or get_clock()).now()

    def exposure_for(self, user: Any, parameter_slug: str) -> Exposure:
        """Resolve ``parameter_slug`` for ``user``. Raises ResolutionError."""
        user = coerce_user(user)
        parameter = self.configuration.parameter(parameter_slug)
        if parameter is None:
            raise ResolutionError(
                f"Parameter '{parameter_slug}' not found",
                parameter_slug=parameter_slug,
            )

        flag = self._matching_feature_flag(user, parameter_slug)
        if flag is not None:
            return self._expose(
                user, parameter, ExposableType.FEATURE_FLAG, flag.id,
                flag.audience.id, flag.variant.value_for(parameter_slug),
            )

        match = self._matching_experiment_arm(user, parameter_slug)
        if match is not None:
            experiment, arm = match
            if arm.variant is not None:
                value = arm.variant.value_for(parameter_slug)
            else:
                value = parameter.default_value
            return self._expose(
                user, parameter, ExposableType.EXPERIMENT, experiment.id,
                arm.audience.id, value,
            )

        return Exposure(
            parameter_id=parameter.id,
            space_id=parameter.space_id,
            resolved_value=parameter.default_value,
            resolved_at=self._now(),
        )

    def _matching_feature_flag(self, user: User, parameter_slug: str) -> FeatureFlag | None:
        for flag in self.configuration.feature_flags:
            if audience_matches(flag.audience, user) and flag.variant.defines(parameter_slug):
                return flag
        return None

    def _matching_experiment_arm(
        self, user: User, parameter_slug: str
    ) -> tuple[Experiment, AudienceVariant] | None:
        for experiment in self.configuration.experiments:
            if not experiment.controls(parameter_slug):
                continue

            space_pct = to_percentage(experiment.space_salt, user.user_id)
            if not experiment.range.includes(space_pct):
                continue

            # Only random audiences take part in arm selection.
            user_pct = to_percentage(experiment.salt, user.user_id)
            for arm in experiment.audience_variants:
                if isinstance(arm.audience, RandomAudience) and audience_matches(
                    arm.audience, user, user_pct
                ):
                    return experiment, arm
        return None

    def _expose(
        self,
        user: User,
        parameter: Parameter,
        exposable_type: ExposableType,
        exposable_id: Any,
        audience_id: Any,
        value: Any,
    ) -> Exposure:
        return Exposure(
            parameter_id=parameter.id,
            space_id=parameter.space_id,
            resolved_value=value,
            user_id=user.user_id,
            exposable_type=exposable_type,
            exposable_id=exposable_id,
            audience_id=audience_id,
            resolved_at=self._now(),
        )


__all__ = [
    "User", "ExposableType", "Exposure",
    "audience_matches", "coerce_user", "ParameterResolver",
]
