"""
abmeter.tier1_assignment.model
───────────────────────────────
Immutable in-memory assignment configuration: spaces, parameters,
audiences, variants, experiments and feature flags.

A ``Configuration`` is built in one pass from a config document (mapping or
JSON text) and never mutated afterwards. Loading validates referential
integrity: every parameter and experiment must point at a loaded space, and
every parameter default must cast to its declared type. Any failure raises
``ConfigLoadError`` and no partial configuration is returned.

``serialize()`` emits every section sorted by ascending id, so
``Configuration.from_document(c.serialize()).serialize() == c.serialize()``.
"""
from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass
from functools import cached_property
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    ValidationInfo,
    field_serializer,
    field_validator,
    model_validator,
)

from abmeter.tier0_core.errors import ConfigLoadError
from abmeter.tier1_assignment.bucketing import PercentRange
from abmeter.tier1_assignment.types import cast, stringify

EntityId = Union[int, str]


class _ConfigModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


# ── Spaces & parameters ────────────────────────────────────────────────────

class Space(_ConfigModel):
    id: EntityId
    salt: str


class Parameter(_ConfigModel):
    id: EntityId
    slug: str
    parameter_type: str
    default_value: Any = None
    space_id: EntityId

    @model_validator(mode="before")
    @classmethod
    def _cast_default(cls, data: Any) -> Any:
        if isinstance(data, Mapping):
            data = dict(data)
            data["default_value"] = cast(data.get("default_value"), data.get("parameter_type"))
        return data

    @model_validator(mode="after")
    def _check_space(self, info: ValidationInfo) -> "Parameter":
        space_ids = (info.context or {}).get("space_salts")
        if space_ids is not None and self.space_id not in space_ids:
            raise ValueError(f"Space with id {self.space_id} not found")
        return self

    @field_serializer("default_value")
    def _serialize_default(self, value: Any) -> str:
        return stringify(value)


# ── Audiences ──────────────────────────────────────────────────────────────

class UserListAudience(_ConfigModel):
    id: EntityId
    type: Literal["user_list"] = "user_list"
    user_ids: tuple[EntityId, ...] = ()


class PredicateAudience(_ConfigModel):
    id: EntityId
    type: Literal["predicate"] = "predicate"
    predicate: str

    @field_validator("predicate")
    @classmethod
    def _compile(cls, v: str) -> str:
        try:
            re.compile(v)
        except re.error as exc:
            raise ValueError(f"Invalid predicate {v!r}: {exc}") from exc
        return v


class RandomAudience(_ConfigModel):
    # Serialized random audiences sometimes carry a ``salt``; it is ignored.
    id: EntityId
    type: Literal["random"] = "random"
    range: PercentRange


Audience = Annotated[
    Union[UserListAudience, PredicateAudience, RandomAudience],
    Field(discriminator="type"),
]


# ── Variants ───────────────────────────────────────────────────────────────

class Variant(_ConfigModel):
    """Parameter overrides. Values are kept exactly as configured, not cast."""

    id: EntityId
    parameter_values: dict[str, Any] = Field(default_factory=dict)

    @field_validator("parameter_values", mode="before")
    @classmethod
    def _from_pairs(cls, v: Any) -> Any:
        if not isinstance(v, list):
            return v
        values: dict[str, Any] = {}
        for pair in v:
            if not isinstance(pair, Mapping) or "slug" not in pair:
                raise ValueError(f"parameter value entries need a slug, got {pair!r}")
            values[pair["slug"]] = pair.get("value")
        return values

    @field_serializer("parameter_values")
    def _to_pairs(self, values: dict[str, Any]) -> list[dict[str, Any]]:
        return [{"slug": slug, "value": value} for slug, value in values.items()]

    def defines(self, parameter_slug: str) -> bool:
        return parameter_slug in self.parameter_values

    def value_for(self, parameter_slug: str) -> Any:
        return self.parameter_values.get(parameter_slug)


# ── Exposables ─────────────────────────────────────────────────────────────

class AudienceVariant(_ConfigModel):
    """One experiment arm. ``variant`` is None for a control arm."""

    audience: Audience
    variant: Variant | None = None


class FeatureFlag(_ConfigModel):
    id: EntityId
    audience: Audience
    variant: Variant


class Experiment(_ConfigModel):
    id: EntityId
    space_id: EntityId
    range: PercentRange
    salt: str | None = None
    audience_variants: tuple[AudienceVariant, ...] = ()
    # Copied from the referenced space while loading; never serialized.
    space_salt: str | None = Field(default=None, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def _attach_space_salt(cls, data: Any, info: ValidationInfo) -> Any:
        space_salts = (info.context or {}).get("space_salts")
        if space_salts is None or not isinstance(data, Mapping):
            return data
        space_id = data.get("space_id")
        if space_id not in space_salts:
            raise ValueError(f"Space with id {space_id} not found")
        return {**data, "space_salt": space_salts[space_id]}

    def controls(self, parameter_slug: str) -> bool:
        """True if any non-control arm overrides ``parameter_slug``."""
        return any(
            av.variant is not None and av.variant.defines(parameter_slug)
            for av in self.audience_variants
        )


# ── Aggregate root ─────────────────────────────────────────────────────────

_SPACES = TypeAdapter(list[Space])
_PARAMETERS = TypeAdapter(list[Parameter])
_FEATURE_FLAGS = TypeAdapter(list[FeatureFlag])
_EXPERIMENTS = TypeAdapter(list[Experiment])


@dataclass(frozen=True)
class Configuration:
    spaces: tuple[Space, ...] = ()
    parameters: tuple[Parameter, ...] = ()
    feature_flags: tuple[FeatureFlag, ...] = ()
    experiments: tuple[Experiment, ...] = ()

    @classmethod
    def from_document(cls, document: Mapping[str, Any] | str | bytes) -> "Configuration":
        """Parse and validate a config document. Raises ConfigLoadError."""
        data = _decode(document)
        try:
            spaces = _SPACES.validate_python(_section(data, "spaces"))
            space_salts = {space.id: space.salt for space in spaces}
            parameters = _PARAMETERS.validate_python(
                _section(data, "parameters"), context={"space_salts": space_salts}
            )
            feature_flags = _FEATURE_FLAGS.validate_python(_section(data, "feature_flags"))
            experiments = _EXPERIMENTS.validate_python(
                data.get("experiments") or [], context={"space_salts": space_salts}
            )
        except ValidationError as exc:
            raise ConfigLoadError(
                f"Invalid assignment configuration: {exc}",
                error_count=exc.error_count(),
            ) from exc

        return cls(
            spaces=tuple(spaces),
            parameters=tuple(parameters),
            feature_flags=tuple(feature_flags),
            experiments=tuple(experiments),
        )

    @cached_property
    def _parameters_by_slug(self) -> dict[str, Parameter]:
        index: dict[str, Parameter] = {}
        for parameter in self.parameters:
            index.setdefault(parameter.slug, parameter)
        return index

    def parameter(self, slug: str) -> Parameter | None:
        return self._parameters_by_slug.get(slug)

    def space(self, space_id: EntityId) -> Space | None:
        return next((s for s in self.spaces if s.id == space_id), None)

    def serialize(self) -> dict[str, list[dict[str, Any]]]:
        return {
            "spaces": _dump_sorted(self.spaces),
            "parameters": _dump_sorted(self.parameters),
            "feature_flags": _dump_sorted(self.feature_flags),
            "experiments": _dump_sorted(self.experiments),
        }

    def to_json(self) -> str:
        return json.dumps(self.serialize())


def _decode(document: Mapping[str, Any] | str | bytes) -> dict[str, Any]:
    if isinstance(document, (str, bytes, bytearray)):
        try:
            document = json.loads(document)
        except ValueError as exc:
            raise ConfigLoadError(f"Config document is not valid JSON: {exc}") from exc
    if not isinstance(document, Mapping):
        raise ConfigLoadError(
            f"Config document must be an object, got {type(document).__name__}"
        )
    return dict(document)


def _section(data: dict[str, Any], key: str) -> Any:
    if data.get(key) is None:
        raise ConfigLoadError(f"Config document is missing {key!r}", section=key)
    return data[key]


def _id_key(entity: Any) -> tuple[bool, Any]:
    return (isinstance(entity.id, str), entity.id)


def _dump_sorted(entities: tuple[BaseModel, ...]) -> list[dict[str, Any]]:
    return [e.model_dump(mode="json") for e in sorted(entities, key=_id_key)]


__all__ = [
    "Space", "Parameter",
    "UserListAudience", "PredicateAudience", "RandomAudience", "Audience",
    "Variant", "AudienceVariant", "FeatureFlag", "Experiment",
    "Configuration",
]
