"""
abmeter.tier1_assignment.types
───────────────────────────────
Value type registry. Parameter defaults are cast strictly against their
declared type name when a configuration is loaded; variant values are never
passed through here.

Built-in types: String, Integer, Float, Boolean.
"""
from __future__ import annotations

import math
from typing import Any

from abmeter.tier0_core.errors import ValueCastError

STRING = "String"
INTEGER = "Integer"
FLOAT = "Float"
BOOLEAN = "Boolean"

_TRUE_VALUES = frozenset({"true", "TRUE", "t", "T", "1"})
_FALSE_VALUES = frozenset({"false", "FALSE", "f", "F", "0", ""})


def stringify(value: Any) -> str:
    """String form used for wire serialization and hashing."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


# ── Types ──────────────────────────────────────────────────────────────────

class ValueType:
    """Base type: passes values through unchanged."""

    name: str = ""
    numerical: bool = False

    def cast(self, value: Any) -> Any:
        return value

    def _fail(self, value: Any) -> ValueCastError:
        return ValueCastError(
            f"Cannot cast {value!r} to {self.name}",
            type_name=self.name,
        )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.name}>"


class StringType(ValueType):
    name = STRING

    def cast(self, value: Any) -> str:
        return stringify(value)


class IntegerType(ValueType):
    name = INTEGER
    numerical = True

    def cast(self, value: Any) -> int:
        if isinstance(value, bool) or value is None:
            raise self._fail(value)
        if isinstance(value, int):
            return value
        if isinstance(value, float):
            if not math.isfinite(value):
                raise self._fail(value)
            return int(value)
        if isinstance(value, str):
            try:
                return int(value.strip())
            except ValueError:
                raise self._fail(value) from None
        raise self._fail(value)


class FloatType(ValueType):
    name = FLOAT
    numerical = True

    def cast(self, value: Any) -> float:
        if isinstance(value, bool) or value is None:
            raise self._fail(value)
        if isinstance(value, (int, float)):
            return float(value)
        if isinstance(value, str):
            try:
                return float(value.strip())
            except ValueError:
                raise self._fail(value) from None
        raise self._fail(value)


class BooleanType(ValueType):
    name = BOOLEAN

    def cast(self, value: Any) -> bool:
        if value is True or value is False:
            return value
        if value is None:
            return False
        if isinstance(value, int) and value in (0, 1):
            return value == 1
        if isinstance(value, str):
            if value in _TRUE_VALUES:
                return True
            if value in _FALSE_VALUES:
                return False
        raise self._fail(value)


# ── Registry ───────────────────────────────────────────────────────────────

class TypeRegistry:
    def __init__(self) -> None:
        self._types: dict[str, ValueType] = {}
        for value_type in (StringType(), IntegerType(), FloatType(), BooleanType()):
            self.register(value_type)

    def register(self, value_type: ValueType) -> None:
        self._types[value_type.name] = value_type

    def get(self, type_name: str) -> ValueType:
        try:
            return self._types[type_name]
        except (KeyError, TypeError):
            raise ValueCastError(f"Unknown type: {type_name}", type_name=type_name) from None

    def all(self) -> list[ValueType]:
        return list(self._types.values())


_registry = TypeRegistry()


def get_registry() -> TypeRegistry:
    return _registry


def get_type(type_name: str) -> ValueType:
    return _registry.get(type_name)


def all_types() -> list[str]:
    return [t.name for t in _registry.all()]


def is_numerical(type_name: str) -> bool:
    try:
        return get_type(type_name).numerical
    except ValueCastError:
        return False


def cast(value: Any, type_name: str) -> Any:
    """Strict cast. Raises ValueCastError when value does not fit type_name."""
    return get_type(type_name).cast(value)


def is_valid_for_type(value: Any, type_name: str) -> bool:
    try:
        cast(value, type_name)
    except ValueCastError:
        return False
    return True


__all__ = [
    "STRING", "INTEGER", "FLOAT", "BOOLEAN",
    "ValueType", "StringType", "IntegerType", "FloatType", "BooleanType",
    "TypeRegistry", "get_registry", "get_type", "all_types",
    "is_numerical", "cast", "is_valid_for_type", "stringify",
]
