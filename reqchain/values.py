"""Closed set of value kinds accepted by the fluent API.

Callers may pass native Python objects; ``wrap`` classifies them once at the
API boundary into one of the variant types below, and everything downstream
dispatches on the variant instead of inspecting arbitrary objects.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping as AbcMapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Union

from pydantic import BaseModel


@dataclass(frozen=True)
class Text:
    value: str


@dataclass(frozen=True)
class Integer:
    value: int


@dataclass(frozen=True)
class Float:
    value: float


@dataclass(frozen=True)
class Boolean:
    value: bool


@dataclass(frozen=True)
class Record:
    """A structured object (pydantic model or dataclass instance)."""

    value: Any


@dataclass(frozen=True)
class Sequence:
    value: list[Any]


@dataclass(frozen=True)
class Mapping:
    value: AbcMapping[Any, Any]


@dataclass(frozen=True)
class Optional:
    """A value that may be absent; ``None`` means absent."""

    value: Any = None


@dataclass(frozen=True)
class Unsupported:
    """Anything the accumulator cannot represent (sets, complex numbers, ...)."""

    value: Any


Value = Union[Text, Integer, Float, Boolean, Record, Sequence, Mapping, Optional, Unsupported]

_VARIANTS = (Text, Integer, Float, Boolean, Record, Sequence, Mapping, Optional, Unsupported)


def wrap(obj: Any) -> Value:
    """Classify a native Python object into a ``Value`` variant.

    Already-wrapped values pass through unchanged. ``bool`` is checked before
    ``int`` because it is a subclass of it.
    """
    if isinstance(obj, _VARIANTS):
        return obj
    if obj is None:
        return Optional(None)
    if isinstance(obj, str):
        return Text(obj)
    if isinstance(obj, bool):
        return Boolean(obj)
    if isinstance(obj, int):
        return Integer(obj)
    if isinstance(obj, float):
        return Float(obj)
    if isinstance(obj, Decimal):
        return Text(format_decimal(obj))
    if isinstance(obj, BaseModel) or (dataclasses.is_dataclass(obj) and not isinstance(obj, type)):
        return Record(obj)
    if isinstance(obj, AbcMapping):
        return Mapping(obj)
    if isinstance(obj, (list, tuple)):
        return Sequence(list(obj))
    return Unsupported(obj)


def format_float(value: float) -> str:
    """Shortest round-trip decimal text, never in exponent form."""
    if value != value or value in (float("inf"), float("-inf")):
        return repr(value)
    text = format(Decimal(repr(value)), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def format_decimal(value: Decimal) -> str:
    """Decimal text as it appeared in the JSON source."""
    return str(value)


def format_bool(value: bool) -> str:
    return "true" if value else "false"
