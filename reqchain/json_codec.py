"""JSON helpers shared by ingestion and encoding.

Numbers are decoded without float truncation: integers are native Python
ints, and non-integers become ``Decimal`` so their source text survives a
decode/encode round trip. ``dump_json`` is the canonical encoder: compact
separators, sorted object keys, UTF-8 text, and ``Decimal`` written as a bare
numeric literal.
"""

from __future__ import annotations

import base64
import dataclasses
import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel

from reqchain.values import format_decimal


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not valid JSON")


def decode_json(text: str | bytes) -> Any:
    """Decode JSON keeping full numeric precision.

    Raises:
        ValueError: If *text* is not a single well-formed JSON value.
            (``json.JSONDecodeError`` is a ``ValueError`` subclass.)
    """
    return json.loads(text, parse_float=Decimal, parse_constant=_reject_constant)


def _default(obj: Any) -> Any:
    """Fallback conversion for objects ``json`` does not know."""
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json", by_alias=True)
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    if isinstance(obj, (bytes, bytearray)):
        return base64.b64encode(bytes(obj)).decode("ascii")
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def dump_json(value: Any) -> str:
    """Serialize *value* to canonical JSON text.

    Raises:
        TypeError: If a nested value cannot be serialized.
        ValueError: On NaN/Infinity floats.
    """
    if isinstance(value, Decimal):
        return format_decimal(value)
    if isinstance(value, dict):
        members = sorted(value.items(), key=lambda item: str(item[0]))
        return "{" + ",".join(
            f"{json.dumps(str(key), ensure_ascii=False)}:{dump_json(member)}"
            for key, member in members
        ) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(dump_json(item) for item in value) + "]"
    if isinstance(value, (BaseModel, datetime, date, bytes, bytearray)) or (
        dataclasses.is_dataclass(value) and not isinstance(value, type)
    ):
        return dump_json(_default(value))
    return json.dumps(value, ensure_ascii=False, allow_nan=False, separators=(",", ":"))


def record_to_object(record: Any) -> Any:
    """Serialize a record or mapping to JSON and decode it generically.

    Pydantic models use their own JSON serializer (aliases applied);
    dataclasses and mappings go through ``dump_json``.
    """
    if isinstance(record, BaseModel):
        text = record.model_dump_json(by_alias=True)
    else:
        text = dump_json(dict(record) if not dataclasses.is_dataclass(record) else record)
    return decode_json(text)
