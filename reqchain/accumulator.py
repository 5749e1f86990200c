"""Data Accumulator - Ingests caller data into canonical stores.

Every ``send``/``query``/``set_headers`` call on the builder lands here. The
accumulator never raises: faults are appended to the shared error list and
the caller's chain continues. Encoding decisions are deferred to the
BodyEncoder; the only encoding hint recorded here is that a query-string
payload prefers form encoding.
"""

from __future__ import annotations

import copy
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable
from urllib.parse import parse_qsl

from reqchain.errors import DecodeError, ReqchainError, with_cause
from reqchain.json_codec import decode_json, dump_json, record_to_object
from reqchain.values import (
    Boolean,
    Float,
    Integer,
    Mapping,
    Optional,
    Record,
    Sequence,
    Text,
    Unsupported,
    Value,
    format_bool,
    format_decimal,
    format_float,
    wrap,
)

logger = logging.getLogger(__name__)

# A '%' not followed by two hex digits makes a query string undecodable.
_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


def parse_query(content: str) -> list[tuple[str, str]]:
    """Decode ``key=value&key=value`` into ordered pairs.

    Keys without '=' get an empty value. '+' decodes to a space.

    Raises:
        ValueError: If *content* contains ';' or a malformed percent escape.
    """
    if ";" in content:
        raise ValueError("invalid semicolon separator in query")
    match = _BAD_ESCAPE.search(content)
    if match:
        raise ValueError(f"invalid URL escape {content[match.start():match.start() + 3]!r}")
    return parse_qsl(content, keep_blank_values=True)


@dataclass
class AccumulatedData:
    """The builder's not-yet-encoded body data."""

    map_store: dict[str, Any] = field(default_factory=dict)
    sequence_store: list[Any] = field(default_factory=list)
    raw_buffer: str = ""
    raw_fallback: bool = False

    def clone(self) -> AccumulatedData:
        return AccumulatedData(
            map_store=copy.deepcopy(self.map_store),
            sequence_store=copy.deepcopy(self.sequence_store),
            raw_buffer=self.raw_buffer,
            raw_fallback=self.raw_fallback,
        )

    @property
    def is_mixed(self) -> bool:
        """True when both map-shaped and array-shaped data are present."""
        return bool(self.map_store) and bool(self.sequence_store)


class DataAccumulator:
    """Polymorphic ingestion into ``AccumulatedData`` and query/header stores.

    Usage:
        acc = DataAccumulator(errors)
        acc.ingest(wrap('{"name": "egg"}'))
        acc.ingest(wrap("category=brunch"))
        acc.data.map_store  # {"name": "egg", "category": "brunch"}

    Args:
        errors: Shared error list; faults are appended here.
        on_form: Called when a string payload decoded as a query string,
                 so the owner can switch its default encoding to form.
    """

    def __init__(
        self,
        errors: list[ReqchainError],
        on_form: Callable[[], None] | None = None,
    ) -> None:
        self.errors = errors
        self.data = AccumulatedData()
        self.query: list[tuple[str, str]] = []
        self.headers: list[tuple[str, str]] = []
        self._on_form = on_form

    # -------------------------------------------------------------------------
    # Body data
    # -------------------------------------------------------------------------

    def ingest(self, value: Value | Any) -> None:
        """Ingest one body value, dispatching on its variant."""
        value = wrap(value)
        if isinstance(value, Text):
            self.ingest_string(value.value)
        elif isinstance(value, Integer):
            self.ingest_string(str(value.value))
        elif isinstance(value, Float):
            self.ingest_string(format_float(value.value))
        elif isinstance(value, Boolean):
            self.ingest_string(format_bool(value.value))
        elif isinstance(value, (Record, Mapping)):
            self._ingest_record(value.value)
        elif isinstance(value, Sequence):
            self.data.sequence_store.extend(value.value)
        elif isinstance(value, Optional):
            if value.value is not None:
                self.ingest(wrap(value.value))
        elif isinstance(value, Unsupported):
            logger.debug("Ignoring unsupported value of type %s", type(value.value).__name__)

    def ingest_string(self, content: str) -> None:
        """Ingest a string as JSON, then as a query string, then as raw text.

        The original string is always appended to the raw buffer so text,
        XML and raw-fallback bodies can use it verbatim.
        """
        data = self.data
        if not data.raw_fallback:
            try:
                decoded = decode_json(content)
            except ValueError:
                self._ingest_form_string(content)
            else:
                if isinstance(decoded, dict):
                    data.map_store.update(decoded)
                    # '{}' decodes fine but contributes nothing
                    if not data.map_store:
                        data.raw_fallback = True
                elif isinstance(decoded, list):
                    data.sequence_store.extend(decoded)
                else:
                    data.raw_fallback = True
        data.raw_buffer += content

    def _ingest_form_string(self, content: str) -> None:
        try:
            pairs = parse_query(content)
        except ValueError:
            self.data.raw_fallback = True
            return

        store = self.data.map_store
        for key, form_value in pairs:
            if key in store:
                previous = store[key]
                if isinstance(previous, list):
                    store[key] = [*previous, form_value]
                elif isinstance(previous, str):
                    store[key] = [previous, form_value]
                else:
                    store[key] = [form_value]
            else:
                store[key] = form_value
        if self._on_form is not None:
            self._on_form()

    def _ingest_record(self, record: Any) -> None:
        try:
            decoded = record_to_object(record)
        except (TypeError, ValueError) as e:
            self.errors.append(with_cause(DecodeError(f"cannot serialize {type(record).__name__}: {e}"), e))
            return
        if not isinstance(decoded, dict):
            self.errors.append(DecodeError(f"{type(record).__name__} did not serialize to a JSON object"))
            return
        self.data.map_store.update(decoded)

    # -------------------------------------------------------------------------
    # Query parameters
    # -------------------------------------------------------------------------

    def ingest_query(self, value: Value | Any) -> None:
        """Ingest query parameters from a string, record or mapping."""
        value = wrap(value)
        if isinstance(value, Text):
            self._ingest_query_string(value.value)
        elif isinstance(value, (Record, Mapping)):
            self._ingest_query_record(value.value)
        elif isinstance(value, Optional) and value.value is not None:
            self.ingest_query(wrap(value.value))

    def _ingest_query_string(self, content: str) -> None:
        try:
            decoded = decode_json(content)
        except ValueError:
            decoded = None
        if isinstance(decoded, dict) and all(isinstance(v, str) for v in decoded.values()):
            self.query.extend(decoded.items())
            return

        try:
            self.query.extend(parse_query(content))
        except ValueError as e:
            self.errors.append(with_cause(DecodeError(f"invalid query string {content!r}: {e}"), e))

    def _ingest_query_record(self, record: Any) -> None:
        try:
            decoded = _record_to_raw_object(record)
        except (TypeError, ValueError) as e:
            self.errors.append(with_cause(DecodeError(f"cannot serialize {type(record).__name__}: {e}"), e))
            return
        if not isinstance(decoded, dict):
            self.errors.append(DecodeError(f"{type(record).__name__} did not serialize to a JSON object"))
            return
        for key, member in decoded.items():
            text = _query_value(member)
            if text is not None:
                self.query.append((str(key), text))

    # -------------------------------------------------------------------------
    # Headers
    # -------------------------------------------------------------------------

    def ingest_headers(self, value: Value | Any) -> None:
        """Append one header per key of a record or mapping.

        Values that cannot be coerced to a string (lists, objects) are
        skipped without recording an error.
        """
        value = wrap(value)
        if not isinstance(value, (Record, Mapping)):
            return
        try:
            decoded = record_to_object(value.value)
        except (TypeError, ValueError) as e:
            self.errors.append(with_cause(DecodeError(f"cannot serialize headers: {e}"), e))
            return
        if not isinstance(decoded, dict):
            self.errors.append(DecodeError("headers did not serialize to a JSON object"))
            return
        for key, member in decoded.items():
            text = _coerce_header(member)
            if text is None:
                logger.debug("Skipping header %r: value is not a scalar", key)
                continue
            self.headers.append((str(key), text))


def _record_to_raw_object(record: Any) -> Any:
    """Like ``record_to_object`` but keeps datetimes as datetimes for mappings.

    Query stringification formats timestamps as RFC 3339, so plain mappings
    are not round-tripped through JSON text (which would turn them into
    strings first).
    """
    if isinstance(record, dict):
        return dict(record)
    return record_to_object(record)


def _query_value(member: Any) -> str | None:
    if isinstance(member, str):
        return member
    if isinstance(member, bool):
        return dump_json(member)
    if isinstance(member, float):
        return format_float(member)
    if isinstance(member, datetime):
        return _rfc3339(member)
    if isinstance(member, Decimal):
        return format_decimal(member)
    if isinstance(member, int):
        return str(member)
    try:
        return dump_json(member)
    except (TypeError, ValueError):
        return None


def _rfc3339(moment: datetime) -> str:
    text = moment.isoformat(timespec="seconds")
    if moment.tzinfo is not None and text.endswith("+00:00"):
        text = text[:-6] + "Z"
    return text


def _coerce_header(member: Any) -> str | None:
    if member is None:
        return ""
    if isinstance(member, str):
        return member
    if isinstance(member, bool):
        return format_bool(member)
    if isinstance(member, Decimal):
        return format_decimal(member)
    if isinstance(member, (int, float)):
        return str(member) if isinstance(member, int) else format_float(member)
    return None
