"""Body Encoder - Serializes accumulated data under one target encoding.

A body is produced only when it has meaningful content; every branch that
ends up empty returns None so the request carries neither a body nor a
Content-Type.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable
from urllib.parse import urlencode

from urllib3.fields import RequestField
from urllib3.filepost import encode_multipart_formdata

from reqchain.accumulator import AccumulatedData
from reqchain.errors import EncodingError
from reqchain.json_codec import dump_json
from reqchain.models import FileAttachment, TargetEncoding
from reqchain.resolver import MIME_FORM, MIME_JSON, MIME_TEXT, MIME_XML
from reqchain.values import format_bool, format_decimal, format_float

# Request headers that rename the multipart fields carrying raw and array data
DATA_FIELDNAME_HEADER = "data_fieldname"
JSON_FIELDNAME_HEADER = "json_fieldname"
DEFAULT_FIELDNAME = "data"


@dataclass(frozen=True)
class EncodedBody:
    content: bytes
    content_type: str


def _stringify_number(value: Any) -> str:
    if isinstance(value, float):
        return format_float(value)
    if isinstance(value, Decimal):
        return format_decimal(value)
    return str(value)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _element_rule(first: Any) -> Callable[[Any], str] | None:
    """Pick the stringification rule for a list from its first element."""
    if isinstance(first, str):
        return str
    if isinstance(first, bool):
        return lambda element: format_bool(bool(element))
    if _is_number(first):
        return _stringify_number
    return None


def flatten(map_store: dict[str, Any]) -> list[tuple[str, str]]:
    """Flatten a map of scalars and lists into repeated key/value pairs.

    Lists emit one pair per element; the first element's kind decides how
    every element is stringified, and lists whose first element is not a
    string, bool or number are skipped. None and nested objects are skipped.
    """
    pairs: list[tuple[str, str]] = []
    for key, value in map_store.items():
        if isinstance(value, str):
            pairs.append((key, value))
        elif isinstance(value, bool):
            pairs.append((key, format_bool(value)))
        elif _is_number(value):
            pairs.append((key, _stringify_number(value)))
        elif isinstance(value, (list, tuple)):
            if not value:
                continue
            rule = _element_rule(value[0])
            if rule is None:
                continue
            pairs.extend((key, rule(element)) for element in value)
    return pairs


def _dump_body(value: Any) -> str:
    """Canonical JSON for a body or body part.

    Raises:
        EncodingError: If an accumulated value has no JSON form (sets, NaN, ...).
    """
    try:
        return dump_json(value)
    except (TypeError, ValueError) as e:
        raise EncodingError(f"accumulated data cannot be encoded as JSON: {e}") from e


def _encode_form(pairs: list[tuple[str, str]]) -> str:
    # Keys sorted, values for one key kept in order
    ordered = sorted(pairs, key=lambda pair: pair[0])
    return urlencode(ordered)


def _header(headers: list[tuple[str, str]], name: str) -> str:
    lower = name.lower()
    for key, value in headers:
        if key.lower() == lower:
            return value
    return ""


def _encode_multipart(
    data: AccumulatedData,
    headers: list[tuple[str, str]],
    files: list[FileAttachment],
) -> EncodedBody | None:
    parts: list[RequestField] = []

    if data.raw_fallback:
        field = RequestField(
            name=_header(headers, DATA_FIELDNAME_HEADER) or DEFAULT_FIELDNAME,
            data=data.raw_buffer,
        )
        field.make_multipart()
        parts.append(field)

    for key, value in flatten(data.map_store):
        field = RequestField(name=key, data=value)
        field.make_multipart()
        parts.append(field)

    if data.sequence_store:
        field = RequestField(
            name=_header(headers, JSON_FIELDNAME_HEADER) or DEFAULT_FIELDNAME,
            data=_dump_body(data.sequence_store),
        )
        field.make_multipart(content_type=MIME_JSON)
        parts.append(field)

    for attachment in files:
        field = RequestField(
            name=attachment.field_name,
            data=attachment.data,
            filename=attachment.filename,
        )
        field.make_multipart(content_type=attachment.mime_type)
        parts.append(field)

    if not parts:
        return None
    # The boundary-bearing content type exists only once every part is written
    content, content_type = encode_multipart_formdata(parts)
    return EncodedBody(content, content_type)


def encode(
    encoding: TargetEncoding,
    data: AccumulatedData,
    headers: list[tuple[str, str]] | None = None,
    files: list[FileAttachment] | None = None,
) -> EncodedBody | None:
    """Encode accumulated data as *encoding*.

    Args:
        encoding: Resolved target encoding.
        data: Accumulated body data.
        headers: Request headers (multipart field-name overrides are read here).
        files: Registered file attachments (multipart only).

    Returns:
        EncodedBody, or None when there is no body to send.

    Raises:
        EncodingError: If *encoding* has no encoder (e.g. html), or the
            accumulated data has no JSON form.
    """
    headers = headers or []
    files = files or []

    if encoding == TargetEncoding.JSON:
        if data.raw_fallback:
            text = data.raw_buffer
        elif data.map_store:
            text = _dump_body(data.map_store)
        elif data.sequence_store:
            text = _dump_body(data.sequence_store)
        else:
            text = ""
        return EncodedBody(text.encode("utf-8"), MIME_JSON) if text else None

    if encoding == TargetEncoding.FORM:
        if data.raw_fallback or data.sequence_store:
            text = data.raw_buffer
        else:
            text = _encode_form(flatten(data.map_store))
        return EncodedBody(text.encode("utf-8"), MIME_FORM) if text else None

    if encoding == TargetEncoding.TEXT:
        return EncodedBody(data.raw_buffer.encode("utf-8"), MIME_TEXT) if data.raw_buffer else None

    if encoding == TargetEncoding.XML:
        return EncodedBody(data.raw_buffer.encode("utf-8"), MIME_XML) if data.raw_buffer else None

    if encoding == TargetEncoding.MULTIPART:
        return _encode_multipart(data, headers, files)

    if encoding == TargetEncoding.UNSET:
        return None

    raise EncodingError(f"target encoding '{encoding.value}' could not be determined")
