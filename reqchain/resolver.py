"""Type Resolver - Chooses the single target encoding for a request.

Precedence: an explicitly forced type wins, then a Content-Type header that
matches a registry value exactly, then whatever default the builder already
holds (JSON for most verbs, unset for a bare GET, form after a query-string
payload).
"""

from __future__ import annotations

from reqchain.models import TargetEncoding

MIME_JSON = "application/json"
MIME_XML = "application/xml"
MIME_TEXT = "text/plain"
MIME_HTML = "text/html"
MIME_FORM = "application/x-www-form-urlencoded"
MIME_MULTIPART = "multipart/form-data"

# Short type names accepted by RequestBuilder.type() -> canonical content type
TYPES: dict[str, str] = {
    "json": MIME_JSON,
    "xml": MIME_XML,
    "text": MIME_TEXT,
    "html": MIME_HTML,
    "urlencoded": MIME_FORM,
    "form": MIME_FORM,
    "form-data": MIME_FORM,
    "multipart": MIME_MULTIPART,
}

_ENCODING_BY_NAME: dict[str, TargetEncoding] = {
    "json": TargetEncoding.JSON,
    "xml": TargetEncoding.XML,
    "text": TargetEncoding.TEXT,
    "html": TargetEncoding.HTML,
    "urlencoded": TargetEncoding.FORM,
    "form": TargetEncoding.FORM,
    "form-data": TargetEncoding.FORM,
    "multipart": TargetEncoding.MULTIPART,
}

_ENCODING_BY_MIME: dict[str, TargetEncoding] = {
    TYPES[name]: encoding for name, encoding in _ENCODING_BY_NAME.items()
}


def is_known_type(name: str) -> bool:
    return name in TYPES


def resolve(
    forced: str | None,
    content_type_header: str | None,
    previous: TargetEncoding,
) -> TargetEncoding:
    """Resolve the target encoding.

    Args:
        forced: Type name set via RequestBuilder.type(), or None.
        content_type_header: First Content-Type header value, or None.
        previous: The builder's current default encoding.

    Returns:
        The encoding the BodyEncoder must use.
    """
    if forced and forced in _ENCODING_BY_NAME:
        return _ENCODING_BY_NAME[forced]
    if content_type_header and content_type_header in _ENCODING_BY_MIME:
        return _ENCODING_BY_MIME[content_type_header]
    return previous
