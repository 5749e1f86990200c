"""Debug rendering of requests and responses.

These are pure functions over an already-built descriptor or a received
response; they never touch accumulation or encoding.
"""

from __future__ import annotations

import shlex

import httpx

from reqchain.models import RequestDescriptor
from reqchain.transport import to_httpx_request


def _body_text(content: bytes) -> str:
    return content.decode("utf-8", errors="replace")


def _raw_items(headers: httpx.Headers) -> list[tuple[str, str]]:
    # Original casing, unlike multi_items()
    return [(name.decode("latin-1"), value.decode("latin-1")) for name, value in headers.raw]


def _header_lines(headers: httpx.Headers) -> list[str]:
    return [f"{name}: {value}" for name, value in _raw_items(headers)]


def render_request(descriptor: RequestDescriptor) -> str:
    """Render a request the way it goes on the wire (HTTP/1.1 style)."""
    request = to_httpx_request(descriptor)
    target = request.url.raw_path.decode("ascii")
    lines = [f"{request.method} {target} HTTP/1.1"]
    lines.extend(_header_lines(request.headers))
    text = "\r\n".join(lines) + "\r\n\r\n"
    if descriptor.body:
        text += _body_text(descriptor.body)
    return text


def render_response(response: httpx.Response) -> str:
    lines = [f"{response.http_version} {response.status_code} {response.reason_phrase}"]
    lines.extend(_header_lines(response.headers))
    return "\r\n".join(lines) + "\r\n\r\n" + _body_text(response.content)


def to_curl(descriptor: RequestDescriptor) -> str:
    """Render a runnable curl command for the request."""
    request = to_httpx_request(descriptor)
    parts = ["curl", "-X", shlex.quote(request.method)]
    for name, value in _raw_items(request.headers):
        # httpx fills these in itself
        if name.lower() in ("content-length", "accept-encoding"):
            continue
        parts.extend(["-H", shlex.quote(f"{name}: {value}")])
    if descriptor.body:
        parts.extend(["-d", shlex.quote(_body_text(descriptor.body))])
    parts.append(shlex.quote(str(request.url)))
    return " ".join(parts)
