"""Per-request cancellation and tracing handle."""

from __future__ import annotations

import threading
from typing import Any, Callable

import httpx


class RequestContext:
    """Deadline, trace hook and cancellation flag attached to a request.

    The timeout and trace hook are handed to httpx as request extensions.
    ``cancel()`` makes the next attempt fail before any I/O; it does not
    interrupt an attempt already on the wire or a retry delay.

    Usage:
        ctx = RequestContext(timeout=5.0)
        builder.get(url).context(ctx).end()
    """

    def __init__(
        self,
        timeout: float | None = None,
        trace: Callable[[str, dict[str, Any]], None] | None = None,
    ) -> None:
        self.timeout = timeout
        self.trace = trace
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def extensions(self) -> dict[str, Any]:
        """httpx request extensions for this context."""
        extensions: dict[str, Any] = {}
        if self.timeout is not None:
            extensions["timeout"] = httpx.Timeout(self.timeout).as_dict()
        if self.trace is not None:
            extensions["trace"] = self.trace
        return extensions
