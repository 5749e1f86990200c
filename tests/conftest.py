"""Pytest configuration and fixtures for reqchain tests.

This file provides:
- RecordingHandler: httpx.MockTransport handler that records requests and
  replays queued responses
- make_builder: RequestBuilder wired to a mock transport
- Fixtures: recorder, builder
"""

from __future__ import annotations

from typing import Any, Callable

import httpx
import pytest

from reqchain.builder import RequestBuilder
from reqchain.models import ClientConfig
from reqchain.transport import HttpxTransport


class RecordingHandler:
    """Mock transport handler: records each request, answers from a queue.

    When the queue has one response left it is reused for every further
    request. Queue entries may be exceptions, which are raised instead.

    Usage:
        recorder = RecordingHandler([httpx.Response(500), httpx.Response(200)])
        builder = make_builder(recorder)
    """

    def __init__(self, responses: list[httpx.Response | Exception] | None = None) -> None:
        self.responses = list(responses or [httpx.Response(200)])
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        # Fresh copy so a reused response is never mutated twice
        return httpx.Response(
            item.status_code,
            headers=item.headers,
            content=item.content,
            request=request,
        )

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


def make_transport(
    handler: Callable[[httpx.Request], httpx.Response],
    config: ClientConfig | None = None,
) -> HttpxTransport:
    return HttpxTransport(config, client=httpx.Client(transport=httpx.MockTransport(handler)))


def make_builder(
    handler: Callable[[httpx.Request], httpx.Response] | None = None,
    config: ClientConfig | None = None,
) -> RequestBuilder:
    """Create a RequestBuilder whose requests never leave the process.

    Prefer this over constructing RequestBuilder directly in tests; the
    default config ignores REQCHAIN_DEBUG from the environment.
    """
    handler = handler or RecordingHandler()
    return RequestBuilder(config=config or ClientConfig(), transport=make_transport(handler))


def json_response(payload: Any, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, json=payload)


@pytest.fixture
def recorder() -> RecordingHandler:
    return RecordingHandler()


@pytest.fixture
def builder(recorder: RecordingHandler) -> RequestBuilder:
    return make_builder(recorder)
