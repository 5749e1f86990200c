"""Transport - The execution capability behind the retry loop.

HttpxTransport owns one httpx.Client (the connection pool). Builders and
their clones share a transport by reference and hold it through acquire()
and release(); the client is closed when the last holder releases it.
Changing transport settings on a clone gives that clone a new transport
instead of mutating the shared one.
"""

from __future__ import annotations

import base64
import ssl
from typing import Any, Callable, Protocol

import httpx

from reqchain.context import RequestContext
from reqchain.errors import NetworkError, ValidationError
from reqchain.models import ClientConfig, RequestDescriptor


class Transport(Protocol):
    """Anything that can execute a RequestDescriptor once."""

    def send(self, descriptor: RequestDescriptor) -> httpx.Response:
        """Send the request and return a fully read response.

        Raises:
            NetworkError: If the request fails in transport.
        """
        ...

    def close(self) -> None:
        ...


def build_client_kwargs(config: ClientConfig) -> dict[str, Any]:
    """Build kwargs for httpx.Client including TLS configuration.

    Args:
        config: Client configuration with optional TLS settings.

    Returns:
        Dictionary of kwargs for httpx.Client constructor.

    Raises:
        ValidationError: If the cipher string or certificate files are invalid.
    """
    kwargs: dict[str, Any] = {
        "timeout": build_timeout(config),
        "follow_redirects": config.follow_redirects,
        "max_redirects": config.max_redirects,
    }

    if config.proxy:
        kwargs["proxy"] = config.proxy

    # Without keep-alive every request opens a fresh connection
    if not config.keep_alive:
        kwargs["limits"] = httpx.Limits(max_keepalive_connections=0)

    needs_context = bool(config.ca_bundle or config.ciphers or (config.cert and config.key))
    if needs_context:
        ssl_context = ssl.create_default_context()
        try:
            if config.ca_bundle:
                ssl_context.load_verify_locations(config.ca_bundle)
            elif not config.verify_ssl:
                ssl_context.check_hostname = False
                ssl_context.verify_mode = ssl.CERT_NONE
            if config.ciphers:
                ssl_context.set_ciphers(config.ciphers)
            if config.cert and config.key:
                ssl_context.load_cert_chain(config.cert, config.key, config.key_password)
        except ssl.SSLError as e:
            raise ValidationError(f"Invalid TLS configuration: {e}") from e
        except OSError as e:
            raise ValidationError(f"Cannot load TLS files: {e}") from e
        kwargs["verify"] = ssl_context
    elif not config.verify_ssl:
        kwargs["verify"] = False
    # else: use httpx default (True)

    return kwargs


def build_timeout(config: ClientConfig) -> httpx.Timeout:
    """Overall timeout with per-phase overrides (connect, read, write, pool)."""
    phases = {
        "connect": config.connect_timeout,
        "read": config.read_timeout,
        "write": config.write_timeout,
        "pool": config.pool_timeout,
    }
    return httpx.Timeout(config.timeout, **{k: v for k, v in phases.items() if v is not None})


def basic_auth_header(username: str, password: str) -> str:
    token = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


def to_httpx_request(descriptor: RequestDescriptor) -> httpx.Request:
    """Convert a descriptor into an httpx.Request.

    The routing host, basic auth and cookies become header lines here.
    """
    headers: list[tuple[str, str]] = list(descriptor.headers)
    if descriptor.host:
        headers.insert(0, ("Host", descriptor.host))
    if descriptor.basic_auth is not None:
        headers.append(("Authorization", basic_auth_header(*descriptor.basic_auth)))
    if descriptor.cookies:
        headers.append(("Cookie", "; ".join(f"{c.name}={c.value}" for c in descriptor.cookies)))

    extensions: dict[str, Any] = {}
    if isinstance(descriptor.context, RequestContext):
        extensions = descriptor.context.extensions()

    return httpx.Request(
        method=descriptor.method,
        url=descriptor.url,
        headers=headers,
        content=descriptor.body,
        extensions=extensions,
    )


class HttpxTransport:
    """Executes descriptors with a shared httpx.Client.

    Usage:
        transport = HttpxTransport(ClientConfig(timeout=10.0))
        try:
            response = transport.send(descriptor)
        finally:
            transport.close()

    Pass ``client=`` to supply a preconfigured client, e.g. one built on
    ``httpx.MockTransport`` for tests.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self.config = config or ClientConfig()
        self._client = client or httpx.Client(**build_client_kwargs(self.config))
        self._holders = 1

    @property
    def client(self) -> httpx.Client:
        return self._client

    def __enter__(self) -> HttpxTransport:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.close()

    def acquire(self) -> HttpxTransport:
        """Register one more holder (e.g. a cloned builder)."""
        self._holders += 1
        return self

    def release(self) -> None:
        """Drop one holder; the last release closes the client."""
        self._holders -= 1
        if self._holders <= 0:
            self.close()

    def close(self) -> None:
        self._client.close()

    def send(self, descriptor: RequestDescriptor) -> httpx.Response:
        """Send one request and read its body completely.

        Raises:
            NetworkError: If the request is cancelled, fails in transport, or
                a redirect is rejected by the redirect policy.
        """
        context = descriptor.context
        if isinstance(context, RequestContext) and context.cancelled:
            raise NetworkError("request cancelled")

        try:
            request = to_httpx_request(descriptor)
            policy = self.config.redirect_policy
            if policy is not None and self.config.follow_redirects:
                return self._send_with_policy(request, policy)
            # Non-streaming send reads the body, so response.content is reusable
            return self._client.send(request)
        except httpx.TimeoutException as e:
            raise NetworkError(f"request timeout: {e}") from e
        except httpx.ConnectError as e:
            raise NetworkError(f"connection error: {e}") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"request error: {e}") from e
        except httpx.InvalidURL as e:
            raise NetworkError(f"invalid url: {e}") from e
        except UnicodeEncodeError as e:
            # httpx requires ASCII header values; fail loudly instead of corrupting
            raise NetworkError(
                f"encoding error: non-ASCII characters in request. "
                f"Character: {e.object[e.start:e.end]!r} at position {e.start}."
            ) from e

    def _send_with_policy(
        self,
        request: httpx.Request,
        policy: Callable[[httpx.Request, list[httpx.Request]], Any],
    ) -> httpx.Response:
        """Follow redirects one hop at a time, asking the policy before each.

        The policy is called as ``policy(next_request, via)`` where *via* lists
        the requests already made, oldest first. Returning False stops and
        hands back the redirect response itself; raising blocks the request.
        """
        history: list[httpx.Response] = []
        via = [request]
        response = self._client.send(request, follow_redirects=False)
        while response.next_request is not None:
            next_request = response.next_request
            if len(history) >= self.config.max_redirects:
                raise httpx.TooManyRedirects("Exceeded maximum allowed redirects.", request=next_request)
            try:
                allowed = policy(next_request, list(via))
            except Exception as e:
                raise NetworkError(f"redirect blocked: {e}") from e
            if allowed is False:
                break
            history.append(response)
            via.append(next_request)
            response = self._client.send(next_request, follow_redirects=False)
            response.history = list(history)
        return response
