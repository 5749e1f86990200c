"""Request Builder - Fluent accumulation, assembly and retried execution.

A RequestBuilder collects data across chained calls, resolves it into one
wire encoding when the request is built, and executes it through a
Transport under the builder's retry policy.

Usage:
    outcome = (
        RequestBuilder()
        .post("https://example.com/recipes")
        .send('{"name": "egg benedict"}')
        .send("category=brunch")
        .retry(3, 0.5, 500, 503)
        .end()
    )
    if outcome.errors:
        ...

Faults found while accumulating are recorded in ``builder.errors`` and never
break the chain. ``end*`` returns them (and never raises); ``build()`` raises
the first one.
"""

from __future__ import annotations

import logging
import time
from datetime import timedelta
from http import HTTPStatus
from typing import Any, Callable

import httpx
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from reqchain import encoder, resolver
from reqchain.accumulator import DataAccumulator
from reqchain.config_loader import default_config
from reqchain.context import RequestContext
from reqchain.debug import render_request, render_response, to_curl
from reqchain.errors import (
    FileReadError,
    NetworkError,
    ReqchainError,
    ResponseDecodeError,
    ValidationError,
    with_cause,
)
from reqchain.files import DEFAULT_FIELD_NAME, load_attachment
from reqchain.models import (
    ClientConfig,
    Cookie,
    FileAttachment,
    Outcome,
    RequestDescriptor,
    RetryPolicy,
    Stats,
    TargetEncoding,
)
from reqchain.retry import AttemptResult, RetryController
from reqchain.transport import HttpxTransport, Transport

DEBUG_LOGGER_NAME = "reqchain.debug"

GET = "GET"
POST = "POST"
PUT = "PUT"
PATCH = "PATCH"
DELETE = "DELETE"
HEAD = "HEAD"
OPTIONS = "OPTIONS"


def _media_type(content_type: str) -> str:
    """Strip parameters: 'application/json; charset=utf-8' -> 'application/json'."""
    return content_type.split(";", 1)[0].strip()


class RequestBuilder:
    """Accumulates one request at a time and executes it.

    A builder is not safe for concurrent use. Use ``clone()`` to get an
    independent builder that shares this one's transport (connection pool).

    Args:
        config: Client configuration. Defaults honour REQCHAIN_DEBUG=1.
        transport: Execution capability. When omitted, an HttpxTransport is
                   created from *config* on first use and owned by this builder.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        transport: Transport | None = None,
    ) -> None:
        self._config = config or default_config()
        self._transport = transport
        # True when the transport was built from self._config (and must be
        # rebuilt when transport settings change)
        self._transport_from_config = transport is None
        # Set while this builder holds a reference on a transport it (or the
        # builder it was cloned from) created
        self._owned_transport: HttpxTransport | None = None
        self._logger = logging.getLogger(DEBUG_LOGGER_NAME)

        self.url = ""
        self.method = ""
        self.errors: list[ReqchainError] = []
        self.keep_state = False
        self.retry_policy = RetryPolicy()
        self.stats = Stats()

        self._reset()

        if self._config.retry is not None:
            retry_config = self._config.retry
            self.retry(retry_config.max_attempts, retry_config.delay, *retry_config.statuses)

    def _reset(self) -> None:
        """Drop all per-request state."""
        self.errors.clear()
        self._accumulator = DataAccumulator(self.errors, on_form=self._prefer_form)
        self.target = TargetEncoding.JSON
        self.forced_type: str | None = None
        self.files: list[FileAttachment] = []
        self.cookies: list[Cookie] = []
        self.basic_auth: tuple[str, str] = ("", "")
        self.request_context: RequestContext | None = None
        self.stats = Stats()

        for name, value in self._config.headers.items():
            self._accumulator.headers.append((name, value))
        if self._config.user_agent:
            self._accumulator.headers.append(("User-Agent", self._config.user_agent))

    def _prefer_form(self) -> None:
        self.target = TargetEncoding.FORM

    # -------------------------------------------------------------------------
    # Read-only views
    # -------------------------------------------------------------------------

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def data(self):
        """The accumulated (not yet encoded) body data."""
        return self._accumulator.data

    @property
    def headers(self) -> list[tuple[str, str]]:
        return self._accumulator.headers

    @property
    def query_params(self) -> list[tuple[str, str]]:
        return self._accumulator.query

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def __enter__(self) -> RequestBuilder:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.close()

    def close(self) -> None:
        """Release this builder's hold on a transport it created.

        A transport shared with clones is closed when the last of them
        closes. A transport passed to the constructor is left open.
        """
        if self._owned_transport is not None:
            self._owned_transport.release()
            self._owned_transport = None
            self._transport = None

    def clone(self) -> RequestBuilder:
        """Return an independent builder sharing this builder's transport.

        All accumulated state is copied so the two builders never observe
        each other's mutations. The clone keeps its state across verb calls
        (keep_state is forced on).
        """
        self._ensure_transport()
        twin = RequestBuilder(config=self._config, transport=self._transport)
        twin._transport_from_config = self._transport_from_config
        if self._owned_transport is not None:
            twin._owned_transport = self._owned_transport.acquire()
        twin._logger = self._logger

        twin.url = self.url
        twin.method = self.method
        twin.errors[:] = self.errors
        twin._accumulator.data = self._accumulator.data.clone()
        twin._accumulator.headers[:] = self._accumulator.headers
        twin._accumulator.query[:] = self._accumulator.query
        twin.target = self.target
        twin.forced_type = self.forced_type
        twin.files = list(self.files)
        twin.cookies = list(self.cookies)
        twin.basic_auth = self.basic_auth
        twin.request_context = self.request_context
        twin.retry_policy = self.retry_policy.model_copy(deep=True)
        twin.stats = self.stats.model_copy()
        twin.keep_state = True
        return twin

    def set_keep_state(self, enable: bool) -> RequestBuilder:
        """Keep accumulated data when a new verb (get/post/...) is called."""
        self.keep_state = enable
        return self

    def set_debug(self, enable: bool) -> RequestBuilder:
        self._config = self._config.model_copy(update={"debug": enable})
        return self

    def set_curl_command(self, enable: bool) -> RequestBuilder:
        self._config = self._config.model_copy(update={"curl_command": enable})
        return self

    def set_logger(self, logger: logging.Logger) -> RequestBuilder:
        self._logger = logger
        return self

    # -------------------------------------------------------------------------
    # Verbs
    # -------------------------------------------------------------------------

    def _start(self, method: str, url: str) -> RequestBuilder:
        if not self.keep_state:
            self._reset()
        self.method = method
        self.url = url
        self.errors.clear()
        return self

    def get(self, url: str) -> RequestBuilder:
        self._start(GET, url)
        self.target = TargetEncoding.UNSET
        return self

    def post(self, url: str) -> RequestBuilder:
        return self._start(POST, url)

    def put(self, url: str) -> RequestBuilder:
        return self._start(PUT, url)

    def patch(self, url: str) -> RequestBuilder:
        return self._start(PATCH, url)

    def delete(self, url: str) -> RequestBuilder:
        return self._start(DELETE, url)

    def head(self, url: str) -> RequestBuilder:
        return self._start(HEAD, url)

    def options(self, url: str) -> RequestBuilder:
        return self._start(OPTIONS, url)

    def custom_method(self, method: str, url: str) -> RequestBuilder:
        """Start a request with any method; known verbs get their defaults."""
        verbs: dict[str, Callable[[str], RequestBuilder]] = {
            GET: self.get,
            POST: self.post,
            PUT: self.put,
            PATCH: self.patch,
            DELETE: self.delete,
            HEAD: self.head,
            OPTIONS: self.options,
        }
        if method in verbs:
            return verbs[method](url)
        return self._start(method, url)

    # -------------------------------------------------------------------------
    # Headers, auth, cookies, context
    # -------------------------------------------------------------------------

    def set(self, name: str, value: str) -> RequestBuilder:
        """Set a header, replacing every existing value of that header."""
        lower = name.lower()
        self.headers[:] = [(k, v) for k, v in self.headers if k.lower() != lower]
        self.headers.append((name, value))
        return self

    def append_header(self, name: str, value: str) -> RequestBuilder:
        """Add a header value, keeping existing values of that header."""
        self.headers.append((name, value))
        return self

    def set_headers(self, headers: Any) -> RequestBuilder:
        """Append one header per key of a mapping or record."""
        self._accumulator.ingest_headers(headers)
        return self

    def user_agent(self, ua: str) -> RequestBuilder:
        return self.append_header("User-Agent", ua)

    def set_basic_auth(self, username: str, password: str) -> RequestBuilder:
        self.basic_auth = (username, password)
        return self

    def add_cookie(self, cookie: Cookie) -> RequestBuilder:
        self.cookies.append(cookie)
        return self

    def add_cookies(self, cookies: list[Cookie]) -> RequestBuilder:
        self.cookies.extend(cookies)
        return self

    def context(self, ctx: RequestContext | None) -> RequestBuilder:
        self.request_context = ctx
        return self

    # -------------------------------------------------------------------------
    # Body data and query
    # -------------------------------------------------------------------------

    def type(self, type_name: str) -> RequestBuilder:
        """Force the body encoding by short name (json, form, multipart, ...)."""
        if resolver.is_known_type(type_name):
            self.forced_type = type_name
        else:
            self.errors.append(ValidationError(f'type func: incorrect type "{type_name}"'))
        return self

    def send(self, content: Any) -> RequestBuilder:
        """Add body data: JSON or query strings, scalars, mappings, records, lists."""
        self._accumulator.ingest(content)
        return self

    def send_string(self, content: str) -> RequestBuilder:
        self._accumulator.ingest_string(content)
        return self

    def query(self, content: Any) -> RequestBuilder:
        """Add query parameters from a JSON or query string, mapping or record."""
        self._accumulator.ingest_query(content)
        return self

    def param(self, key: str, value: str) -> RequestBuilder:
        """Add one query parameter verbatim (';' is not treated as a separator)."""
        self.query_params.append((key, value))
        return self

    def send_file(
        self,
        source: Any,
        filename: str = "",
        field_name: str = DEFAULT_FIELD_NAME,
        skip_numbering: bool = False,
        mime_type: str | None = None,
    ) -> RequestBuilder:
        """Register a file for a multipart body.

        Args:
            source: Path, raw bytes, or an open binary handle.
            filename: Defaults to the path/handle basename, or "filename" for bytes.
            field_name: Defaults to file1, file2, ... in registration order.
            skip_numbering: Send the field name "file" literally.
            mime_type: Part Content-Type, default application/octet-stream.
        """
        try:
            attachment = load_attachment(
                source,
                filename=filename,
                field_name=field_name,
                skip_numbering=skip_numbering,
                mime_type=mime_type,
                existing=len(self.files),
            )
        except (ValidationError, FileReadError) as e:
            self.errors.append(e)
            return self
        if attachment is not None:
            self.files.append(attachment)
        return self

    # -------------------------------------------------------------------------
    # Retry and transport settings
    # -------------------------------------------------------------------------

    def retry(self, max_attempts: int, delay: float | timedelta, *statuses: int) -> RequestBuilder:
        """Retry up to *max_attempts* times, sleeping *delay* between attempts.

        A request is retried when it fails in transport or its status is one
        of *statuses*. Unknown status codes are recorded as errors.
        """
        for code in statuses:
            try:
                HTTPStatus(code)
            except ValueError:
                self.errors.append(ValidationError(f"status code '{code}' is not a known HTTP status"))

        if isinstance(delay, timedelta):
            delay = delay.total_seconds()
        self.retry_policy = RetryPolicy(
            retryable_statuses=set(statuses),
            delay=delay,
            max_attempts=max_attempts,
            enabled=True,
        )
        return self

    def _modify_config(self, **update: Any) -> None:
        self._config = self._config.model_copy(update=update)
        if self._transport is None or not self._transport_from_config:
            return
        # Clones may still hold the old transport; only drop this builder's hold
        if self._owned_transport is not None:
            self._owned_transport.release()
            self._owned_transport = None
        self._transport = None

    def timeout(self, seconds: float | None) -> RequestBuilder:
        self._modify_config(timeout=seconds)
        return self

    def timeouts(
        self,
        connect: float | None = None,
        read: float | None = None,
        write: float | None = None,
        pool: float | None = None,
    ) -> RequestBuilder:
        """Per-phase timeouts in seconds; a phase left as None uses timeout()."""
        self._modify_config(
            connect_timeout=connect,
            read_timeout=read,
            write_timeout=write,
            pool_timeout=pool,
        )
        return self

    def proxy(self, proxy_url: str) -> RequestBuilder:
        """Route requests through *proxy_url*; an empty string disables proxying."""
        if proxy_url:
            try:
                httpx.URL(proxy_url)
            except httpx.InvalidURL as e:
                self.errors.append(with_cause(ValidationError(f"invalid proxy url {proxy_url!r}: {e}"), e))
                return self
        self._modify_config(proxy=proxy_url or None)
        return self

    def tls(
        self,
        verify_ssl: bool = True,
        ca_bundle: str | None = None,
        cert: str | None = None,
        key: str | None = None,
        key_password: str | None = None,
        ciphers: str | None = None,
    ) -> RequestBuilder:
        self._modify_config(
            verify_ssl=verify_ssl,
            ca_bundle=ca_bundle,
            cert=cert,
            key=key,
            key_password=key_password,
            ciphers=ciphers,
        )
        return self

    def redirect_policy(
        self,
        follow: bool = True,
        max_redirects: int = 10,
        policy: Callable[[httpx.Request, list[httpx.Request]], Any] | None = None,
    ) -> RequestBuilder:
        """Configure redirect handling.

        Args:
            follow: Follow 3xx responses at all.
            max_redirects: Redirects followed before the request fails.
            policy: Called as ``policy(next_request, via)`` before each
                    redirect, *via* holding the requests made so far. Return
                    False to stop and keep the redirect response; raise to
                    fail the request with a NetworkError.
        """
        self._modify_config(follow_redirects=follow, max_redirects=max_redirects, redirect_policy=policy)
        return self

    def disable_redirects(self) -> RequestBuilder:
        return self.redirect_policy(follow=False)

    def keep_alive(self, enable: bool) -> RequestBuilder:
        self._modify_config(keep_alive=enable)
        return self

    def disable_compression(self) -> RequestBuilder:
        """Send Accept-Encoding: identity instead of asking for gzip/deflate."""
        self._config = self._config.model_copy(update={"compression": False})
        return self

    def _ensure_transport(self) -> Transport | None:
        if self._transport is None:
            try:
                self._owned_transport = HttpxTransport(self._config)
            except ValidationError as e:
                self.errors.append(e)
                return None
            self._transport = self._owned_transport
            self._transport_from_config = True
        return self._transport

    # -------------------------------------------------------------------------
    # Assembly
    # -------------------------------------------------------------------------

    def _header(self, name: str) -> str | None:
        lower = name.lower()
        for key, value in self.headers:
            if key.lower() == lower:
                return value
        return None

    def build(self) -> RequestDescriptor:
        """Resolve, encode and assemble the request.

        Returns:
            The immutable RequestDescriptor.

        Raises:
            ReqchainError: The first recorded accumulation error, a missing
                method or bad URL (ValidationError), or an unencodable target
                (EncodingError).
        """
        if self.errors:
            raise self.errors[0]
        if not self.method:
            raise ValidationError("no method specified")

        self.target = resolver.resolve(self.forced_type, self._header("Content-Type"), self.target)

        data = self._accumulator.data
        # Map-shaped and array-shaped data cannot form one JSON value
        if data.is_mixed:
            data.raw_fallback = True

        body = encoder.encode(self.target, data, self.headers, self.files)

        try:
            url = httpx.URL(self.url)
            if self.query_params:
                params = httpx.QueryParams(list(url.params.multi_items()) + list(self.query_params))
                url = url.copy_with(params=params)
        except httpx.InvalidURL as e:
            raise ValidationError(f"invalid url {self.url!r}: {e}") from e

        headers: list[tuple[str, str]] = []
        host: str | None = None
        for name, value in self.headers:
            if name.lower() == "host":
                if host is None:
                    host = value
                continue
            headers.append((name, value))

        content_type = body.content_type if body is not None else None
        if content_type and self._header("Content-Type") is None:
            headers.append(("Content-Type", content_type))
        if self._header("Accept-Encoding") is None:
            headers.append(("Accept-Encoding", "gzip, deflate" if self._config.compression else "identity"))

        username, password = self.basic_auth
        return RequestDescriptor(
            method=self.method,
            url=str(url),
            headers=tuple(headers),
            host=host,
            body=body.content if body is not None else None,
            content_type=content_type,
            basic_auth=(username, password) if (username or password) else None,
            cookies=tuple(self.cookies),
            context=self.request_context,
        )

    def as_curl_command(self) -> str:
        """Render the request as a runnable curl command line."""
        return to_curl(self.build())

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def _attempt(self, transport: Transport, descriptor: RequestDescriptor) -> AttemptResult:
        self.stats = Stats(request_bytes=len(descriptor.body or b""))
        start_time = time.perf_counter()
        try:
            response = transport.send(descriptor)
        except NetworkError as e:
            return AttemptResult(response=None, errors=[e])
        self.stats.request_duration = time.perf_counter() - start_time

        if self._config.debug:
            self._logger.info("HTTP Response: %s", render_response(response))

        body = response.content
        self.stats.response_bytes = len(body)
        return AttemptResult(response=response, body=body)

    def end_bytes(self, callback: Callable[[Outcome], None] | None = None) -> Outcome:
        """Build and execute the request under the retry policy.

        Never raises for request faults: accumulation errors short-circuit
        before any network call, and transport errors are returned after the
        retry policy is exhausted.
        """
        outcome = self._execute()
        if callback is not None:
            callback(outcome)
        return outcome

    def end(self, callback: Callable[[Outcome], None] | None = None) -> Outcome:
        """Same as end_bytes; use ``outcome.text`` for the decoded body."""
        return self.end_bytes(callback)

    def end_struct(
        self,
        target_type: Any,
        callback: Callable[[Outcome], None] | None = None,
    ) -> Outcome:
        """Execute and decode a JSON response body into *target_type*.

        *target_type* is anything pydantic's TypeAdapter accepts (a model,
        ``dict[str, Any]``, ``list[int]``, ...). On a decode failure the
        response and body are kept and a ResponseDecodeError is added.
        """
        outcome = self._execute()
        if outcome.errors or outcome.response is None:
            return outcome

        try:
            outcome.data = TypeAdapter(target_type).validate_json(outcome.body)
        except PydanticValidationError as e:
            media_type = _media_type(outcome.response.headers.get("content-type", ""))
            if media_type != resolver.MIME_JSON:
                message = (
                    f"response content-type is {media_type or 'unset'} not application/json, "
                    f"so can't be json decoded: {e}"
                )
            else:
                message = f"response body json decode fail: {e}"
            outcome.errors.append(with_cause(ResponseDecodeError(message), e))
            return outcome

        if callback is not None:
            callback(outcome)
        return outcome

    def _execute(self) -> Outcome:
        if self.errors:
            return Outcome(response=None, errors=list(self.errors))

        try:
            descriptor = self.build()
        except ReqchainError as e:
            self.errors.append(e)
            return Outcome(response=None, errors=list(self.errors))

        transport = self._ensure_transport()
        if transport is None:
            return Outcome(response=None, errors=list(self.errors))

        if self._config.debug:
            self._logger.info("HTTP Request: %s", render_request(descriptor))
        if self._config.curl_command:
            self._logger.info("CURL command line: %s", to_curl(descriptor))

        policy = self.retry_policy.model_copy(update={"attempt_count": 0})
        controller = RetryController(policy)
        result = controller.run(lambda: self._attempt(transport, descriptor))
        self.retry_policy = policy

        return Outcome(response=result.response, body=result.body, errors=list(result.errors))


def new(config: ClientConfig | None = None, transport: Transport | None = None) -> RequestBuilder:
    """Convenience constructor mirroring ``RequestBuilder(...)``."""
    return RequestBuilder(config=config, transport=transport)


__all__ = ["RequestBuilder", "new"]
