"""Internal data models for reqchain.

All models use Pydantic v2. Descriptors that leave the builder (files,
requests) are frozen; the retry policy mutates its attempt counter during a
retry loop and is copied whenever a builder is cloned.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable

from pydantic import BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:
    import httpx

    from reqchain.errors import ReqchainError


# =============================================================================
# Encoding Models
# =============================================================================


class TargetEncoding(str, Enum):
    """The single wire format chosen for a request body."""

    JSON = "json"
    FORM = "form"
    MULTIPART = "multipart"
    TEXT = "text"
    XML = "xml"
    HTML = "html"  # Resolvable from the type registry, but has no encoder
    UNSET = ""


class FileAttachment(BaseModel):
    """One file registered for a multipart body."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    filename: str = Field(description="Filename sent in Content-Disposition")
    field_name: str = Field(description="Form field name, e.g. file1")
    mime_type: str = Field(default="application/octet-stream", description="Part Content-Type")
    data: bytes = Field(description="File contents")


class Cookie(BaseModel):
    """A cookie attached verbatim to the outgoing request."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    value: str


# =============================================================================
# Retry Models
# =============================================================================


class RetryPolicy(BaseModel):
    """Bounded retry rule for one request.

    attempt_count is the only field that changes after the policy is set;
    it counts retries performed, not total attempts.
    """

    model_config = ConfigDict(extra="forbid")

    retryable_statuses: set[int] = Field(default_factory=set, description="Statuses that trigger a retry")
    delay: float = Field(default=0.0, ge=0.0, description="Seconds slept between attempts")
    max_attempts: int = Field(default=0, ge=0, description="Maximum number of retries")
    attempt_count: int = Field(default=0, ge=0, description="Retries performed so far")
    enabled: bool = Field(default=False, description="Whether retrying is active")


# =============================================================================
# Request / Response Models
# =============================================================================


class RequestDescriptor(BaseModel):
    """The terminal, execution-ready request. Immutable once built.

    Headers are ordered name/value pairs so repeated headers survive. A Host
    header supplied by the caller is carried in ``host`` rather than in the
    header list.
    """

    model_config = ConfigDict(extra="forbid", frozen=True, arbitrary_types_allowed=True)

    method: str = Field(description="HTTP method (GET, POST, etc.)")
    url: str = Field(description="Absolute URL including merged query")
    headers: tuple[tuple[str, str], ...] = Field(default=(), description="Header name/value pairs")
    host: str | None = Field(default=None, description="Routing host override")
    body: bytes | None = Field(default=None, description="Encoded body, None when there is no body")
    content_type: str | None = Field(default=None, description="Computed Content-Type of body")
    basic_auth: tuple[str, str] | None = Field(default=None, description="(username, password)")
    cookies: tuple[Cookie, ...] = Field(default=(), description="Cookies attached to the request")
    context: Any = Field(default=None, description="RequestContext for cancellation and tracing")

    def header(self, name: str) -> str | None:
        """Return the first value of a header, matched case-insensitively."""
        lower = name.lower()
        for key, value in self.headers:
            if key.lower() == lower:
                return value
        return None


class Stats(BaseModel):
    """Byte counts and elapsed time of the last attempt."""

    model_config = ConfigDict(extra="forbid")

    request_bytes: int = Field(default=0, description="Request body length")
    response_bytes: int = Field(default=0, description="Response body length")
    request_duration: float = Field(default=0.0, description="Elapsed seconds of the attempt")


@dataclass
class Outcome:
    """Result of ``RequestBuilder.end*``.

    Errors are returned, never raised. A response may be present together
    with errors (e.g. a response body that failed structured decoding).
    """

    response: httpx.Response | None
    body: bytes = b""
    errors: list[ReqchainError] = field(default_factory=list)
    data: Any = None

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    @property
    def ok(self) -> bool:
        return not self.errors and self.response is not None


# =============================================================================
# Runtime Configuration Models
# =============================================================================


class RetryConfig(BaseModel):
    """Default retry settings applied to every new request."""

    model_config = ConfigDict(extra="forbid")

    max_attempts: int = Field(ge=0, description="Maximum number of retries")
    delay: float = Field(default=0.0, ge=0.0, description="Seconds between attempts")
    statuses: list[int] = Field(default_factory=list, description="Retryable status codes")

    @field_validator("statuses", mode="before")
    @classmethod
    def split_status_list(cls, v: Any) -> Any:
        # "500,503" from an environment variable
        if isinstance(v, str):
            return [part.strip() for part in v.split(",") if part.strip()]
        return v


class ClientConfig(BaseModel):
    """Transport and behaviour settings shared by a builder and its clones."""

    model_config = ConfigDict(extra="forbid")

    timeout: float | None = Field(default=None, description="Overall timeout in seconds")
    connect_timeout: float | None = Field(default=None, description="Connect phase timeout; overrides timeout")
    read_timeout: float | None = Field(default=None, description="Read phase timeout; overrides timeout")
    write_timeout: float | None = Field(default=None, description="Write phase timeout; overrides timeout")
    pool_timeout: float | None = Field(default=None, description="Pool checkout timeout; overrides timeout")
    verify_ssl: bool = Field(default=True, description="Verify server certificates")
    ca_bundle: str | None = Field(default=None, description="Path to a CA bundle")
    cert: str | None = Field(default=None, description="Client certificate for mTLS")
    key: str | None = Field(default=None, description="Client key for mTLS")
    key_password: str | None = Field(default=None, description="Password for the client key")
    ciphers: str | None = Field(default=None, description="OpenSSL cipher string")
    proxy: str | None = Field(default=None, description="Proxy URL; None or empty disables")
    follow_redirects: bool = Field(default=True, description="Follow 3xx responses")
    max_redirects: int = Field(default=10, ge=0, description="Redirect limit")
    redirect_policy: Callable[..., Any] | None = Field(
        default=None,
        exclude=True,
        description="Called as policy(next_request, via) before each redirect",
    )
    compression: bool = Field(default=True, description="Ask for gzip/deflate responses")
    keep_alive: bool = Field(default=False, description="Reuse connections between requests")
    debug: bool = Field(default=False, description="Log request/response dumps")
    curl_command: bool = Field(default=False, description="Log each request as a curl command")
    headers: dict[str, str] = Field(default_factory=dict, description="Headers added to every request")
    user_agent: str | None = Field(default=None, description="User-Agent added to every request")
    retry: RetryConfig | None = Field(default=None, description="Default retry policy")

    @field_validator("proxy")
    @classmethod
    def empty_proxy_is_none(cls, v: str | None) -> str | None:
        return v or None
