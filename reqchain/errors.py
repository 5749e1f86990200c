"""Error taxonomy for reqchain.

Accumulation-phase errors are appended to the builder's error list rather
than raised, so the fluent chain never breaks. They are still exceptions so
callers can re-raise them and so causes chain naturally.
"""

from __future__ import annotations


class ReqchainError(Exception):
    """Base class for reqchain errors."""


class ValidationError(ReqchainError):
    """Raised for invalid caller input (unknown type name, status code, mime type)."""


class EncodingError(ReqchainError):
    """Raised when the resolved target encoding has no body encoder."""


class FileReadError(ReqchainError):
    """Raised when a file source cannot be opened or read."""


class DecodeError(ReqchainError):
    """Raised when ingested data cannot be serialized or decoded."""


class NetworkError(ReqchainError):
    """Raised when a request fails in transport (connection error, timeout, etc.)."""


class ResponseDecodeError(ReqchainError):
    """Raised when a response body cannot be decoded into the requested type."""


class ConfigError(ReqchainError):
    """Raised when configuration loading fails."""


def with_cause(error: ReqchainError, cause: BaseException) -> ReqchainError:
    """Attach ``cause`` to an error that is recorded instead of raised."""
    error.__cause__ = cause
    return error
