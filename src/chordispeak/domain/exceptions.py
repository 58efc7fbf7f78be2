"""Domain exceptions and the transport error taxonomy."""

from enum import Enum
from typing import Optional


class DomainException(Exception):
    """Base exception for all domain errors."""
    pass


class ConfigurationError(DomainException):
    """Raised when configuration is invalid."""
    pass


class TaskStateError(DomainException):
    """Raised when a task monitor operation is not valid in its current state."""
    pass


class JobFailedError(DomainException):
    """Raised (or surfaced) when the server reports the job as failed."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ErrorKind(str, Enum):
    """Closed set of transport failure kinds."""

    NO_CONNECTION = "no_connection"
    TIMEOUT = "timeout"
    INVALID_RESPONSE = "invalid_response"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    PROTOCOL_ERROR = "protocol_error"
    DECODING_ERROR = "decoding_error"
    FILE_TOO_LARGE = "file_too_large"
    FILE_READ_ERROR = "file_read_error"
    UNKNOWN = "unknown"

    @property
    def is_transient(self) -> bool:
        """Whether a failure of this kind may be retried automatically."""
        return self in _TRANSIENT_KINDS


_TRANSIENT_KINDS = frozenset({
    ErrorKind.NO_CONNECTION,
    ErrorKind.TIMEOUT,
    ErrorKind.SERVER_ERROR,
    ErrorKind.RATE_LIMITED,
})

_MESSAGES = {
    ErrorKind.NO_CONNECTION: "No internet connection. Please check your network settings.",
    ErrorKind.TIMEOUT: "Request timed out. Please try again.",
    ErrorKind.INVALID_RESPONSE: "Invalid response from server.",
    ErrorKind.UNAUTHORIZED: "Authentication required.",
    ErrorKind.FORBIDDEN: "Access forbidden.",
    ErrorKind.NOT_FOUND: "Resource not found.",
    ErrorKind.RATE_LIMITED: "Too many requests. Please try again later.",
    ErrorKind.SERVER_ERROR: "Server error ({code}). Please try again later.",
    ErrorKind.PROTOCOL_ERROR: "HTTP error {code}",
    ErrorKind.DECODING_ERROR: "Failed to process server response.",
    ErrorKind.FILE_TOO_LARGE: "File is too large. Maximum size is {limit}.",
    ErrorKind.FILE_READ_ERROR: "Failed to read file.",
    ErrorKind.UNKNOWN: "Unexpected error: {detail}",
}


def _format_size(num_bytes: int) -> str:
    if num_bytes % (1024 * 1024) == 0:
        return f"{num_bytes // (1024 * 1024)}MB"
    return f"{num_bytes} bytes"


class TransportError(DomainException):
    """
    A classified failure of an HTTP exchange or of preparing one.

    Attributes:
        kind: The failure kind
        status_code: HTTP status code, set for SERVER_ERROR and PROTOCOL_ERROR
            (and for other HTTP-derived kinds when known)
        detail: Optional extra context, used for UNKNOWN failures
    """

    def __init__(
        self,
        kind: ErrorKind,
        status_code: Optional[int] = None,
        detail: Optional[str] = None,
        limit_bytes: int = 50 * 1024 * 1024
    ):
        self.kind = kind
        self.status_code = status_code
        self.detail = detail
        self.message = _MESSAGES[kind].format(
            code=status_code,
            detail=detail or "unknown",
            limit=_format_size(limit_bytes),
        )
        super().__init__(self.message)

    @property
    def is_transient(self) -> bool:
        return self.kind.is_transient

    def __repr__(self) -> str:
        if self.status_code is not None:
            return f"TransportError({self.kind.name}, {self.status_code})"
        return f"TransportError({self.kind.name})"


def classify_status(status_code: int) -> Optional[TransportError]:
    """
    Map an HTTP status code to a transport error.

    Returns None for 2xx. Every other code maps to exactly one kind.
    """
    if 200 <= status_code <= 299:
        return None
    if status_code == 401:
        return TransportError(ErrorKind.UNAUTHORIZED, status_code)
    if status_code == 403:
        return TransportError(ErrorKind.FORBIDDEN, status_code)
    if status_code == 404:
        return TransportError(ErrorKind.NOT_FOUND, status_code)
    if status_code == 429:
        return TransportError(ErrorKind.RATE_LIMITED, status_code)
    if 500 <= status_code <= 599:
        return TransportError(ErrorKind.SERVER_ERROR, status_code)
    return TransportError(ErrorKind.PROTOCOL_ERROR, status_code)
