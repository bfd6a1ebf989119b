# ============================================================================
# Error Taxonomy
# ----------------------------------------------------------------------------
# Each failure the gateway can report carries an ErrorResult kind. The HTTP
# layer maps kinds to status codes and a public message; the detailed
# message stays in the server log.
# ============================================================================

from dataclasses import dataclass
from enum import Enum


class ErrorKind(str, Enum):
    CONFIG_MISSING = "config_missing"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    RUN_FAILED = "run_failed"
    INTERNAL = "internal"
    INVALID_REQUEST = "invalid_request"
    ORIGIN_DENIED = "origin_denied"


@dataclass(frozen=True)
class ErrorResult:
    kind: ErrorKind
    message: str


# Status code and caller-facing body text per kind. run_failed is absent:
# a degraded run becomes a reply, never an HTTP error.
HTTP_STATUS = {
    ErrorKind.CONFIG_MISSING: 500,
    ErrorKind.UPSTREAM_UNAVAILABLE: 500,
    ErrorKind.INTERNAL: 500,
    ErrorKind.INVALID_REQUEST: 400,
    ErrorKind.ORIGIN_DENIED: 403,
}

PUBLIC_MESSAGE = {
    ErrorKind.CONFIG_MISSING: "Server Error",
    ErrorKind.UPSTREAM_UNAVAILABLE: "Server Error",
    ErrorKind.INTERNAL: "Server Error",
    ErrorKind.ORIGIN_DENIED: "Origin not allowed",
}


class GatewayError(Exception):
    """Base class for failures that end a request with an error body."""

    kind = ErrorKind.INTERNAL

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message
        self.state = None  # terminal TurnState, set by TurnHandler

    @property
    def result(self) -> ErrorResult:
        return ErrorResult(kind=self.kind, message=self.message)

    @property
    def status_code(self) -> int:
        return HTTP_STATUS[self.kind]

    @property
    def public_message(self) -> str:
        # Invalid requests echo their own (non-sensitive) message
        return PUBLIC_MESSAGE.get(self.kind, self.message)


class ConfigMissingError(GatewayError):
    kind = ErrorKind.CONFIG_MISSING


class UpstreamUnavailableError(GatewayError):
    kind = ErrorKind.UPSTREAM_UNAVAILABLE


class InvalidRequestError(GatewayError):
    kind = ErrorKind.INVALID_REQUEST


class OriginDeniedError(GatewayError):
    kind = ErrorKind.ORIGIN_DENIED


class PersistenceError(Exception):
    """A transcript write failed. Never surfaced to HTTP callers."""
