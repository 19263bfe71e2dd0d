from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    NETWORK = "network"
    API = "api"
    AUTH = "auth"
    CONFIG = "config"
    PARSE = "parse"
    STREAM = "stream"


_RETRYABLE_API_CODES = frozenset({"rate_limit", "server_error"})


class ClientError(Exception):
    """Error raised by every client operation.

    ``kind`` and ``code`` identify the error for matching and classification;
    ``cause`` keeps the lower-level exception (also chained as ``__cause__``).
    """

    def __init__(
        self,
        kind: ErrorKind | str,
        code: str,
        message: str,
        cause: BaseException | None = None,
        *,
        retry_after: float | None = None,
    ):
        super().__init__(message)
        self.kind = ErrorKind(kind)
        self.code = code
        self.message = message
        self.cause = cause
        self.retry_after = retry_after
        self.__cause__ = cause

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.kind.value}: {self.message} (caused by: {self.cause})"
        return f"{self.kind.value}: {self.message}"

    def __repr__(self) -> str:
        return f"ClientError(kind={self.kind.value!r}, code={self.code!r}, message={self.message!r})"

    def matches(self, other: object) -> bool:
        if not isinstance(other, ClientError):
            return False
        return self.kind == other.kind and self.code == other.code


class RequestCancelledError(Exception):
    """Raised when a cancellation token fires while a call is waiting."""

    def __init__(self, reason: str = "cancelled"):
        super().__init__(f"request {reason}")
        self.reason = reason


# Network

def timeout_error(timeout: float) -> ClientError:
    return ClientError(ErrorKind.NETWORK, "timeout", f"request timed out after {timeout:g}s")


def connection_error(cause: BaseException | None) -> ClientError:
    return ClientError(ErrorKind.NETWORK, "connection_failed", "failed to connect to the API server", cause)


def dns_error(hostname: str, cause: BaseException | None) -> ClientError:
    return ClientError(ErrorKind.NETWORK, "dns_error", f"failed to resolve hostname: {hostname}", cause)


# API

def rate_limit_error(retry_after: float | None = None) -> ClientError:
    message = "rate limit exceeded"
    if retry_after is not None:
        message = f"rate limit exceeded, retry after {retry_after:g}s"
    return ClientError(ErrorKind.API, "rate_limit", message, retry_after=retry_after)


def quota_exceeded_error() -> ClientError:
    return ClientError(ErrorKind.API, "quota_exceeded", "API quota has been exceeded")


def invalid_model_error(model: str) -> ClientError:
    return ClientError(ErrorKind.API, "invalid_model", f"invalid or unsupported model: {model}")


def server_error(status_code: int, body: str) -> ClientError:
    return ClientError(ErrorKind.API, "server_error", f"server returned status {status_code}: {body}")


def bad_request_error(message: str) -> ClientError:
    return ClientError(ErrorKind.API, "bad_request", message)


# Auth

def invalid_api_key_error() -> ClientError:
    return ClientError(ErrorKind.AUTH, "invalid_api_key", "invalid or missing API key")


def expired_token_error() -> ClientError:
    return ClientError(ErrorKind.AUTH, "expired_token", "authentication token has expired")


def permission_denied_error(resource: str) -> ClientError:
    return ClientError(ErrorKind.AUTH, "permission_denied", f"insufficient permissions to access: {resource}")


# Config

def invalid_parameter_error(parameter: str, value: object) -> ClientError:
    return ClientError(ErrorKind.CONFIG, "invalid_parameter", f"invalid parameter {parameter}: {value}")


def missing_config_error(name: str) -> ClientError:
    return ClientError(ErrorKind.CONFIG, "missing_config", f"required configuration missing: {name}")


def config_error(message: str) -> ClientError:
    return ClientError(ErrorKind.CONFIG, "config_error", message)


# Parse

def json_parse_error(cause: BaseException | None) -> ClientError:
    return ClientError(ErrorKind.PARSE, "json_parse_error", "failed to parse JSON response", cause)


def missing_field_error(field: str) -> ClientError:
    return ClientError(ErrorKind.PARSE, "missing_field", f"required field missing in response: {field}")


# Stream

def stream_closed_error() -> ClientError:
    return ClientError(ErrorKind.STREAM, "stream_closed", "stream has been closed unexpectedly")


def stream_read_error(cause: BaseException | None) -> ClientError:
    return ClientError(ErrorKind.STREAM, "stream_read_error", "failed to read from stream", cause)


def status_error(
    status_code: int,
    message: str,
    *,
    model: str,
    service: str,
    error_code: str | None = None,
    retry_after: float | None = None,
) -> ClientError:
    """Map a non-2xx vendor response onto the taxonomy."""
    lowered = (message or "").lower()
    if status_code == 401:
        if "expired" in lowered:
            return expired_token_error()
        return invalid_api_key_error()
    if status_code == 403:
        return permission_denied_error(service)
    if status_code == 429:
        if error_code == "insufficient_quota" or "insufficient_quota" in lowered:
            return quota_exceeded_error()
        return rate_limit_error(retry_after)
    if status_code == 400:
        if "model" in lowered:
            return invalid_model_error(model)
        return bad_request_error(message)
    return server_error(status_code, message)


def is_retryable(err: BaseException | None) -> bool:
    if not isinstance(err, ClientError):
        return False
    if err.kind == ErrorKind.NETWORK:
        return True
    if err.kind == ErrorKind.API:
        return err.code in _RETRYABLE_API_CODES
    return False


def is_authentication_error(err: BaseException | None) -> bool:
    return isinstance(err, ClientError) and err.kind == ErrorKind.AUTH


def is_network_error(err: BaseException | None) -> bool:
    return isinstance(err, ClientError) and err.kind == ErrorKind.NETWORK
