"""
Custom exception hierarchy for wallettrace.

Each exception maps to a specific CLI exit code and JSON error_code field.
cli.py catches all WallettraceError subclasses and formats them as JSON output.

Exit code mapping:
  1 — WallettraceError (generic error, trace unavailable)
  2 — APIError (invalid key, rate limit, upstream error, malformed response)
  3 — NetworkError (timeout, connection refused)
  4 — DataError (invalid address, no usable chain)
  5 — ConfigError (missing/malformed config)
"""


class WallettraceError(Exception):
    """Base exception for all wallettrace errors."""

    exit_code: int = 1
    error_code: str = "unknown_error"

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class TraceUnavailableError(WallettraceError):
    """No report could be produced for the requested address."""

    error_code = "trace_unavailable"


class APIError(WallettraceError):
    """Upstream API returned an error response."""

    exit_code = 2
    error_code = "api_error"

    def __init__(
        self, message: str, status: int | None = None, url: str | None = None, **kwargs
    ) -> None:
        details = kwargs.pop("details", None) or {}
        if status is not None:
            details["status"] = status
        if url:
            details["url"] = url
        super().__init__(message, details=details)
        self.status = status
        self.url = url


class InvalidAPIKeyError(APIError):
    """API key is invalid or missing."""

    error_code = "invalid_api_key"


class RateLimitError(APIError):
    """API rate limit exceeded."""

    error_code = "rate_limited"

    def __init__(self, message: str, retry_after: int = 60, **kwargs) -> None:
        super().__init__(message, details={"retry_after_seconds": retry_after}, **kwargs)
        self.retry_after = retry_after


class MalformedResponseError(APIError):
    """Upstream response body was not the JSON shape we expect."""

    error_code = "malformed_response"


class NetworkError(WallettraceError):
    """Network connectivity issue — timeout or connection failure."""

    exit_code = 3
    error_code = "network_error"


class NetworkTimeoutError(NetworkError):
    """Request timed out."""

    error_code = "network_timeout"


class ConnectionFailedError(NetworkError):
    """Could not connect to API endpoint."""

    error_code = "connection_failed"


class DataError(WallettraceError):
    """Input validation error."""

    exit_code = 4
    error_code = "data_error"


class InvalidAddressError(DataError):
    """Address format is invalid for the given chain."""

    error_code = "invalid_address"


class ChainUnavailableError(DataError):
    """No configured chain matches the request, or it has no explorer credentials."""

    error_code = "chain_unavailable"


class ConfigError(WallettraceError):
    """Config file is missing or malformed."""

    exit_code = 5
    error_code = "config_error"


class ConfigInvalidError(ConfigError):
    """Config file exists but contains invalid TOML or invalid values."""

    error_code = "config_invalid"
