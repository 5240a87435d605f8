"""Custom exceptions for the MailOdds domain."""

from __future__ import annotations


class MailOddsError(Exception):
    """Base exception for this project."""

    kind = "error"


class ConfigError(MailOddsError):
    """Raised when runtime configuration is invalid."""

    kind = "config_error"


class ValidationClientError(MailOddsError):
    """Raised when a validation call cannot produce a result."""


class InvalidEmailError(ValidationClientError):
    """Raised when the email is empty or fails sanitization."""

    kind = "invalid_email"


class NoApiKeyError(ValidationClientError):
    """Raised when no API key is configured."""

    kind = "no_api_key"


class NoEmailsError(ValidationClientError):
    """Raised when a batch has no valid emails left after filtering."""

    kind = "no_emails"


class NetworkError(ValidationClientError):
    """Raised on DNS, connection, TLS or timeout failures."""

    kind = "network_failure"


class ApiError(ValidationClientError):
    """Raised when the API answers with a non-2xx status."""

    kind = "api_error"

    def __init__(self, message: str, *, status: int) -> None:
        super().__init__(message)
        self.status = status


class ResponseDecodeError(ValidationClientError):
    """Raised when a 2xx response body is not valid JSON."""

    kind = "decode_error"
