"""Error taxonomy for remote-call and inbound-request failures.

Every failure that reaches the HTTP layer is an LpoUploaderError. Each class
carries the status code it maps to and whether retrying the same input can
succeed. The `operation` attribute records which step failed
(upload, resolve, link, webhook).
"""

from __future__ import annotations

from typing import Any


class LpoUploaderError(Exception):
    """Base class for every error surfaced to callers."""

    retryable: bool = False
    http_status: int = 500

    def __init__(self, message: str, operation: str = ""):
        self.message = message
        self.operation = operation
        super().__init__(message)

    def __str__(self) -> str:
        if self.operation:
            return f"{self.operation}: {self.message}"
        return self.message


class TransportError(LpoUploaderError):
    """Network, DNS, timeout or 5xx failure talking to the platform."""

    retryable = True
    http_status = 502


class RateLimitedError(TransportError):
    """Platform throttled the request (HTTP 429 or GraphQL THROTTLED)."""

    http_status = 503

    def __init__(
        self,
        message: str,
        operation: str = "",
        retry_after: float | None = None,
    ):
        self.retry_after = retry_after
        super().__init__(message, operation)


class RejectedError(LpoUploaderError):
    """Platform validation failure. Not retryable without changing input."""

    http_status = 422

    def __init__(
        self,
        message: str,
        operation: str = "",
        details: list[dict[str, Any]] | None = None,
    ):
        self.details = details or []
        super().__init__(message, operation)

    @classmethod
    def from_user_errors(
        cls, user_errors: list[dict[str, Any]], operation: str
    ) -> RejectedError:
        """Build from a GraphQL userErrors list, surfacing the first message."""
        first = user_errors[0] if user_errors else {}
        message = first.get("message") or "Rejected by platform"
        field = first.get("field")
        if field:
            path = ".".join(str(p) for p in field) if isinstance(field, list) else str(field)
            message = f"{message} (field: {path})"
        return cls(message, operation, details=list(user_errors))


class MalformedResponseError(LpoUploaderError):
    """Response did not have the expected shape. Signals API contract drift."""

    http_status = 502

    def __init__(self, message: str, operation: str = "", payload_hint: str = ""):
        self.payload_hint = payload_hint
        super().__init__(message, operation)


class ResolutionTimeoutError(LpoUploaderError):
    """Asset still processing after the bounded polling budget."""

    retryable = True
    http_status = 504

    def __init__(self, identifier: str, attempts: int):
        self.identifier = identifier
        self.attempts = attempts
        super().__init__(
            f"File {identifier} still processing after {attempts} attempts",
            "resolve",
        )


class AuthenticationError(LpoUploaderError):
    """Webhook signature mismatch."""

    http_status = 401

    def __init__(self, message: str = "Invalid webhook signature"):
        super().__init__(message, "webhook")


class InvalidRequestError(LpoUploaderError, ValueError):
    """Caller supplied unusable input (empty file, missing owner id, bad JSON)."""

    http_status = 400


class PayloadTooLargeError(InvalidRequestError):
    """Uploaded document exceeds the configured size limit."""

    http_status = 413


class ConfigurationError(Exception):
    """Required configuration missing at startup. Fatal."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(
            "Missing required configuration: " + ", ".join(missing)
        )
