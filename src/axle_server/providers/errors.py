"""Wearable provider exceptions and failure classification.

Adapters raise the ``ProviderError`` subclasses below (or let httpx errors
propagate); the health sync classifies whatever it catches with
``ProviderErrorHandler`` so every failure is logged and stored the same way.

Error classification:

    TRANSIENT (next daily run may succeed):
    - RATE_LIMITED: Provider throttled us
    - API_UNAVAILABLE: Provider down or unreachable
    - API_TIMEOUT: Fetch exceeded its timeout

    PERMANENT (user or operator action needed):
    - NOT_CONFIGURED: App credentials missing for this provider
    - AUTH_FAILED: Token missing, expired or revoked
    - API_ERROR: Provider returned a 4xx
    - INVALID_RESPONSE: Payload didn't match what the adapter expects
    - INTERNAL_ERROR: Anything else
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx
import structlog

logger = structlog.get_logger()


class ProviderError(Exception):
    """Base error for wearable provider adapters."""

    def __init__(self, provider: str, message: str, status_code: int | None = None) -> None:
        self.provider = provider
        self.status_code = status_code
        super().__init__(message)


class ProviderNotConfiguredError(ProviderError):
    """Provider app credentials are missing, or the adapter isn't implemented."""


class ProviderAuthError(ProviderError):
    """User's token is missing, expired or revoked."""


class ProviderUnavailableError(ProviderError):
    """Provider API is down, rate limiting, or unreachable."""


class ProviderResponseError(ProviderError):
    """Provider answered, but not with something we can use."""


class ProviderErrorType(str, Enum):
    """Categorized provider failure."""

    NOT_CONFIGURED = "not_configured"
    AUTH_FAILED = "auth_failed"
    RATE_LIMITED = "rate_limited"
    API_UNAVAILABLE = "api_unavailable"
    API_TIMEOUT = "api_timeout"
    API_ERROR = "api_error"
    INVALID_RESPONSE = "invalid_response"
    INTERNAL_ERROR = "internal_error"


TRANSIENT_ERROR_TYPES = frozenset(
    {
        ProviderErrorType.RATE_LIMITED,
        ProviderErrorType.API_UNAVAILABLE,
        ProviderErrorType.API_TIMEOUT,
    }
)


@dataclass
class ProviderFailure:
    """Structured provider failure.

    Attributes:
        provider: Provider id
        error_type: Categorized error type
        message: Human-readable message, stored on the wearable connection
        details: Extra context for logs
        original_exception: The exception that caused this failure
    """

    provider: str
    error_type: ProviderErrorType
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    original_exception: Exception | None = None

    @property
    def is_transient(self) -> bool:
        return self.error_type in TRANSIENT_ERROR_TYPES

    def to_log_dict(self) -> dict[str, Any]:
        """Convert to dict for structured logging."""
        return {
            "provider": self.provider,
            "error_type": self.error_type.value,
            "message": self.message,
            "is_transient": self.is_transient,
            **self.details,
        }


class ProviderErrorHandler:
    """Classifies exceptions raised while fetching from a provider.

    Usage:
        handler = ProviderErrorHandler()

        try:
            snapshot = await provider.fetch_latest(user_id)
        except Exception as e:
            failure = handler.classify(e, provider="oura", context={"user_id": user_id})
            connection.error = failure.message
    """

    def __init__(self) -> None:
        """Initialize error handler."""
        self.logger = logger.bind(component="provider_error_handler")

    def classify(
        self,
        exception: Exception,
        provider: str,
        context: dict[str, Any] | None = None,
    ) -> ProviderFailure:
        """Classify an exception into a ProviderFailure.

        Args:
            exception: The exception to classify
            provider: Provider id the fetch was for
            context: Additional context (user_id, etc.)

        Returns:
            ProviderFailure with category and message
        """
        context = context or {}

        if isinstance(exception, ProviderNotConfiguredError):
            error_type = ProviderErrorType.NOT_CONFIGURED
            message = f"{provider} is not configured: {exception}"
        elif isinstance(exception, ProviderAuthError):
            error_type = ProviderErrorType.AUTH_FAILED
            message = f"{provider} authorization failed, reconnect required: {exception}"
        elif isinstance(exception, ProviderUnavailableError):
            if exception.status_code == 429:
                error_type = ProviderErrorType.RATE_LIMITED
                message = f"Rate limited by {provider}"
            else:
                error_type = ProviderErrorType.API_UNAVAILABLE
                message = f"{provider} unavailable: {exception}"
        elif isinstance(exception, ProviderResponseError):
            error_type = ProviderErrorType.INVALID_RESPONSE
            message = f"Unexpected response from {provider}: {exception}"
        elif isinstance(exception, asyncio.TimeoutError | httpx.TimeoutException):
            error_type = ProviderErrorType.API_TIMEOUT
            message = f"{provider} request timed out"
        elif isinstance(exception, httpx.ConnectError):
            error_type = ProviderErrorType.API_UNAVAILABLE
            message = f"Failed to connect to {provider}: {exception}"
        elif isinstance(exception, httpx.HTTPStatusError):
            error_type, message = self._classify_status(exception, provider)
            context = {**context, "status_code": exception.response.status_code}
        elif isinstance(exception, ValueError | KeyError | TypeError):
            error_type = ProviderErrorType.INVALID_RESPONSE
            message = f"Could not read {provider} data: {exception}"
        else:
            error_type = ProviderErrorType.INTERNAL_ERROR
            message = f"Unexpected error: {type(exception).__name__}: {exception}"

        failure = ProviderFailure(
            provider=provider,
            error_type=error_type,
            message=message,
            details={"exception": type(exception).__name__, **context},
            original_exception=exception,
        )

        if error_type == ProviderErrorType.INTERNAL_ERROR:
            self.logger.exception("Unexpected provider error", **failure.to_log_dict())
        elif failure.is_transient:
            self.logger.warning("Transient provider error", **failure.to_log_dict())
        else:
            self.logger.error("Provider error", **failure.to_log_dict())

        return failure

    def _classify_status(
        self,
        exception: httpx.HTTPStatusError,
        provider: str,
    ) -> tuple[ProviderErrorType, str]:
        status_code = exception.response.status_code
        if status_code in (401, 403):
            message = f"{provider} rejected credentials (HTTP {status_code})"
            return ProviderErrorType.AUTH_FAILED, message
        if status_code == 429:
            return ProviderErrorType.RATE_LIMITED, f"Rate limited by {provider}"
        if status_code >= 500:
            return ProviderErrorType.API_UNAVAILABLE, f"{provider} unavailable (HTTP {status_code})"
        return ProviderErrorType.API_ERROR, f"{provider} API error (HTTP {status_code})"
