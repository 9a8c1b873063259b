"""
Exception hierarchy for collaborator API failures.

Version: 1.0.0
"""
from typing import Any, Optional


class ExternalServiceError(Exception):
    """Base exception for collaborator API errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        payload: Optional[Any] = None
    ):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class ServiceNotConfiguredError(ExternalServiceError):
    """Required credentials or endpoint are missing."""
    pass


class ServiceAuthenticationError(ExternalServiceError):
    """Collaborator rejected our credentials (401/403)."""
    pass


class ServiceRateLimitError(ExternalServiceError):
    """Collaborator rate limit exceeded (429)."""
    pass


class ServiceTimeoutError(ExternalServiceError):
    """Request timed out."""
    pass


class ServiceUnavailableError(ExternalServiceError):
    """Server error (5xx), network failure or open circuit breaker."""
    pass


class ServiceRequestError(ExternalServiceError):
    """Request rejected (4xx other than auth and rate limit) or unparseable reply."""
    pass


# Failures worth retrying with backoff
TRANSIENT_ERRORS = (
    ServiceRateLimitError,
    ServiceTimeoutError,
    ServiceUnavailableError
)

# Failures that say nothing about collaborator health
CLIENT_ERRORS = (
    ServiceNotConfiguredError,
    ServiceAuthenticationError,
    ServiceRequestError
)


__all__ = [
    'ExternalServiceError',
    'ServiceNotConfiguredError',
    'ServiceAuthenticationError',
    'ServiceRateLimitError',
    'ServiceTimeoutError',
    'ServiceUnavailableError',
    'ServiceRequestError',
    'TRANSIENT_ERRORS',
    'CLIENT_ERRORS'
]
