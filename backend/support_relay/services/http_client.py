"""
Base class for collaborator API clients.
Owns the aiohttp session and routes every request through the resilience
wrapper, translating HTTP outcomes into the service exception hierarchy.

Version: 1.0.0
"""
import json
import logging
from typing import Any, Dict, Optional

import aiohttp
from aiohttp import ClientError, ClientSession, ClientTimeout

from .. import __version__
from ..utils.resilience import (
    CallTimeoutError,
    CircuitBreakerConfig,
    CircuitOpenError,
    RetryConfig,
    resilient_call
)
from .exceptions import (
    CLIENT_ERRORS,
    TRANSIENT_ERRORS,
    ExternalServiceError,
    ServiceAuthenticationError,
    ServiceNotConfiguredError,
    ServiceRateLimitError,
    ServiceRequestError,
    ServiceTimeoutError,
    ServiceUnavailableError
)

logger = logging.getLogger(__name__)

ERROR_BODY_LOG_LIMIT = 500


class BaseAPIClient:
    """
    Async JSON API client with connection pooling.

    Features:
    - Shared aiohttp session created in initialize()
    - Automatic retry with exponential backoff for transient failures
    - Circuit breaker per service (client errors do not count)
    - Per-attempt timeout
    """

    service_name: str = "external"

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        max_retries: int = 3,
        retry_wait_min: float = 1.0,
        retry_wait_max: float = 10.0,
        circuit_breaker_fail_max: int = 5,
        circuit_breaker_reset_seconds: int = 60
    ):
        """
        Initialize API client.

        Args:
            base_url: API base URL
            timeout: Per-attempt timeout in seconds
            max_retries: Maximum attempts for transient failures
            retry_wait_min: Minimum backoff in seconds
            retry_wait_max: Maximum backoff in seconds
            circuit_breaker_fail_max: Failures before the breaker opens
            circuit_breaker_reset_seconds: Seconds the breaker stays open
        """
        self.base_url = base_url.rstrip('/') if base_url else base_url
        self.timeout = timeout

        # HTTP client (initialized in async initialize())
        self.session: Optional[ClientSession] = None

        self.retry_config = RetryConfig(
            max_attempts=max_retries,
            wait_multiplier=1.0,
            wait_min=retry_wait_min,
            wait_max=retry_wait_max,
            retry_exceptions=TRANSIENT_ERRORS + (CallTimeoutError,)
        )

        self.circuit_breaker_config = CircuitBreakerConfig(
            fail_max=circuit_breaker_fail_max,
            reset_timeout=circuit_breaker_reset_seconds,
            exclude=CLIENT_ERRORS
        )

    @property
    def is_configured(self) -> bool:
        """Whether credentials and endpoint are present."""
        return bool(self.base_url)

    def _default_headers(self) -> Dict[str, str]:
        """Headers sent with every request (auth, versioning)."""
        return {}

    async def initialize(self) -> None:
        """Create the HTTP session."""
        if self.session is not None:
            return

        connector = aiohttp.TCPConnector(
            limit=20,
            limit_per_host=10,
            ttl_dns_cache=300
        )

        self.session = ClientSession(
            timeout=ClientTimeout(total=self.timeout),
            connector=connector,
            headers={
                "User-Agent": f"SupportRelay/{__version__}",
                "Accept": "application/json"
            }
        )

        if self.is_configured:
            logger.info(f"✓ {self.service_name} client initialized (endpoint: {self.base_url})")
        else:
            logger.warning(f"{self.service_name} client not configured; calls will be rejected")

    async def cleanup(self) -> None:
        """Close the HTTP session."""
        if self.session:
            await self.session.close()
            self.session = None
            logger.info(f"✓ {self.service_name} client cleanup complete")

    def _error_for_status(self, status: int, body: str, payload: Any) -> ExternalServiceError:
        """Map an HTTP error status to the service exception hierarchy."""
        message = f"{self.service_name} API error {status}: {body[:ERROR_BODY_LOG_LIMIT]}"

        if status in (401, 403):
            return ServiceAuthenticationError(message, status_code=status, payload=payload)
        if status == 429:
            return ServiceRateLimitError(message, status_code=status, payload=payload)
        if status >= 500:
            return ServiceUnavailableError(message, status_code=status, payload=payload)
        return ServiceRequestError(message, status_code=status, payload=payload)

    async def _make_api_request(
        self,
        method: str,
        path: str,
        operation: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        """
        Make an HTTP request with retry and circuit breaker.

        Args:
            method: HTTP method
            path: Path appended to base_url
            operation: Operation name for logging and metrics
            params: Query parameters
            json_data: JSON body
            headers: Extra headers for this request

        Returns:
            Parsed JSON body (empty dict for empty bodies)

        Raises:
            ExternalServiceError: Subclass matching the failure
        """
        if not self.is_configured:
            raise ServiceNotConfiguredError(f"{self.service_name} is not configured")

        if not self.session:
            raise RuntimeError(f"{self.service_name} client not initialized. Call initialize() first.")

        url = f"{self.base_url}/{path.lstrip('/')}"
        request_headers = {**self._default_headers(), **(headers or {})}

        async def execute_request() -> Dict[str, Any]:
            try:
                async with self.session.request(
                    method=method,
                    url=url,
                    params=params,
                    json=json_data,
                    headers=request_headers
                ) as response:
                    body = await response.text()

                    try:
                        payload = json.loads(body) if body else {}
                    except ValueError:
                        payload = None

                    if response.status >= 400:
                        logger.warning(
                            f"{self.service_name} {operation} returned {response.status}",
                            extra={
                                "service_name": self.service_name,
                                "operation": operation,
                                "status_code": response.status,
                                "error_body": body[:ERROR_BODY_LOG_LIMIT]
                            }
                        )
                        raise self._error_for_status(response.status, body, payload)

                    if payload is None:
                        raise ServiceRequestError(
                            f"Failed to parse {self.service_name} response",
                            status_code=response.status
                        )
                    return payload

            except ClientError as e:
                raise ServiceUnavailableError(f"{self.service_name} network error: {e}") from e

        try:
            return await resilient_call(
                self.service_name,
                operation,
                execute_request,
                retry_config=self.retry_config,
                circuit_breaker_config=self.circuit_breaker_config,
                timeout=self.timeout
            )
        except CallTimeoutError as e:
            raise ServiceTimeoutError(str(e)) from e
        except CircuitOpenError as e:
            raise ServiceUnavailableError(str(e)) from e


__all__ = ['BaseAPIClient', 'ERROR_BODY_LOG_LIMIT']
