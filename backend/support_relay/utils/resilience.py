"""
Outbound call wrapper with retry logic, circuit breakers and call logging.
Provides standardized resilience for every collaborator API call.

Version: 1.0.0
"""
import asyncio
import logging
import time
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence, Tuple, Type, TypeVar

from aiobreaker import CircuitBreaker, CircuitBreakerError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential
)

logger = logging.getLogger(__name__)

T = TypeVar('T')


class ExternalCallError(Exception):
    """Base exception for wrapped call failures."""
    pass


class CallTimeoutError(ExternalCallError):
    """Call exceeded its timeout."""
    pass


class CircuitOpenError(ExternalCallError):
    """Circuit breaker is open; the call was not attempted."""
    pass


# ===========================
# Circuit Breaker Configuration
# ===========================

class CircuitBreakerConfig:
    """Configuration for circuit breakers."""

    def __init__(
        self,
        fail_max: int = 5,
        reset_timeout: int = 60,
        exclude: Sequence[Type[BaseException]] = ()
    ):
        """
        Initialize circuit breaker configuration.

        Args:
            fail_max: Maximum failures before opening circuit
            reset_timeout: Seconds before attempting to close circuit
            exclude: Exception types that do not count as failures
        """
        self.fail_max = fail_max
        self.reset_timeout = reset_timeout
        self.exclude = list(exclude)


# Global circuit breakers per service
_circuit_breakers: Dict[str, CircuitBreaker] = {}


def get_circuit_breaker(
    service_name: str,
    config: Optional[CircuitBreakerConfig] = None
) -> CircuitBreaker:
    """
    Get or create the circuit breaker for a service.

    Args:
        service_name: Service identifier
        config: Circuit breaker configuration (used on creation only)

    Returns:
        Async circuit breaker instance
    """
    if service_name not in _circuit_breakers:
        if config is None:
            config = CircuitBreakerConfig()

        _circuit_breakers[service_name] = CircuitBreaker(
            fail_max=config.fail_max,
            timeout_duration=timedelta(seconds=config.reset_timeout),
            exclude=config.exclude,
            name=service_name
        )

        logger.info(
            f"Created circuit breaker for '{service_name}': "
            f"fail_max={config.fail_max}, reset_timeout={config.reset_timeout}s"
        )

    return _circuit_breakers[service_name]


def get_circuit_breaker_states() -> Dict[str, Dict[str, Any]]:
    """
    Get state of every circuit breaker.

    Returns:
        Mapping of service name to state and failure count
    """
    return {
        name: {
            "state": breaker.current_state.name.lower(),
            "fail_counter": breaker.fail_counter
        }
        for name, breaker in _circuit_breakers.items()
    }


def reset_all_circuit_breakers() -> None:
    """Drop all circuit breakers; they are recreated closed on next use."""
    _circuit_breakers.clear()
    logger.info("All circuit breakers reset")


# ===========================
# Retry Configuration
# ===========================

class RetryConfig:
    """Configuration for retry logic."""

    def __init__(
        self,
        max_attempts: int = 3,
        wait_multiplier: float = 1.0,
        wait_min: float = 1.0,
        wait_max: float = 10.0,
        retry_exceptions: Tuple[Type[BaseException], ...] = (CallTimeoutError,)
    ):
        """
        Initialize retry configuration.

        Args:
            max_attempts: Maximum attempts including the first
            wait_multiplier: Exponential backoff multiplier
            wait_min: Minimum wait time between retries (seconds)
            wait_max: Maximum wait time between retries (seconds)
            retry_exceptions: Exception types to retry on
        """
        self.max_attempts = max_attempts
        self.wait_multiplier = wait_multiplier
        self.wait_min = wait_min
        self.wait_max = wait_max
        self.retry_exceptions = retry_exceptions

    def build(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(
                multiplier=self.wait_multiplier,
                min=self.wait_min,
                max=self.wait_max
            ),
            retry=retry_if_exception_type(self.retry_exceptions),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True
        )


# ===========================
# Call Context
# ===========================

@asynccontextmanager
async def call_context(
    service_name: str,
    operation: str,
    **metadata
):
    """
    Context manager logging start, completion and failure of a call.

    Args:
        service_name: Service identifier
        operation: Operation name (e.g., 'post_message', 'create_payment')
        **metadata: Additional metadata to log

    Example:
        async with call_context('slack', 'post_message', channel='vip-sales'):
            await client.post_message(...)
    """
    start_time = time.time()
    log_context = {
        "service_name": service_name,
        "operation": operation,
        **metadata
    }

    logger.debug(f"Call started: {service_name}.{operation}", extra=log_context)

    try:
        yield log_context

        duration = time.time() - start_time
        logger.info(
            f"Call completed: {service_name}.{operation} (duration: {duration:.3f}s)",
            extra={**log_context, "duration_seconds": duration, "status": "success"}
        )

    except Exception as e:
        duration = time.time() - start_time
        logger.error(
            f"Call failed: {service_name}.{operation} "
            f"(duration: {duration:.3f}s, error: {e})",
            extra={
                **log_context,
                "duration_seconds": duration,
                "status": "error",
                "error_type": type(e).__name__
            }
        )
        raise


# ===========================
# Resilient Call
# ===========================

async def resilient_call(
    service_name: str,
    operation: str,
    func: Callable[[], Awaitable[T]],
    retry_config: Optional[RetryConfig] = None,
    circuit_breaker_config: Optional[CircuitBreakerConfig] = None,
    timeout: Optional[float] = None,
    **metadata
) -> T:
    """
    Run a call through timeout, retry and circuit breaker layers.

    A whole retry sequence counts as one call for the breaker, so a
    transient blip that recovers on retry never trips it.

    Args:
        service_name: Service identifier (one breaker per service)
        operation: Operation name for logging
        func: Zero-argument coroutine function performing one attempt
        retry_config: Retry configuration (no retries when None)
        circuit_breaker_config: Breaker configuration used on creation
        timeout: Per-attempt timeout in seconds
        **metadata: Additional log context

    Returns:
        Result of func

    Raises:
        CallTimeoutError: If the last attempt timed out
        CircuitOpenError: If the breaker is open
    """
    breaker = get_circuit_breaker(service_name, circuit_breaker_config)

    async def attempt_once() -> T:
        if not timeout:
            return await func()
        try:
            return await asyncio.wait_for(func(), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise CallTimeoutError(
                f"'{service_name}' operation '{operation}' timed out after {timeout}s"
            ) from e

    async def attempt_with_retries() -> T:
        if retry_config is None:
            return await attempt_once()
        async for attempt in retry_config.build():
            with attempt:
                return await attempt_once()

    async with call_context(service_name, operation, **metadata):
        try:
            return await breaker.call_async(attempt_with_retries)
        except CircuitBreakerError as e:
            logger.warning(
                f"Circuit breaker open for '{service_name}': {e}",
                extra={
                    "service_name": service_name,
                    "operation": operation,
                    "circuit_breaker_state": breaker.current_state.name.lower()
                }
            )
            raise CircuitOpenError(f"Service temporarily unavailable: {service_name}") from e


__all__ = [
    'ExternalCallError',
    'CallTimeoutError',
    'CircuitOpenError',
    'CircuitBreakerConfig',
    'RetryConfig',
    'call_context',
    'resilient_call',
    'get_circuit_breaker',
    'get_circuit_breaker_states',
    'reset_all_circuit_breakers'
]
