"""
Utility modules for the application.
Provides outbound call resilience, telemetry, and middleware.

Version: 1.0.0
"""

from .resilience import (
    ExternalCallError,
    CallTimeoutError,
    CircuitOpenError,
    CircuitBreakerConfig,
    RetryConfig,
    call_context,
    get_circuit_breaker,
    get_circuit_breaker_states,
    reset_all_circuit_breakers,
    resilient_call
)
from .telemetry import (
    setup_telemetry,
    metrics_collector,
    MetricsCollector,
    track_chat_message,
    track_completion,
    track_handoff,
    track_payment,
    track_webhook_event,
    update_active_sessions
)
from .middleware import (
    RequestIDMiddleware,
    TimingMiddleware,
    RateLimitMiddleware,
    ErrorHandlingMiddleware
)

__all__ = [
    # Resilience
    'ExternalCallError',
    'CallTimeoutError',
    'CircuitOpenError',
    'CircuitBreakerConfig',
    'RetryConfig',
    'call_context',
    'get_circuit_breaker',
    'get_circuit_breaker_states',
    'reset_all_circuit_breakers',
    'resilient_call',

    # Telemetry
    'setup_telemetry',
    'metrics_collector',
    'MetricsCollector',
    'track_chat_message',
    'track_completion',
    'track_handoff',
    'track_payment',
    'track_webhook_event',
    'update_active_sessions',

    # Middleware
    'RequestIDMiddleware',
    'TimingMiddleware',
    'RateLimitMiddleware',
    'ErrorHandlingMiddleware'
]
