"""
API schema package.
Exports request and response models for the HTTP surface.

Version: 1.0.0
"""

from .schemas import (
    ChatRequest,
    CustomerInfo,
    WidgetMessage,
    HandoffRequest,
    RelayRequest,
    PaymentRequest,
    ChatResponse,
    HandoffResponse,
    RelayResponse,
    TranscriptResponse,
    PaymentResponse,
    HealthResponse,
    ErrorResponse
)

__all__ = [
    'ChatRequest',
    'CustomerInfo',
    'WidgetMessage',
    'HandoffRequest',
    'RelayRequest',
    'PaymentRequest',
    'ChatResponse',
    'HandoffResponse',
    'RelayResponse',
    'TranscriptResponse',
    'PaymentResponse',
    'HealthResponse',
    'ErrorResponse'
]
